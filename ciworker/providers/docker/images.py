import threading
from typing import Dict, List, Optional

from ciworker.constants import DEFAULT_IMAGE_NAMESPACE, DEFAULT_IMAGE_TAG
from ciworker.models.sandbox_info import Image
from ciworker.services.exceptions import ImageNotFoundError
from ciworker.services.log import get_logger


def _normalize(tag: str) -> str:
    return tag.replace("-", "").replace("_", "").lower()


class ImageResolver:
    """Pick the base image for a job from the images tagged by language"""

    def __init__(self, backend, namespace: str = DEFAULT_IMAGE_NAMESPACE,
                 default_tag: str = DEFAULT_IMAGE_TAG,
                 language_mappings: Optional[Dict[str, str]] = None):
        self._logger = get_logger(f"{__name__}.ImageResolver")
        self._backend = backend
        self.namespace = namespace
        self.default_tag = default_tag
        self.language_mappings = dict(language_mappings or {})
        self._images: Optional[List[Image]] = None
        self._lock = threading.Lock()

    @property
    def latest_images(self) -> List[Image]:
        """Images in the namespace, fetched from the backend on first use"""
        with self._lock:
            if self._images is None:
                self._images = [i for i in self._backend.list_images() if i.repository == self.namespace]
                self._logger.debug("Loaded images", {
                    "namespace": self.namespace,
                    "count": len(self._images),
                })
            return list(self._images)

    def refresh(self) -> None:
        with self._lock:
            self._images = None

    def default_image(self) -> Image:
        image = self._find_tag(self.latest_images, self.default_tag)
        if image is None:
            raise ImageNotFoundError(
                f"Default image {self.namespace}:{self.default_tag} is not available",
                {"namespace": self.namespace, "tag": self.default_tag},
            )
        return image

    def resolve(self, language: Optional[str] = None, override: Optional[str] = None) -> Image:
        """
        Select an image for a job

        Args:
            language: Language hint of the job; matched against image tags
                ignoring case, hyphens and underscores
            override: Image id prefix that takes precedence over the language

        Returns:
            Matching image, or the default image when nothing matches

        Raises:
            ImageNotFoundError: If the default image is needed but missing
        """
        images = self.latest_images
        if override:
            image = next((i for i in images if i.short_id.startswith(override) or i.id.startswith(override)), None)
            if image is None:
                self._logger.warning("No image matches override", {"override": override})
        elif language is None:
            image = None
        else:
            tag = self.language_mappings.get(language, language)
            wanted = _normalize(tag)
            image = next((i for i in images if _normalize(i.tag) == wanted), None)

        return image or self.default_image()

    @staticmethod
    def _find_tag(images: List[Image], tag: str) -> Optional[Image]:
        return next((i for i in images if i.tag == tag), None)
