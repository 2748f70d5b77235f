from .client import DockerBackend
from .images import ImageResolver
from .lifecycle import LifecycleManager

__all__ = [
    "DockerBackend",
    "ImageResolver",
    "LifecycleManager",
]
