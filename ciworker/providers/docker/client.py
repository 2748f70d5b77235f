from typing import Any, Callable, List, Optional, TypeVar

import docker
import requests
from docker.errors import APIError, DockerException, NotFound

from ciworker.models.sandbox_info import ContainerSpec, ContainerState, Image
from ciworker.services.exceptions import (
    BackendNotFoundError,
    BackendServerError,
    BackendUnavailableError,
)
from ciworker.services.log import get_logger

T = TypeVar("T")


def _host_port(bindings: Optional[List[dict]]) -> Optional[int]:
    if not bindings:
        return None
    port = bindings[0].get("HostPort")
    return int(port) if port else None


class DockerBackend:
    """
    Docker Engine API wrapper translating SDK errors into backend errors
    """

    def __init__(self, base_url: Optional[str] = None, client: Optional[docker.DockerClient] = None):
        self._logger = get_logger(f"{__name__}.DockerBackend")
        self._base_url = base_url
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = self._call(self._connect, "connect")
        return self._client

    def _connect(self) -> docker.DockerClient:
        if self._base_url:
            client = docker.DockerClient(base_url=self._base_url)
        else:
            client = docker.from_env()
        self._logger.info("Connected to Docker daemon", {"base_url": self._base_url or "env"})
        return client

    def create_container(self, spec: ContainerSpec) -> str:
        container = self._call(
            lambda: self.client.containers.create(
                spec.image_id,
                command=spec.command,
                hostname=spec.hostname,
                cpu_shares=spec.cpu_shares,
                mem_limit=spec.memory,
                ports={f"{port}/tcp": None for port in spec.ports},
                privileged=spec.privileged,
                detach=True,
            ),
            "create container",
        )
        self._logger.debug("Container created", {"id": container.id, "image": spec.image_id})
        return container.id

    def start(self, ref: str) -> None:
        self._call(lambda: self._get(ref).start(), f"start container {ref}")

    def inspect(self, ref: str) -> ContainerState:
        attrs = self._call(lambda: self.client.api.inspect_container(ref), f"inspect container {ref}")
        state = attrs.get("State") or {}
        ports = (attrs.get("NetworkSettings") or {}).get("Ports") or {}
        port_map = {}
        for container_port, bindings in ports.items():
            host_port = _host_port(bindings)
            if host_port is not None:
                port_map[container_port] = host_port
        return ContainerState(
            running=bool(state.get("Running")),
            port_map=port_map,
            status=state.get("Status"),
        )

    def stop(self, ref: str) -> None:
        self._call(lambda: self._get(ref).stop(), f"stop container {ref}")

    def remove(self, ref: str) -> None:
        self._call(lambda: self._get(ref).remove(), f"remove container {ref}")

    def list_images(self) -> List[Image]:
        images = self._call(lambda: self.client.images.list(), "list images")
        result = []
        for image in images:
            for repo_tag in image.tags:
                repository, _, tag = repo_tag.rpartition(":")
                if not repository:
                    repository, tag = tag, "latest"
                result.append(Image(repository=repository, tag=tag, id=image.id))
        return result

    def _get(self, ref: str) -> Any:
        return self.client.containers.get(ref)

    def _call(self, fn: Callable[[], T], action: str) -> T:
        try:
            return fn()
        except NotFound as e:
            raise BackendNotFoundError(f"Docker could not {action}: not found", {"explanation": e.explanation}) from e
        except APIError as e:
            raise BackendServerError(
                f"Docker API error during {action}: {e.explanation or e}",
                {"status": e.status_code},
            ) from e
        except requests.exceptions.ConnectionError as e:
            raise BackendUnavailableError(f"Docker daemon unreachable during {action}: {e}") from e
        except DockerException as e:
            raise BackendServerError(f"Docker error during {action}: {e}") from e
