from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class VMState(Enum):
    """Lifecycle of a sandbox slot"""
    UNPROVISIONED = "unprovisioned"
    BOOTING = "booting"
    READY = "ready"
    IN_USE = "in_use"
    DESTROYING = "destroying"


class BootOutcome(Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"


class RemoveStatus(Enum):
    REMOVED = "removed"
    ALREADY_ABSENT = "already_absent"
    FAILED = "failed"


@dataclass(frozen=True)
class Image:
    repository: str
    tag: str
    id: str

    @property
    def ref(self) -> str:
        return f"{self.repository}:{self.tag}"

    @property
    def short_id(self) -> str:
        """Image id without the digest algorithm prefix"""
        return self.id.split(":", 1)[1] if ":" in self.id else self.id


@dataclass(frozen=True)
class ContainerSpec:
    """Everything the backend needs to create a sandbox container"""
    command: List[str]
    image_id: str
    cpu_shares: int
    memory: int
    hostname: str
    ports: List[str]
    privileged: bool = False


@dataclass
class ContainerState:
    running: bool
    # container port ("22/tcp") -> host port
    port_map: Dict[str, int] = field(default_factory=dict)
    status: Optional[str] = None


@dataclass
class RemoveOutcome:
    status: RemoveStatus
    attempts: int
    cause: Optional[Exception] = None

    @property
    def failed(self) -> bool:
        return self.status is RemoveStatus.FAILED


@dataclass
class DestroyReport:
    container_id: Optional[str] = None
    stop_error: Optional[Exception] = None
    remove: Optional[RemoveOutcome] = None

    @property
    def clean(self) -> bool:
        return self.stop_error is None and (self.remove is None or not self.remove.failed)


@dataclass
class SandboxInstance:
    """
    One sandbox slot owned by a worker.

    The hostname is fixed when the instance is built. Only the lifecycle
    manager writes container_ref, session and state.
    """
    name: str
    hostname: str
    worker_host: str
    container_ref: Optional[str] = None
    session: Optional[Any] = None
    state: VMState = VMState.UNPROVISIONED
    image: Optional[Image] = None

    @property
    def full_name(self) -> str:
        return f"{self.worker_host}:travis-{self.name}"

    @property
    def provisioned(self) -> bool:
        return self.container_ref is not None


@dataclass
class ExecutionResult:
    stdout: str
    stderr: str
    return_code: int
