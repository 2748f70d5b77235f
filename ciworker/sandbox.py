from contextlib import AbstractContextManager
from typing import Any, Callable, List, Optional, TypeVar

from ciworker.config import WorkerConfig
from ciworker.models.sandbox_info import DestroyReport, SandboxInstance
from ciworker.providers.docker import DockerBackend, LifecycleManager
from ciworker.providers.ssh import SSHSessionFactory
from ciworker.services.log import configure_logging, get_logger
from ciworker.services.metrics import MetricsSink, PrometheusMetrics

T = TypeVar("T")


def create_manager(config: Optional[WorkerConfig] = None,
                   metrics: Optional[MetricsSink] = None,
                   log_file: Optional[str] = None) -> LifecycleManager:
    """
    Wire a lifecycle manager to the local Docker daemon and paramiko sessions

    Installs the worker log handlers on first use. Without explicit metrics the
    manager reports to the default Prometheus registry.
    """
    configure_logging(log_file)
    config = config or WorkerConfig.from_env()
    return LifecycleManager(
        config,
        backend=DockerBackend(base_url=config.docker_base_url),
        session_factory=SSHSessionFactory(),
        metrics=metrics if metrics is not None else PrometheusMetrics(),
    )


class VirtualMachine(AbstractContextManager):
    """One named sandbox slot of a worker, driven by a single job thread"""

    def __init__(self, name: str, manager: LifecycleManager):
        self.name = name
        self.manager = manager
        self.instance: SandboxInstance = manager.instance(name)
        self._logger = get_logger(f"{__name__}.VirtualMachine", vm=self.full_name)

    @classmethod
    def pool(cls, manager: LifecycleManager) -> List["VirtualMachine"]:
        """One VM per configured slot name"""
        return [cls(instance.name, manager) for instance in manager.instances()]

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Ensure safe shutdown"""
        self.destroy_server()
        return False  # Don't suppress exceptions

    @property
    def full_name(self) -> str:
        return self.instance.full_name

    @property
    def hostname(self) -> str:
        return self.instance.hostname

    @property
    def container_id(self) -> Optional[str]:
        return self.instance.container_ref

    @property
    def session(self):
        return self.manager.session(self.instance)

    def create_server(self, language: Optional[str] = None) -> SandboxInstance:
        return self.manager.create(self.instance, language)

    def sandboxed(self, work: Callable[[Any], T], language: Optional[str] = None) -> T:
        self._logger.debug("Running job in sandbox", {"language": language or "[nil]"})
        return self.manager.sandboxed(self.instance, work, language)

    def destroy_server(self) -> DestroyReport:
        return self.manager.destroy(self.instance)
