from .config import WorkerConfig
from .models.sandbox_info import Image, SandboxInstance, VMState
from .providers.docker import DockerBackend, ImageResolver, LifecycleManager
from .providers.ssh import SandboxSession, SSHSessionFactory
from .sandbox import VirtualMachine, create_manager
from .services.naming import generate_hostname, vm_names
from .services.retry import RetryPolicy

__all__ = [
    "WorkerConfig",
    "Image",
    "SandboxInstance",
    "VMState",
    "DockerBackend",
    "ImageResolver",
    "LifecycleManager",
    "SandboxSession",
    "SSHSessionFactory",
    "VirtualMachine",
    "create_manager",
    "generate_hostname",
    "vm_names",
    "RetryPolicy",
]
