from .client import SSHSessionFactory
from .session import SandboxSession

__all__ = [
    "SSHSessionFactory",
    "SandboxSession",
]
