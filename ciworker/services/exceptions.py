class SandboxError(Exception):
    """Base exception class for all sandbox errors"""
    def __init__(self, message: str, context: dict = None):
        super().__init__(message)
        self.context = context or {}
        self.code = getattr(self, 'code', 500)

class ConfigurationError(SandboxError):
    """Invalid configuration"""
    code = 400

class ProviderError(SandboxError):
    """Provider-specific errors"""
    code = 502

class OperationTimeoutError(SandboxError):
    """Operation timeout"""
    code = 504

class ResourceError(SandboxError):
    """Resource management failures"""
    code = 500

class ImageNotFoundError(ResourceError):
    """The image catalog has no usable image, not even the default one"""

class BootError(ProviderError):
    """Creating or starting a container failed"""

class BootTimeoutError(OperationTimeoutError):
    """The container was created but never reached the running state"""

class ContainerStopError(ResourceError):
    """Stopping a container failed during teardown"""

class ContainerRemoveError(ResourceError):
    """Removing a container failed during teardown"""

class BackendError(ProviderError):
    """Base class for errors reported by the container backend"""

class BackendNotFoundError(BackendError):
    """The backend does not know the requested container or image"""
    code = 404

class BackendServerError(BackendError):
    """The backend rejected the request or failed while serving it"""

class BackendUnavailableError(BackendServerError):
    """The backend could not be reached at all"""
    code = 503

class SSHConnectionError(ProviderError):
    """Base class for SSH connection errors"""

class SSHExecutionError(SSHConnectionError):
    """SSH command execution failure"""

class FileTransferError(SSHConnectionError):
    """File transfer operation failed"""
