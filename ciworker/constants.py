# Docker Constants
DEFAULT_IMAGE_NAMESPACE = "travis"
DEFAULT_IMAGE_TAG = "ruby"
CONTAINER_COMMAND = ["/sbin/init"]
CONTAINER_CPU_SHARES = 1
CONTAINER_MEMORY = 2147483648  # 2 GiB
CONTAINER_SSH_PORT = "22"

# Boot Constants
BOOT_ATTEMPTS = 3
BOOT_RETRY_DELAY = 0  # seconds
BOOT_POLL_ATTEMPTS = 10
BOOT_POLL_INTERVAL = 2  # seconds

# Teardown Constants
REMOVE_ATTEMPTS = 5
REMOVE_RETRY_DELAY = 3  # seconds

# SSH Constants
DEFAULT_SSH_HOST = "127.0.0.1"
DEFAULT_SSH_USER = "travis"
DEFAULT_SSH_KEY_PATH = "~/.ssh/id_rsa"
DEFAULT_SHELL_BUFFER = 0.5  # seconds between output flushes
DEFAULT_TIMEOUTS = {
    "connect": 10.0,
    "banner": 10.0,
    "command": 3000.0,
}

# Worker Constants
DEFAULT_VM_COUNT = 1
DEFAULT_NAME_PREFIX = "worker"
HOSTNAME_PREFIX = "testing"

# Metric names
METRIC_BOOT = "vm.provider.boot"
METRIC_BOOT_TIMEOUT = "vm.provider.boot.timeout"
METRIC_BOOT_ERROR = "vm.provider.boot.error"
METRIC_REMOVE_ERROR = "vm.provider.remove.error"
