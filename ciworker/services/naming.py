from typing import List

from ciworker.constants import HOSTNAME_PREFIX


def generate_hostname(instance_name: str, worker_host: str, process_id: int) -> str:
    """
    Derive the hostname a sandbox container boots with.

    The worker's first host label, the worker process id and the sandbox name
    make the name unique across workers and processes on the same host; the
    remaining labels keep the container inside the worker's domain.

    Args:
        instance_name: Logical sandbox name, e.g. "worker-3"
        worker_host: Fully-qualified host name of the worker
        process_id: Id of the worker process

    Returns:
        Hostname such as "testing-ci01-4242-worker-3.example.org"
    """
    first, *rest = worker_host.split(".")
    name = f"{HOSTNAME_PREFIX}-{first}-{process_id}-{instance_name}"
    if rest:
        name = f"{name}.{'.'.join(rest)}"
    return name


def vm_names(count: int, name_prefix: str) -> List[str]:
    """Names for ``count`` sandbox slots: prefix-1 .. prefix-count"""
    return [f"{name_prefix}-{num + 1}" for num in range(count)]
