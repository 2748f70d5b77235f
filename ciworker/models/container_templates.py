"""
Container creation requests for sandbox VMs
"""
from ciworker.constants import (
    CONTAINER_COMMAND,
    CONTAINER_CPU_SHARES,
    CONTAINER_MEMORY,
    CONTAINER_SSH_PORT,
)
from ciworker.models.sandbox_info import ContainerSpec


def get_default_container_spec(image_id: str, hostname: str, privileged: bool = False) -> ContainerSpec:
    """
    Build the container request used for every sandbox boot

    Args:
        image_id: Id of the resolved image
        hostname: Hostname computed for the sandbox instance
        privileged: Run the container privileged (docker-in-docker builds)

    Returns:
        ContainerSpec running init as PID 1 with the fixed resource limits
    """
    return ContainerSpec(
        command=list(CONTAINER_COMMAND),
        image_id=image_id,
        cpu_shares=CONTAINER_CPU_SHARES,
        memory=CONTAINER_MEMORY,
        hostname=hostname,
        ports=[CONTAINER_SSH_PORT],
        privileged=privileged,
    )
