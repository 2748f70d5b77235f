"""
Configuration module for the sandbox VM provider
"""
import os
import socket
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

from ciworker import constants
from ciworker.services.exceptions import ConfigurationError


_TRUE_VALUES = {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer", {"value": raw})


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number", {"value": raw})


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def parse_mapping(name: str, raw: Optional[str]) -> Dict[str, str]:
    """
    Parse a "key=value,key=value" environment value

    Args:
        name: Variable name, used in error messages
        raw: Raw value, may be None or empty

    Returns:
        Dictionary of stripped keys and values
    """
    mapping: Dict[str, str] = {}
    if not raw:
        return mapping
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        key, sep, value = item.partition("=")
        if not sep or not key.strip() or not value.strip():
            raise ConfigurationError(f"{name} entries must look like key=value", {"entry": item})
        mapping[key.strip()] = value.strip()
    return mapping


def _parse_timeouts(raw: Optional[str]) -> Dict[str, float]:
    timeouts = dict(constants.DEFAULT_TIMEOUTS)
    for key, value in parse_mapping("TIMEOUTS", raw).items():
        try:
            timeouts[key] = float(value)
        except ValueError:
            raise ConfigurationError("TIMEOUTS values must be numbers", {key: value})
    return timeouts


@dataclass
class WorkerConfig:
    """Read-only settings the VM provider needs; built once and passed in"""
    host: str = field(default_factory=socket.getfqdn)
    vm_count: int = constants.DEFAULT_VM_COUNT
    name_prefix: str = constants.DEFAULT_NAME_PREFIX
    docker_privileged: bool = False
    docker_base_url: Optional[str] = None
    private_key_path: str = constants.DEFAULT_SSH_KEY_PATH
    ssh_host: str = constants.DEFAULT_SSH_HOST
    shell_buffer: float = constants.DEFAULT_SHELL_BUFFER
    timeouts: Dict[str, float] = field(default_factory=lambda: dict(constants.DEFAULT_TIMEOUTS))
    image_override: Optional[str] = None
    image_namespace: str = constants.DEFAULT_IMAGE_NAMESPACE
    default_image_tag: str = constants.DEFAULT_IMAGE_TAG
    language_mappings: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.vm_count < 0:
            raise ConfigurationError("vm_count must not be negative", {"vm_count": self.vm_count})
        if self.shell_buffer <= 0:
            raise ConfigurationError("shell_buffer must be positive", {"shell_buffer": self.shell_buffer})

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "WorkerConfig":
        """
        Build the configuration from environment variables, after loading a .env file

        Returns:
            WorkerConfig with defaults for every unset variable
        """
        load_dotenv(dotenv_path)
        return cls(
            host=os.getenv("WORKER_HOST") or socket.getfqdn(),
            vm_count=_get_int("VMS_COUNT", constants.DEFAULT_VM_COUNT),
            name_prefix=os.getenv("VMS_NAME_PREFIX", constants.DEFAULT_NAME_PREFIX),
            docker_privileged=_get_bool("DOCKER_PRIVILEGED"),
            docker_base_url=os.getenv("DOCKER_HOST") or None,
            private_key_path=os.getenv("DOCKER_PRIVATE_KEY_PATH", constants.DEFAULT_SSH_KEY_PATH),
            ssh_host=os.getenv("DOCKER_SSH_HOST", constants.DEFAULT_SSH_HOST),
            shell_buffer=_get_float("SHELL_BUFFER", constants.DEFAULT_SHELL_BUFFER),
            timeouts=_parse_timeouts(os.getenv("TIMEOUTS")),
            image_override=os.getenv("IMAGE_OVERRIDE") or None,
            image_namespace=os.getenv("IMAGE_NAMESPACE", constants.DEFAULT_IMAGE_NAMESPACE),
            default_image_tag=os.getenv("DEFAULT_IMAGE_TAG", constants.DEFAULT_IMAGE_TAG),
            language_mappings=parse_mapping("LANGUAGE_MAPPINGS", os.getenv("LANGUAGE_MAPPINGS")),
        )
