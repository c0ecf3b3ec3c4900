"""
Build settings.

Handles environment-based configuration, tag resolution and image naming.
"""

import os
import re
from dataclasses import dataclass
from typing import List, Optional

from .exceptions import ConfigurationError

DEFAULT_DOCKER_USERNAME = "00000000-0000-0000-0000-000000000000"
DEFAULT_DOCKER_HOST = "unix:///var/run/docker.sock"
DEFAULT_DOCKER_API_VERSION = "1.41"
DEFAULT_TIMEOUT_SECONDS = 300.0
GIT_TRANSPORTS = ("https", "ssh")

_TRUE_VALUES = ("true", "1", "yes")
_DURATION_PATTERN = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in _TRUE_VALUES


def parse_duration(value: str) -> float:
    """
    Parse a duration into seconds.

    Accepts plain seconds (``"300"``) or unit-suffixed parts such as
    ``"5m"``, ``"1m30s"`` or ``"1h"``.

    Raises:
        ConfigurationError: If the value is not a valid non-negative duration
    """
    text = str(value).strip().lower()
    if not text:
        raise ConfigurationError("Empty duration")

    try:
        seconds = float(text)
    except ValueError:
        parts = _DURATION_PATTERN.findall(text)
        if not parts or "".join(number + unit for number, unit in parts) != text:
            raise ConfigurationError(f"Invalid duration: {value!r}")
        seconds = sum(float(number) * _DURATION_UNITS[unit] for number, unit in parts)

    if seconds < 0:
        raise ConfigurationError(f"Duration must not be negative: {value!r}")
    return seconds


def parse_tags(extra: Optional[str], commit: str) -> List[str]:
    """
    Resolve the tags to publish.

    Extra tags come from a comma-separated list (whitespace ignored) and are
    followed by the default tags ``latest`` and the commit id. Duplicates are
    dropped, keeping the first occurrence.

    Examples:
        >>> parse_tags("v1, v2", "abc123")
        ['v1', 'v2', 'latest', 'abc123']
    """
    tags = []
    if extra:
        tags.extend(tag for tag in re.sub(r"\s+", "", extra).split(",") if tag)
    tags.extend(["latest", commit])

    unique = []
    for tag in tags:
        if tag not in unique:
            unique.append(tag)
    return unique


def repository_name(repository: str) -> str:
    """Last path segment of a repository reference, without ``.git``."""
    name = repository.rstrip("/").split("/")[-1].split(":")[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name


def default_image_name(repository: str, registry: Optional[str] = None) -> str:
    """
    Image name to build when none is given explicitly.

    Args:
        repository: Source repository reference
        registry: Registry prefix (e.g. ``docker.io/myorg``), if configured

    Returns:
        ``<registry>/<repository name>`` or just the repository name
    """
    name = repository_name(repository).lower()
    if registry:
        return f"{registry.rstrip('/')}/{name}"
    return name


@dataclass
class BuildSettings:
    """Settings shared by every run, independent of the commit being built."""

    git_transport: str = "https"
    git_ssh_key: Optional[str] = None
    docker_registry: Optional[str] = None
    docker_username: str = DEFAULT_DOCKER_USERNAME
    docker_password: str = ""
    docker_host: str = DEFAULT_DOCKER_HOST
    docker_api_version: str = DEFAULT_DOCKER_API_VERSION
    no_cache: bool = True
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    def __post_init__(self):
        if self.git_transport not in GIT_TRANSPORTS:
            raise ConfigurationError(
                f"Unsupported git transport {self.git_transport!r}, "
                f"expected one of {', '.join(GIT_TRANSPORTS)}"
            )
        if self.timeout < 0:
            raise ConfigurationError(f"Timeout must not be negative: {self.timeout}")

    @classmethod
    def from_environment(cls) -> "BuildSettings":
        """
        Create settings from environment variables.

        Environment variables:
            COMMITDOCK_GIT_TRANSPORT: ``https`` (default) or ``ssh``
            COMMITDOCK_GIT_SSH_KEY: Private key file for ssh transport
            COMMITDOCK_DOCKER_REGISTRY: Registry address (e.g. docker.io/myorg)
            COMMITDOCK_DOCKER_USERNAME: Registry user to push with
            COMMITDOCK_DOCKER_PASSWORD: Registry password to push with
            COMMITDOCK_DOCKER_HOST: Docker daemon address
            COMMITDOCK_DOCKER_API_VERSION: Docker Engine API version
            COMMITDOCK_NO_CACHE: Build without layer cache (true/false)
            COMMITDOCK_TIMEOUT: Budget for the whole job (e.g. 300, 5m)

        Returns:
            BuildSettings instance
        """
        timeout = os.getenv("COMMITDOCK_TIMEOUT")

        return cls(
            git_transport=os.getenv("COMMITDOCK_GIT_TRANSPORT", "https").lower(),
            git_ssh_key=os.getenv("COMMITDOCK_GIT_SSH_KEY") or None,
            docker_registry=os.getenv("COMMITDOCK_DOCKER_REGISTRY") or None,
            docker_username=os.getenv(
                "COMMITDOCK_DOCKER_USERNAME", DEFAULT_DOCKER_USERNAME
            ),
            docker_password=os.getenv("COMMITDOCK_DOCKER_PASSWORD", ""),
            docker_host=os.getenv("COMMITDOCK_DOCKER_HOST", DEFAULT_DOCKER_HOST),
            docker_api_version=os.getenv(
                "COMMITDOCK_DOCKER_API_VERSION", DEFAULT_DOCKER_API_VERSION
            ),
            no_cache=_env_flag("COMMITDOCK_NO_CACHE", True),
            timeout=parse_duration(timeout) if timeout else DEFAULT_TIMEOUT_SECONDS,
        )

    def registry_server_address(self) -> Optional[str]:
        """Server address sent with registry credentials, if a registry is set."""
        if not self.docker_registry:
            return None
        return f"{self.docker_registry.rstrip('/')}/v1/"
