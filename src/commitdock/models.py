"""Data model shared by the build pipeline stages."""

import base64
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ConfigurationError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildRequest:
    """One build of one commit, read-only for the whole run.

    Attributes:
        repository: Source repository reference (e.g. ``github.com/example/app``)
        commit: Immutable commit id to build
        image: Target image name, without tag
        tags: Tags to publish, in push order
        timeout: Budget for the whole run, in seconds
    """

    repository: str
    commit: str
    image: str
    tags: Tuple[str, ...]
    timeout: float = 300.0

    def __post_init__(self):
        # Accept any iterable for tags but store it immutably
        object.__setattr__(self, "tags", tuple(self.tags))
        if not self.tags:
            raise ConfigurationError("at least one tag is required")

    def references(self) -> Tuple[str, ...]:
        """Full ``image:tag`` references, in the same order as ``tags``."""
        return tuple(f"{self.image}:{tag}" for tag in self.tags)


class AuthConfig(BaseModel):
    """Registry credentials presented with a push.

    Serialized with the field names the Docker Engine API expects for the
    ``X-Registry-Auth`` header.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    username: str
    password: str
    server_address: Optional[str] = Field(default=None, alias="serveraddress")

    def as_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def encode(self) -> str:
        """Base64url-encoded JSON, the form the daemon reads from the header."""
        return base64.urlsafe_b64encode(self.to_json().encode("utf-8")).decode("ascii")

    def __repr__(self) -> str:
        return (
            f"AuthConfig(username={self.username!r}, password='***', "
            f"server_address={self.server_address!r})"
        )


@dataclass(frozen=True)
class ArchiveEntry:
    """One member of a build context archive."""

    path: str
    is_dir: bool
    mode: int = 0o644
    size: int = 0
    content: Optional[bytes] = None


@dataclass(frozen=True)
class BuildContext:
    """A finished build context archive sitting inside its source tree."""

    path: Path
    entry_count: int
    size_bytes: int


class SourceTree:
    """Checked-out commit on ephemeral local storage.

    Owned by exactly one pipeline run and removed when the run ends. Usable as
    a context manager; :meth:`cleanup` is safe to call more than once.
    """

    def __init__(self, repository: str, commit: str, prefix: str = "commitdock-"):
        self.repository = repository
        self.commit = commit
        self._tmpdir: Optional[tempfile.TemporaryDirectory] = (
            tempfile.TemporaryDirectory(prefix=prefix)
        )
        self.root = Path(self._tmpdir.name)

    @property
    def closed(self) -> bool:
        return self._tmpdir is None

    def cleanup(self) -> None:
        if self._tmpdir is None:
            return
        log.debug(f"Removing source tree {self.root}")
        self._tmpdir.cleanup()
        self._tmpdir = None

    def __enter__(self) -> "SourceTree":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def __repr__(self) -> str:
        return f"SourceTree(repository={self.repository!r}, commit={self.commit!r}, root={str(self.root)!r})"
