"""
Docker daemon access.

Thin adapter over the docker SDK's low-level API client. The pipeline only
ever issues two calls, build and push, and reads both responses as raw
line-oriented JSON streams.
"""

import logging
from typing import BinaryIO, Iterable, Iterator, Optional, Protocol, Sequence, Tuple

import docker
import requests
import urllib3
from docker.errors import DockerException

from ..models import AuthConfig

log = logging.getLogger(__name__)

# Anything the SDK or the HTTP stack underneath it raises while talking to
# the daemon, including socket timeouts surfacing mid-stream.
TRANSPORT_ERRORS = (
    DockerException,
    requests.exceptions.RequestException,
    urllib3.exceptions.HTTPError,
    OSError,
)


def split_reference(reference: str) -> Tuple[str, Optional[str]]:
    """
    Split ``name:tag`` into repository and tag.

    Registry ports are not mistaken for tags.

    Examples:
        >>> split_reference("app:v1")
        ('app', 'v1')
        >>> split_reference("localhost:5000/app")
        ('localhost:5000/app', None)
    """
    repository, sep, tag = reference.rpartition(":")
    if not sep or "/" in tag:
        return reference, None
    return repository, tag


class ImageDaemon(Protocol):
    """The two daemon operations the pipeline depends on."""

    def build(
        self,
        context: BinaryIO,
        *,
        tags: Sequence[str],
        dockerfile: str,
        nocache: bool,
        forcerm: bool,
        pull: bool,
        timeout: float,
    ) -> Iterable[bytes]: ...

    def push(
        self, reference: str, *, auth: AuthConfig, timeout: float
    ) -> Iterable[bytes]: ...


class DockerDaemon:
    """ImageDaemon backed by ``docker.APIClient``."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        version: Optional[str] = None,
        client: Optional[docker.APIClient] = None,
    ):
        """
        Initialize the daemon adapter.

        Args:
            base_url: Daemon address (e.g. ``unix:///var/run/docker.sock``)
            version: Docker Engine API version
            client: Pre-built API client, mainly for tests
        """
        self.api = client or docker.APIClient(base_url=base_url, version=version)

    def build(
        self,
        context: BinaryIO,
        *,
        tags: Sequence[str],
        dockerfile: str = "Dockerfile",
        nocache: bool = True,
        forcerm: bool = True,
        pull: bool = True,
        timeout: float = 60.0,
    ) -> Iterator[bytes]:
        """
        Build an image from a gzip build context, yielding raw response chunks.

        The SDK applies a single tag per build request, so the image is built
        under the first reference and the remaining references are tagged
        once the build stream has been fully read.
        """
        if not tags:
            raise ValueError("at least one tag is required")

        primary, *others = tags
        log.debug(f"POST /build tag={primary} nocache={nocache} pull={pull}")

        yield from self.api.build(
            fileobj=context,
            custom_context=True,
            encoding="gzip",
            tag=primary,
            dockerfile=dockerfile,
            nocache=nocache,
            rm=True,
            forcerm=forcerm,
            pull=pull,
            timeout=timeout,
            decode=False,
        )

        for reference in others:
            repository, tag = split_reference(reference)
            log.debug(f"Tagging image: {primary} -> {reference}")
            self.api.tag(primary, repository, tag, force=True)

    def push(
        self, reference: str, *, auth: AuthConfig, timeout: float = 60.0
    ) -> Iterator[bytes]:
        """Push one reference, yielding raw response chunks."""
        repository, tag = split_reference(reference)
        log.debug(f"POST /images/{repository}/push tag={tag}")

        # APIClient.push has no timeout argument
        previous_timeout = self.api.timeout
        self.api.timeout = timeout
        try:
            # The SDK serializes the dict to the base64url X-Registry-Auth header
            yield from self.api.push(
                repository,
                tag=tag,
                stream=True,
                auth_config=auth.as_dict(),
                decode=False,
            )
        finally:
            self.api.timeout = previous_timeout
