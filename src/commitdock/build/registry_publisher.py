"""
Docker registry publishing.

Handles registry credentials and pushing image references.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..deadline import Deadline
from ..exceptions import ProgressDecodeError, PushError
from ..models import AuthConfig
from ..progress import (
    NullObserver,
    ProgressObserver,
    PushErrorLine,
    decode_push_stream,
)
from .docker_daemon import TRANSPORT_ERRORS, ImageDaemon

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryCredentials:
    """Registry login used for every push."""

    username: str
    password: str
    server_address: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"RegistryCredentials(username={self.username!r}, password='***', "
            f"server_address={self.server_address!r})"
        )


class RegistryPublisher:
    """Push built images to a registry through the daemon."""

    def __init__(
        self,
        daemon: ImageDaemon,
        credentials: RegistryCredentials,
        observer: Optional[ProgressObserver] = None,
    ):
        self.daemon = daemon
        self.credentials = credentials
        self.observer = observer or NullObserver()

    def auth_config(self) -> AuthConfig:
        """Fresh credentials for one push; never reused across tags."""
        return AuthConfig(
            username=self.credentials.username,
            password=self.credentials.password,
            server_address=self.credentials.server_address,
        )

    def push(self, reference: str, deadline: Deadline, **error_context) -> None:
        """
        Push one ``name:tag`` reference.

        The response is read line by line. The first line carrying an error
        marker fails the push at once and the rest of the stream is dropped.

        Args:
            reference: Full image reference to push
            deadline: Shared run budget
            **error_context: Repository/commit annotations for raised errors

        Raises:
            PushError: Registry rejected the push or transport failed
            DeadlineExceeded: Budget elapsed before or during the push
        """
        error_context["reference"] = reference
        remaining = deadline.check("push", **error_context)

        log.info(f"Pushing to registry: {reference}")

        chunks = None
        try:
            chunks = self.daemon.push(
                reference, auth=self.auth_config(), timeout=remaining
            )
            for event in decode_push_stream(chunks):
                if isinstance(event, PushErrorLine):
                    raise PushError(event.message, **error_context)
                self.observer(event)
                deadline.check("push", **error_context)
        except ProgressDecodeError as e:
            raise PushError(str(e), **error_context) from e
        except TRANSPORT_ERRORS as e:
            exceeded = deadline.exceeded("push", **error_context)
            if exceeded is not None:
                raise exceeded from e
            raise PushError(f"failed to push image: {e}", **error_context) from e
        finally:
            # Abandon the rest of the response once we stop reading
            close = getattr(chunks, "close", None)
            if close is not None:
                close()

        log.info(f"Image pushed successfully: {reference}")
