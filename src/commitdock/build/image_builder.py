"""
Docker image building operations.

Submits a build context to the daemon and relays its build log.
"""

import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional, Sequence

from ..deadline import Deadline
from ..exceptions import BuildError, ProgressDecodeError
from ..progress import (
    BuildErrorLine,
    NullObserver,
    ProgressObserver,
    decode_build_stream,
)
from .docker_daemon import TRANSPORT_ERRORS, ImageDaemon

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageBuildOptions:
    """Fixed daemon options for every build."""

    dockerfile: str = "Dockerfile"
    nocache: bool = True
    forcerm: bool = True
    pull: bool = True


class ImageBuilder:
    """Build Docker images from gzip build contexts."""

    def __init__(
        self,
        daemon: ImageDaemon,
        observer: Optional[ProgressObserver] = None,
        options: Optional[ImageBuildOptions] = None,
    ):
        self.daemon = daemon
        self.observer = observer or NullObserver()
        self.options = options or ImageBuildOptions()

    def build(
        self, context: BinaryIO, tags: Sequence[str], deadline: Deadline, **error_context
    ) -> None:
        """
        Build one image carrying all ``tags``.

        Args:
            context: Readable gzip tar build context
            tags: Full ``name:tag`` references to apply
            deadline: Shared run budget
            **error_context: Repository/commit annotations for raised errors

        Raises:
            BuildError: Daemon rejected the build, transport failed, or a log
                line was malformed or carried an error marker
            DeadlineExceeded: Budget elapsed before or during the build
        """
        if not tags:
            raise BuildError("no image references to build", **error_context)
        remaining = deadline.check("build", **error_context)

        log.info(f"Building Docker image: {', '.join(tags)}")
        log.debug(f"   Options: {self.options}")

        chunks = None
        try:
            chunks = self.daemon.build(
                context,
                tags=list(tags),
                dockerfile=self.options.dockerfile,
                nocache=self.options.nocache,
                forcerm=self.options.forcerm,
                pull=self.options.pull,
                timeout=remaining,
            )
            for event in decode_build_stream(chunks):
                if isinstance(event, BuildErrorLine):
                    raise BuildError(event.message, **error_context)
                self.observer(event)
                deadline.check("build", **error_context)
        except ProgressDecodeError as e:
            raise BuildError(str(e), **error_context) from e
        except TRANSPORT_ERRORS as e:
            exceeded = deadline.exceeded("build", **error_context)
            if exceeded is not None:
                raise exceeded from e
            raise BuildError(
                f"failed to build image in docker daemon: {e}", **error_context
            ) from e
        finally:
            close = getattr(chunks, "close", None)
            if close is not None:
                close()

        log.info(f"Image built successfully: {tags[0]}")
