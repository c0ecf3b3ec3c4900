"""
Build pipeline orchestrator.

Main class that coordinates fetching, archiving, building and pushing one
commit under a single deadline.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from ..config import BuildSettings
from ..deadline import Deadline
from ..exceptions import PipelineError
from ..models import BuildRequest, SourceTree
from ..progress import ProgressObserver, StreamObserver
from .context_archiver import ContextArchiver, archive_name_for
from .docker_daemon import DockerDaemon, ImageDaemon
from .image_builder import ImageBuilder, ImageBuildOptions
from .registry_publisher import RegistryCredentials, RegistryPublisher
from .source_fetcher import SourceFetcher

log = logging.getLogger(__name__)


class Stage(str, Enum):
    """Pipeline state machine. Transitions only move forward."""

    PENDING = "pending"
    FETCHING = "fetching"
    ARCHIVING = "archiving"
    BUILDING = "building"
    PUSHING = "pushing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of a fully successful run."""

    image: str
    commit: str
    references: Tuple[str, ...]
    elapsed: float


class Pipeline:
    """
    Orchestrate one build of one commit.

    This class coordinates:
    1. Fetching the exact commit into a fresh source tree
    2. Archiving the tree into a gzip build context
    3. Building one image carrying every requested tag
    4. Pushing each tag, in order, stopping at the first failure

    A run either reaches ``DONE`` or raises the first stage error unchanged.
    Tags pushed before a failing tag stay published.
    """

    def __init__(
        self,
        fetcher: SourceFetcher,
        archiver: ContextArchiver,
        builder: ImageBuilder,
        publisher: RegistryPublisher,
    ):
        """
        Initialize the pipeline with its stage components.

        Args:
            fetcher: Source fetch handler
            archiver: Build context handler
            builder: Docker build handler
            publisher: Registry push handler
        """
        self.fetcher = fetcher
        self.archiver = archiver
        self.builder = builder
        self.publisher = publisher

        self.stage = Stage.PENDING
        self.pushing_index: Optional[int] = None
        self.pushed: List[str] = []

    @classmethod
    def from_settings(
        cls,
        settings: BuildSettings,
        observer: Optional[ProgressObserver] = None,
        daemon: Optional[ImageDaemon] = None,
    ) -> "Pipeline":
        """
        Wire a pipeline against the real git client and Docker daemon.

        Args:
            settings: Build settings
            observer: Progress sink shared by all stages (stdout by default)
            daemon: Daemon to use instead of one built from settings
        """
        observer = observer or StreamObserver()
        daemon = daemon or DockerDaemon(
            base_url=settings.docker_host, version=settings.docker_api_version
        )

        return cls(
            fetcher=SourceFetcher(
                transport=settings.git_transport,
                ssh_key=settings.git_ssh_key,
                observer=observer,
            ),
            archiver=ContextArchiver(),
            builder=ImageBuilder(
                daemon,
                observer=observer,
                options=ImageBuildOptions(nocache=settings.no_cache),
            ),
            publisher=RegistryPublisher(
                daemon,
                RegistryCredentials(
                    username=settings.docker_username,
                    password=settings.docker_password,
                    server_address=settings.registry_server_address(),
                ),
                observer=observer,
            ),
        )

    def _enter(self, stage: Stage) -> None:
        log.debug(f"Pipeline stage: {self.stage.value} -> {stage.value}")
        self.stage = stage

    def run(self, request: BuildRequest) -> PipelineResult:
        """
        Execute the complete build pipeline.

        Args:
            request: What to build and where to publish it

        Returns:
            PipelineResult listing every pushed reference

        Raises:
            PipelineError: The first stage failure, including DeadlineExceeded
        """
        if self.stage is not Stage.PENDING:
            raise RuntimeError("a Pipeline instance runs exactly once")

        started = time.monotonic()
        deadline = Deadline(request.timeout)
        context = {"repository": request.repository, "commit": request.commit}

        log.info(f"🔨 Building {request.repository}@{request.commit}")
        log.info(f"   Image: {request.image}")
        log.info(f"   Tags: {', '.join(request.tags)}")

        tree: Optional[SourceTree] = None
        try:
            # Step 1: Fetch the exact commit
            self._enter(Stage.FETCHING)
            tree = self.fetcher.fetch(request.repository, request.commit, deadline)

            # Step 2: Package the tree as a build context inside itself
            self._enter(Stage.ARCHIVING)
            build_context = self.archiver.archive(
                tree, archive_name_for(request.repository)
            )

            references = request.references()

            # Step 3: Build once with every tag
            self._enter(Stage.BUILDING)
            with open(build_context.path, "rb") as archive:
                self.builder.build(archive, references, deadline, **context)

            # Step 4: Push tags one at a time, in order
            self._enter(Stage.PUSHING)
            for index, reference in enumerate(references):
                self.pushing_index = index
                self.publisher.push(reference, deadline, **context)
                self.pushed.append(reference)
        except PipelineError as e:
            self._enter(Stage.FAILED)
            log.error(str(e))
            if self.pushed:
                log.warning(f"   Already published: {', '.join(self.pushed)}")
            raise
        except BaseException:
            self._enter(Stage.FAILED)
            raise
        finally:
            if tree is not None:
                tree.cleanup()

        self._enter(Stage.DONE)
        elapsed = time.monotonic() - started

        log.info("✅ Build complete")
        log.info(f"   Pushed: {', '.join(self.pushed)}")
        log.info(f"   Elapsed: {elapsed:.1f}s")

        return PipelineResult(
            image=request.image,
            commit=request.commit,
            references=tuple(self.pushed),
            elapsed=elapsed,
        )


def build_and_publish(
    request: BuildRequest,
    settings: Optional[BuildSettings] = None,
    observer: Optional[ProgressObserver] = None,
) -> PipelineResult:
    """
    Convenience function to run one build with settings from the environment.

    This is the main entry point for programmatic use.

    Example:
        >>> build_and_publish(
        ...     BuildRequest("github.com/example/app", "abc123", "app", ["v1"])
        ... )
    """
    settings = settings or BuildSettings.from_environment()
    pipeline = Pipeline.from_settings(settings, observer=observer)
    return pipeline.run(request)
