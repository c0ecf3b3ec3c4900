"""Build pipeline: fetch source, archive it, build the image, push each tag."""

from .context_archiver import ContextArchiver, archive_name_for, read_archive
from .docker_daemon import DockerDaemon, ImageDaemon
from .image_builder import ImageBuilder, ImageBuildOptions
from .pipeline import Pipeline, PipelineResult, Stage, build_and_publish
from .registry_publisher import RegistryCredentials, RegistryPublisher
from .source_fetcher import SourceFetcher

__all__ = [
    "ContextArchiver",
    "DockerDaemon",
    "ImageBuildOptions",
    "ImageBuilder",
    "ImageDaemon",
    "Pipeline",
    "PipelineResult",
    "RegistryCredentials",
    "RegistryPublisher",
    "SourceFetcher",
    "Stage",
    "archive_name_for",
    "build_and_publish",
    "read_archive",
]
