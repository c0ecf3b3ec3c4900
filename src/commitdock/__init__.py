# Load .env vars from file before everything else
from dotenv import load_dotenv

load_dotenv()

from .logger import setup_logging  # noqa: E402

setup_logging()

# TYPE_CHECKING imports provide full IDE support (autocomplete, type hints)
# while __getattr__ enables lazy loading at runtime for fast CLI startup
from typing import TYPE_CHECKING  # noqa: E402

if TYPE_CHECKING:
    from .build import Pipeline, PipelineResult, Stage
    from .config import BuildSettings
    from .exceptions import (
        ArchiveError,
        BuildError,
        DeadlineExceeded,
        FetchError,
        PipelineError,
        PushError,
    )
    from .models import BuildRequest


def __getattr__(name):
    """Lazily import core modules only when accessed."""
    if name in ("Pipeline", "PipelineResult", "Stage"):
        from . import build

        return getattr(build, name)
    elif name == "BuildSettings":
        from .config import BuildSettings

        return BuildSettings
    elif name == "BuildRequest":
        from .models import BuildRequest

        return BuildRequest
    elif name in (
        "ArchiveError",
        "BuildError",
        "DeadlineExceeded",
        "FetchError",
        "PipelineError",
        "PushError",
    ):
        from . import exceptions

        return getattr(exceptions, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "ArchiveError",
    "BuildError",
    "BuildRequest",
    "BuildSettings",
    "DeadlineExceeded",
    "FetchError",
    "Pipeline",
    "PipelineError",
    "PipelineResult",
    "PushError",
    "Stage",
]
