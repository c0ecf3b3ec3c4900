import logging
import os
import sys
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler


def is_rich_enabled() -> bool:
    """Check if Rich log output should be used based on environment."""
    return os.environ.get("COMMITDOCK_RICH_UI", "false").lower() in (
        "true",
        "1",
        "yes",
    )


def setup_logging(
    level: Union[int, str] = logging.INFO, stream=sys.stderr, fmt: Optional[str] = None
):
    """
    Sets up the root logger with a stream handler and basic formatting.
    Uses a Rich handler if enabled, otherwise falls back to standard logging.
    Does nothing if handlers are already configured.

    Logs go to stderr so build progress on stdout stays readable in CI logs.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    if not root_logger.hasHandlers():
        if is_rich_enabled():
            handler = RichHandler(
                console=Console(stderr=True),
                show_path=level == logging.DEBUG,
                rich_tracebacks=True,
            )
        else:
            if fmt is None:
                if level == logging.DEBUG:
                    fmt = "%(asctime)s | %(levelname)-5s | %(name)s | %(filename)s:%(lineno)d | %(message)s"
                else:
                    # Default format for INFO level and above
                    fmt = "%(asctime)s | %(levelname)-5s | %(message)s"

            handler = logging.StreamHandler(stream)
            handler.setFormatter(logging.Formatter(fmt))

        root_logger.setLevel(level)
        root_logger.addHandler(handler)

    # Optionally allow log level override via env var
    env_level = os.environ.get("LOG_LEVEL")
    if env_level:
        root_logger.setLevel(env_level.upper())

    # The docker SDK and urllib3 are chatty at DEBUG
    for logger_name in ("docker", "urllib3"):
        logging.getLogger(logger_name).setLevel(
            max(root_logger.level, logging.INFO)
        )
