"""
Progress events and the line-oriented JSON decoder for daemon responses.

The Docker daemon answers build and push requests with a stream of JSON
documents, one per line. The two endpoints use different, overlapping line
shapes, so each has its own permissive decoder producing typed events:

    build:  {"stream": "Step 1/4 : FROM alpine\\n"}
            {"error": "...", "errorDetail": {...}}
    push:   {"status": "Pushing", "progressDetail": {...}, "id": "..."}
            {"error": "denied: requested access to the resource is denied"}

Decoders are lazy generators: finite, not restartable, and they hold no more
than the current line.
"""

import json
import logging
import sys
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Protocol, TextIO, Union

from rich.console import Console

from .exceptions import ProgressDecodeError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchProgressLine:
    """Human-readable clone progress, informational only."""

    text: str


@dataclass(frozen=True)
class BuildLogLine:
    text: str


@dataclass(frozen=True)
class BuildErrorLine:
    message: str


@dataclass(frozen=True)
class PushStatusLine:
    text: str


@dataclass(frozen=True)
class PushErrorLine:
    message: str


ProgressEvent = Union[
    FetchProgressLine, BuildLogLine, BuildErrorLine, PushStatusLine, PushErrorLine
]


def iter_lines(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """
    Re-split a stream of byte chunks into complete lines.

    The docker SDK yields raw transport chunks which may hold several lines or
    stop in the middle of one. A trailing line without newline is yielded at
    end of stream. Blank lines are skipped.

    Args:
        chunks: Raw response chunks, in arrival order

    Yields:
        One line at a time, without the line terminator
    """
    pending = bytearray()
    for chunk in chunks:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        if b"\n" not in chunk:
            pending += chunk
            continue

        head, *lines, tail = chunk.split(b"\n")
        pending += head
        for line in (bytes(pending), *lines):
            line = line.strip()
            if line:
                yield line
        pending = bytearray(tail)

    line = bytes(pending).strip()
    if line:
        yield line


def _load_object(line: bytes) -> dict:
    try:
        document = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProgressDecodeError(line, str(e)) from e

    if not isinstance(document, dict):
        raise ProgressDecodeError(line, f"expected object, got {type(document).__name__}")
    return document


def _error_message(document: dict) -> Optional[str]:
    """Return the in-stream error marker, if the line carries a non-empty one."""
    error = document.get("error")
    if error:
        return str(error)
    detail = document.get("errorDetail")
    if isinstance(detail, dict) and detail.get("message"):
        return str(detail["message"])
    return None


def decode_build_stream(chunks: Iterable[bytes]) -> Iterator[ProgressEvent]:
    """
    Decode a build response into BuildLogLine / BuildErrorLine events.

    Raises:
        ProgressDecodeError: On the first line that is not a JSON object
    """
    for line in iter_lines(chunks):
        document = _load_object(line)

        message = _error_message(document)
        if message is not None:
            yield BuildErrorLine(message)
            continue

        text = document.get("stream")
        if isinstance(text, str):
            yield BuildLogLine(text)
        else:
            log.debug(f"Ignoring build line without stream text: {sorted(document)}")


def decode_push_stream(chunks: Iterable[bytes]) -> Iterator[ProgressEvent]:
    """
    Decode a push response into PushStatusLine / PushErrorLine events.

    Raises:
        ProgressDecodeError: On the first line that is not a JSON object
    """
    for line in iter_lines(chunks):
        document = _load_object(line)

        message = _error_message(document)
        if message is not None:
            yield PushErrorLine(message)
            continue

        status = document.get("status")
        if status is not None:
            yield PushStatusLine(str(status))


class ProgressObserver(Protocol):
    """Write-only sink for progress events, called synchronously per event."""

    def __call__(self, event: ProgressEvent) -> None: ...


def render(event: ProgressEvent) -> str:
    """Text for an event as it should appear in a build log."""
    if isinstance(event, BuildLogLine):
        # Daemon build text already carries its own newlines
        return event.text
    if isinstance(event, (FetchProgressLine, PushStatusLine)):
        return f"{event.text}\n"
    return f"ERROR: {event.message}\n"


class StreamObserver:
    """Write progress text to a text stream (stdout by default)."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream if stream is not None else sys.stdout

    def __call__(self, event: ProgressEvent) -> None:
        self.stream.write(render(event))
        self.stream.flush()


class ConsoleObserver:
    """Write progress through a rich console, dimming informational lines."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def __call__(self, event: ProgressEvent) -> None:
        text = render(event)
        if isinstance(event, (BuildErrorLine, PushErrorLine)):
            self.console.print(text, style="red", end="", markup=False, highlight=False)
        elif isinstance(event, FetchProgressLine):
            self.console.print(text, style="dim", end="", markup=False, highlight=False)
        else:
            self.console.out(text, end="", highlight=False)


class NullObserver:
    """Discard all events."""

    def __call__(self, event: ProgressEvent) -> None:
        pass
