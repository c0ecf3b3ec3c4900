"""Unit tests for the line-oriented progress decoder and observers."""

import io

import pytest
from rich.console import Console

from commitdock.exceptions import ProgressDecodeError
from commitdock.progress import (
    BuildErrorLine,
    BuildLogLine,
    ConsoleObserver,
    FetchProgressLine,
    PushErrorLine,
    PushStatusLine,
    StreamObserver,
    decode_build_stream,
    decode_push_stream,
    iter_lines,
)


class TestIterLines:
    """Test re-splitting transport chunks into lines."""

    def test_chunks_split_mid_line(self):
        chunks = [b'{"a"', b': 1}\n{"b": 2}\n{"c"', b": 3}\n"]

        assert list(iter_lines(chunks)) == [b'{"a": 1}', b'{"b": 2}', b'{"c": 3}']

    def test_several_lines_in_one_chunk(self):
        chunks = [b'{"a": 1}\r\n{"b": 2}\r\n']

        assert list(iter_lines(chunks)) == [b'{"a": 1}', b'{"b": 2}']

    def test_trailing_line_without_newline(self):
        assert list(iter_lines([b'{"a": 1}\n{"b": 2}'])) == [b'{"a": 1}', b'{"b": 2}']

    def test_blank_lines_skipped(self):
        assert list(iter_lines([b"\n\n  \n", b'{"a": 1}\n\n'])) == [b'{"a": 1}']

    def test_long_line_in_many_small_chunks(self):
        line = b'{"stream": "' + b"x" * 200_000 + b'"}'
        chunks = [line[i : i + 1] for i in range(len(line))] + [b"\n", b'{"a": 1}']

        assert list(iter_lines(chunks)) == [line, b'{"a": 1}']

    def test_is_lazy(self):
        def chunks():
            yield b'{"a": 1}\n'
            raise AssertionError("read past the first line")

        lines = iter_lines(chunks())
        assert next(lines) == b'{"a": 1}'


class TestDecodeBuildStream:
    """Test decoding build responses."""

    def test_n_lines_give_n_events_in_order(self, ndjson):
        texts = [f"Step {i}/5\n" for i in range(1, 6)]
        chunks = ndjson(*({"stream": text} for text in texts))

        events = list(decode_build_stream(chunks))

        assert events == [BuildLogLine(text) for text in texts]

    def test_text_forwarded_verbatim(self, ndjson):
        events = list(decode_build_stream(ndjson({"stream": " ---> 1a2b3c\n"})))

        assert events == [BuildLogLine(" ---> 1a2b3c\n")]

    def test_error_marker(self, ndjson):
        chunks = ndjson(
            {"stream": "Step 1/2 : RUN false\n"},
            {"errorDetail": {"code": 1, "message": "returned a non-zero code: 1"},
             "error": "returned a non-zero code: 1"},
        )

        events = list(decode_build_stream(chunks))

        assert events[-1] == BuildErrorLine("returned a non-zero code: 1")

    def test_lines_without_stream_produce_no_event(self, ndjson):
        chunks = ndjson({"aux": {"ID": "sha256:abc"}}, {"stream": "done\n"})

        assert list(decode_build_stream(chunks)) == [BuildLogLine("done\n")]

    def test_malformed_line_raises(self):
        chunks = [b'{"stream": "ok\\n"}\n', b"{not json\n"]
        events = decode_build_stream(chunks)

        assert next(events) == BuildLogLine("ok\n")
        with pytest.raises(ProgressDecodeError):
            next(events)

    def test_non_object_line_raises(self):
        with pytest.raises(ProgressDecodeError, match="expected object"):
            list(decode_build_stream([b'["stream"]\n']))


class TestDecodePushStream:
    """Test decoding push responses."""

    def test_status_lines(self, ndjson):
        chunks = ndjson(
            {"status": "The push refers to repository [docker.io/library/app]"},
            {"status": "Pushing", "progressDetail": {"current": 1}, "id": "1a2b"},
        )

        assert list(decode_push_stream(chunks)) == [
            PushStatusLine("The push refers to repository [docker.io/library/app]"),
            PushStatusLine("Pushing"),
        ]

    def test_error_line(self, ndjson):
        chunks = ndjson(
            {"status": "Preparing"},
            {"error": "denied: requested access to the resource is denied"},
        )

        assert list(decode_push_stream(chunks)) == [
            PushStatusLine("Preparing"),
            PushErrorLine("denied: requested access to the resource is denied"),
        ]

    def test_empty_error_is_not_a_failure(self, ndjson):
        chunks = ndjson({"status": "Pushed", "error": ""})

        assert list(decode_push_stream(chunks)) == [PushStatusLine("Pushed")]


class TestObservers:
    """Test rendering of progress events."""

    def test_stream_observer_rendering(self):
        stream = io.StringIO()
        observer = StreamObserver(stream)

        observer(FetchProgressLine("Receiving objects: 100%"))
        observer(BuildLogLine("Step 1/1 : FROM scratch\n"))
        observer(PushStatusLine("Pushed"))
        observer(PushErrorLine("denied"))

        assert stream.getvalue() == (
            "Receiving objects: 100%\n"
            "Step 1/1 : FROM scratch\n"
            "Pushed\n"
            "ERROR: denied\n"
        )

    def test_console_observer_writes_text(self):
        console = Console(file=io.StringIO(), force_terminal=False, width=120)
        observer = ConsoleObserver(console)

        observer(BuildLogLine("Step [1/1] : FROM scratch\n"))
        observer(PushErrorLine("denied"))

        output = console.file.getvalue()
        assert "Step [1/1] : FROM scratch" in output
        assert "ERROR: denied" in output
