"""
Test configuration and fixtures for commitdock tests.

Provides shared fixtures for:
- A fake Docker daemon with scripted build/push responses
- A recording progress observer
- Populated source trees
- A local git repository with known commits
"""

import json
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from commitdock.models import SourceTree


def ndjson(*documents) -> List[bytes]:
    """Encode documents as newline-terminated JSON lines."""
    return [json.dumps(document).encode("utf-8") + b"\n" for document in documents]


class FakeDaemon:
    """ImageDaemon double that records calls and replays scripted lines."""

    def __init__(
        self,
        build_lines: Optional[List[bytes]] = None,
        push_lines: Optional[Dict[str, List[bytes]]] = None,
        build_error: Optional[Exception] = None,
        push_errors: Optional[Dict[str, Exception]] = None,
    ):
        self.build_lines = (
            build_lines
            if build_lines is not None
            else ndjson({"stream": "Step 1/1 : FROM scratch\n"})
        )
        self.push_lines = push_lines or {}
        self.build_error = build_error
        self.push_errors = push_errors or {}
        self.builds: List[dict] = []
        self.pushes: List[dict] = []
        self.consumed: Dict[str, List[bytes]] = {}
        self.calls: List[str] = []

    def build(self, context, *, tags, dockerfile, nocache, forcerm, pull, timeout):
        self.calls.append("build")
        self.builds.append(
            {
                "context": context.read(),
                "tags": list(tags),
                "dockerfile": dockerfile,
                "nocache": nocache,
                "forcerm": forcerm,
                "pull": pull,
                "timeout": timeout,
            }
        )
        if self.build_error is not None:
            raise self.build_error
        yield from self.build_lines

    def push(self, reference, *, auth, timeout):
        self.calls.append(f"push {reference}")
        self.pushes.append({"reference": reference, "auth": auth, "timeout": timeout})
        if reference in self.push_errors:
            raise self.push_errors[reference]
        lines = self.push_lines.get(
            reference, ndjson({"status": f"Pushed {reference}"})
        )
        for line in lines:
            self.consumed.setdefault(reference, []).append(line)
            yield line


class RecordingObserver:
    """Progress observer that keeps every event in order."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)


@pytest.fixture
def fake_daemon() -> FakeDaemon:
    return FakeDaemon()


@pytest.fixture
def daemon_factory():
    """Provide the FakeDaemon class for tests that script responses."""
    return FakeDaemon


@pytest.fixture(name="ndjson")
def ndjson_fixture():
    """Provide the ndjson line encoder."""
    return ndjson


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


def populate(root: Path, files: Dict[str, str]) -> None:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


SAMPLE_FILES = {
    "Dockerfile": "FROM alpine:3.19\nCOPY . /app\n",
    "README.md": "# app\n",
    "src/main.py": "print('hello')\n",
    "src/pkg/__init__.py": "",
    ".git/HEAD": "ref: refs/heads/main\n",
    ".git/objects/ab/cdef": "blob",
    ".github/workflows/ci.yml": "on: push\n",
}


@pytest.fixture
def source_tree():
    """Provide a populated source tree resembling a checked-out repository.

    Layout:
    - Dockerfile, README.md
    - src/main.py, src/pkg/__init__.py
    - .git/ and .github/ metadata
    """
    tree = SourceTree("github.com/example/app", "abc123")
    populate(tree.root, SAMPLE_FILES)
    yield tree
    tree.cleanup()


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        [
            "git",
            "-c",
            "user.name=Test",
            "-c",
            "user.email=test@example.com",
            "-c",
            "commit.gpgsign=false",
            *args,
        ],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


@pytest.fixture
def git_repo(tmp_path: Path) -> dict:
    """Provide a local git repository with two commits.

    Returns:
        Dictionary with the repository ``url`` (file://), ``first`` and
        ``second`` commit ids.
    """
    if shutil.which("git") is None:
        pytest.skip("git executable not available")

    repo = tmp_path / "origin" / "app"
    repo.mkdir(parents=True)
    _git(repo, "init", "-q")

    populate(
        repo,
        {
            "Dockerfile": "FROM alpine:3.19\n",
            "src/main.py": "VERSION = 1\n",
            ".github/workflows/ci.yml": "on: push\n",
        },
    )
    _git(repo, "add", "-A")
    _git(repo, "commit", "-q", "-m", "first")
    first = _git(repo, "rev-parse", "HEAD")

    populate(repo, {"src/main.py": "VERSION = 2\n"})
    _git(repo, "commit", "-q", "-am", "second")
    second = _git(repo, "rev-parse", "HEAD")

    return {"url": f"file://{repo}", "path": repo, "first": first, "second": second}


@pytest.fixture
def make_tree():
    """Provide a factory for source trees with arbitrary files."""
    trees = []

    def _make(files: Dict[str, str], repository="github.com/example/app", commit="abc123"):
        tree = SourceTree(repository, commit)
        populate(tree.root, files)
        trees.append(tree)
        return tree

    yield _make
    for tree in trees:
        tree.cleanup()
