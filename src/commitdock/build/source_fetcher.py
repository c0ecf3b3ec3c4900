"""
Source fetching.

Clones a repository into a fresh SourceTree and checks out one exact commit.
"""

import logging
import os
import re
import shlex
import signal
import subprocess
import threading
from collections import deque
from typing import List, Optional

from ..deadline import Deadline
from ..exceptions import DeadlineExceeded, FetchError
from ..models import SourceTree
from ..progress import FetchProgressLine, NullObserver, ProgressObserver

log = logging.getLogger(__name__)

COMMIT_PATTERN = re.compile(r"^[0-9a-fA-F]{4,40}$")
_EXPLICIT_URL_PREFIXES = ("https://", "http://", "ssh://", "git://", "file://", "git@")


class SourceFetcher:
    """Fetch one commit of a repository with the git command line client."""

    def __init__(
        self,
        transport: str = "https",
        ssh_key: Optional[str] = None,
        observer: Optional[ProgressObserver] = None,
        git_executable: str = "git",
    ):
        """
        Initialize source fetcher.

        Args:
            transport: ``https`` or ``ssh``; decides how bare references resolve
            ssh_key: Private key file used for ssh transport
            observer: Receives clone progress lines
            git_executable: Name or path of the git binary
        """
        self.transport = transport
        self.ssh_key = ssh_key
        self.observer = observer or NullObserver()
        self.git_executable = git_executable

    def resolve_url(self, repository: str) -> str:
        """
        Turn a repository reference into a clone URL.

        Full URLs are used as given. Bare references such as
        ``github.com/example/app`` resolve according to the configured
        transport, never by guessing from the reference itself.

        Examples:
            >>> SourceFetcher("https").resolve_url("github.com/example/app")
            'https://github.com/example/app'
            >>> SourceFetcher("ssh").resolve_url("github.com/example/app")
            'ssh://git@github.com/example/app'
        """
        if repository.startswith(_EXPLICIT_URL_PREFIXES):
            return repository

        if self.transport == "ssh":
            host, _, path = repository.partition("/")
            if not path:
                raise FetchError(
                    "repository reference must be <host>/<path> for ssh transport",
                    repository=repository,
                )
            return f"ssh://git@{host}/{path}"

        return f"https://{repository}"

    def fetch(self, repository: str, commit: str, deadline: Deadline) -> SourceTree:
        """
        Clone ``repository`` and check out exactly ``commit``.

        Args:
            repository: Repository reference or URL
            commit: Commit id (hex, abbreviated or full)
            deadline: Shared run budget

        Returns:
            SourceTree holding the checked-out commit

        Raises:
            FetchError: Remote unreachable, access rejected, or commit missing
            DeadlineExceeded: Budget elapsed before or during a git call
        """
        context = {"repository": repository, "commit": commit}

        if not COMMIT_PATTERN.match(commit or ""):
            raise FetchError(
                f"{commit!r} is not a commit id; branches and tags are not accepted",
                **context,
            )

        deadline.check("fetch", **context)
        url = self.resolve_url(repository)

        tree = SourceTree(repository, commit)
        try:
            log.info(f"Cloning {url}")
            self._clone(url, tree, deadline, context)

            resolved = self._resolve_commit(tree, commit, deadline, context)
            log.info(f"Checking out {resolved}")
            self._git(
                ["checkout", "--detach", "--quiet", resolved],
                tree,
                deadline,
                context,
            )

            head = self._git(["rev-parse", "HEAD"], tree, deadline, context).strip()
            if head != resolved:
                raise FetchError(f"checked out {head}, expected {resolved}", **context)
        except BaseException:
            tree.cleanup()
            raise

        log.info(f"Fetched {repository}@{resolved}")
        return tree

    def _environment(self) -> dict:
        env = dict(os.environ)
        # Never wait for interactive credentials in an unattended job
        env["GIT_TERMINAL_PROMPT"] = "0"
        if self.transport == "ssh" and self.ssh_key:
            env["GIT_SSH_COMMAND"] = (
                f"ssh -i {shlex.quote(self.ssh_key)} -o IdentitiesOnly=yes "
                "-o StrictHostKeyChecking=accept-new"
            )
        return env

    def _clone(
        self, url: str, tree: SourceTree, deadline: Deadline, context: dict
    ) -> None:
        """Run a full clone, streaming progress lines to the observer."""
        remaining = deadline.check("fetch", **context)
        cmd = [self.git_executable, "clone", "--progress", "--no-checkout", "--", url, str(tree.root)]
        log.debug(f"Running command: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,  # git reports progress on stderr
                stdin=subprocess.DEVNULL,
                text=True,  # universal newlines also split "\r" progress updates
                errors="replace",
                env=self._environment(),
                # own process group so helpers like git-remote-https die with git
                start_new_session=True,
            )
        except OSError as e:
            raise FetchError(f"failed to run git: {e}", **context) from e

        timed_out = threading.Event()

        def kill_on_deadline():
            timed_out.set()
            self._kill_group(process)

        watchdog = threading.Timer(remaining, kill_on_deadline)
        watchdog.daemon = True
        watchdog.start()

        tail = deque(maxlen=5)
        try:
            for line in process.stdout:
                line = line.rstrip()
                if line:
                    tail.append(line)
                    self.observer(FetchProgressLine(line))
            return_code = process.wait()
        finally:
            watchdog.cancel()
            process.stdout.close()
            if process.poll() is None:
                self._kill_group(process)
                process.wait()

        if timed_out.is_set():
            raise DeadlineExceeded("fetch", deadline.timeout, **context)

        if return_code != 0:
            detail = tail[-1] if tail else f"exit code {return_code}"
            raise FetchError(f"failed to clone {url}: {detail}", **context)

    @staticmethod
    def _kill_group(process: subprocess.Popen) -> None:
        """Kill git and every helper it spawned; they share the output pipe."""
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass

    def _resolve_commit(
        self, tree: SourceTree, commit: str, deadline: Deadline, context: dict
    ) -> str:
        """Resolve an (abbreviated) commit id to the full id present in the clone."""
        try:
            output = self._git(
                ["rev-parse", "--verify", "--quiet", f"{commit}^{{commit}}"],
                tree,
                deadline,
                context,
            )
        except FetchError as e:
            raise FetchError(
                "commit not found in repository", **context
            ) from e
        return output.strip()

    def _git(
        self, args: List[str], tree: SourceTree, deadline: Deadline, context: dict
    ) -> str:
        """Run one bounded git command inside the tree and return its stdout."""
        remaining = deadline.check("fetch", **context)
        cmd = [self.git_executable, *args]
        log.debug(f"Running command: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                cwd=tree.root,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                check=True,
                timeout=remaining,
                env=self._environment(),
            )
        except subprocess.TimeoutExpired as e:
            raise DeadlineExceeded("fetch", deadline.timeout, **context) from e
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip() or f"exit code {e.returncode}"
            raise FetchError(f"git {args[0]} failed: {detail}", **context) from e
        except OSError as e:
            raise FetchError(f"failed to run git: {e}", **context) from e

        return result.stdout
