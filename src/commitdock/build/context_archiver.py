"""
Build context archiving.

Packs a SourceTree into a gzip-compressed tarball the Docker daemon accepts
as a build context.
"""

import gzip
import logging
import os
import stat
import tarfile
from pathlib import Path
from typing import Iterator, Sequence, Union

from ..config import repository_name
from ..exceptions import ArchiveError
from ..models import ArchiveEntry, BuildContext, SourceTree

log = logging.getLogger(__name__)

DEFAULT_EXCLUDES = (".git", ".github")
DOCKERFILE = "Dockerfile"


def archive_name_for(repository: str) -> str:
    """
    Archive filename for a repository.

    Examples:
        >>> archive_name_for("github.com/example/app")
        'app.tar.gz'
    """
    return f"{repository_name(repository)}.tar.gz"


class ContextArchiver:
    """
    Package a source tree into a build context tarball.

    The archive is written inside the tree it packs, so the walk sees the
    half-written archive itself. Every path is therefore checked by textual
    containment against the archive name and the excluded metadata names at
    the moment it is visited:

        app/
        ├── .git/            (excluded)
        ├── .github/         (excluded)
        ├── Dockerfile
        ├── app.tar.gz       (excluded, being written)
        └── src/main.py
    """

    def __init__(self, excludes: Sequence[str] = DEFAULT_EXCLUDES):
        self.excludes = tuple(excludes)

    def is_excluded(self, path: str, archive_name: str) -> bool:
        return archive_name in path or any(name in path for name in self.excludes)

    def archive(self, tree: SourceTree, archive_name: str) -> BuildContext:
        """
        Create ``archive_name`` at the root of ``tree``.

        Args:
            tree: Checked-out source tree
            archive_name: Filename of the archive to create

        Returns:
            BuildContext describing the finished archive

        Raises:
            ArchiveError: If any file cannot be opened, statted or fully read,
                or the context has no top-level Dockerfile
        """
        context = {"repository": tree.repository, "commit": tree.commit}
        output_path = tree.root / archive_name

        if not (tree.root / DOCKERFILE).is_file():
            raise ArchiveError(f"no top-level {DOCKERFILE} in build context", **context)

        log.info(f"Creating build context: {archive_name}")

        try:
            # Closing order matters: tar trailer first, then gzip, then file
            with open(output_path, "wb") as raw:
                with gzip.GzipFile(filename="", mode="wb", fileobj=raw, mtime=0) as gz:
                    with tarfile.open(fileobj=gz, mode="w", format=tarfile.PAX_FORMAT) as tar:
                        entry_count = self._add_directory(
                            tree.root, "", archive_name, tar, context
                        )
            size_bytes = output_path.stat().st_size
        except ArchiveError:
            self._discard(output_path)
            raise
        except (OSError, tarfile.TarError) as e:
            self._discard(output_path)
            raise ArchiveError(f"failed to write {archive_name}: {e}", **context) from e

        log.info(
            f"Build context created: {archive_name} "
            f"({entry_count} entries, {size_bytes / 1024:.1f} KB)"
        )
        return BuildContext(path=output_path, entry_count=entry_count, size_bytes=size_bytes)

    def _add_directory(
        self,
        directory: Path,
        prefix: str,
        archive_name: str,
        tar: tarfile.TarFile,
        context: dict,
    ) -> int:
        """Depth-first walk of one directory, returning the entries written."""
        try:
            names = sorted(os.listdir(directory))
        except OSError as e:
            raise ArchiveError(f"cannot list {prefix or '.'}: {e}", **context) from e

        count = 0
        for name in names:
            relative = f"{prefix}{name}"
            if self.is_excluded(relative, archive_name):
                log.debug(f"      Skipped: {relative}")
                continue

            full_path = directory / name
            try:
                info = tar.gettarinfo(str(full_path), arcname=relative)
            except OSError as e:
                raise ArchiveError(f"cannot stat {relative}: {e}", **context) from e

            if info.isdir():
                tar.addfile(info)
                count += 1
                count += self._add_directory(
                    full_path, f"{relative}/", archive_name, tar, context
                )
            elif info.isfile():
                self._add_file(full_path, info, tar, context)
                count += 1
            elif info.issym():
                tar.addfile(info)
                count += 1
            else:
                log.debug(f"      Skipped special file: {relative}")

        return count

    def _add_file(
        self, path: Path, info: tarfile.TarInfo, tar: tarfile.TarFile, context: dict
    ) -> None:
        try:
            with open(path, "rb") as f:
                # addfile raises OSError("unexpected end of data") on a short read
                tar.addfile(info, f)
        except OSError as e:
            raise ArchiveError(f"cannot read {info.name}: {e}", **context) from e
        log.debug(f"      Archived: {info.name}")

    @staticmethod
    def _discard(path: Path) -> None:
        if path.exists():
            path.unlink()


def read_archive(path: Union[str, Path]) -> Iterator[ArchiveEntry]:
    """
    Read a build context archive back into entries.

    Args:
        path: Path to a ``.tar.gz`` build context

    Yields:
        ArchiveEntry per member, in archive order

    Raises:
        ArchiveError: If the archive is unreadable
    """
    try:
        with tarfile.open(path, "r:gz") as tar:
            for member in tar:
                content = None
                if member.isfile():
                    extracted = tar.extractfile(member)
                    content = extracted.read() if extracted is not None else b""
                yield ArchiveEntry(
                    path=member.name,
                    is_dir=member.isdir(),
                    mode=stat.S_IMODE(member.mode),
                    size=member.size,
                    content=content,
                )
    except (OSError, tarfile.TarError) as e:
        raise ArchiveError(f"cannot read archive {Path(path).name}: {e}") from e
