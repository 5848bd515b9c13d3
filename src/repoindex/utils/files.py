"""Utility helpers for discovering and hashing source files."""

from __future__ import annotations

import fnmatch
import hashlib
import logging
import os
from pathlib import Path
from typing import Callable, Iterable, Iterator, Sequence

from repoindex.errors import DiscoveryError

LOGGER = logging.getLogger(__name__)


def is_supported(path: Path, extensions: Iterable[str]) -> bool:
    """Return True if the file name ends with one of ``extensions``."""
    name = path.name.lower()
    return any(name.endswith(ext.lower()) for ext in extensions)


def is_ignored(relative_path: Path | str, patterns: Iterable[str]) -> bool:
    """Return True if an ignore pattern occurs anywhere in the root-relative path.

    Plain patterns are substrings, so ``build`` also drops ``buildSrc/``.
    Wildcards are honoured, so ``*.lock`` drops ``yarn.lock`` and
    ``Cargo.lock``.
    """
    path = Path(relative_path).as_posix()
    return any(fnmatch.fnmatchcase(path, f"*{pattern}*") for pattern in patterns)


def iter_source_files(
    root: Path,
    *,
    extensions: Sequence[str],
    ignore_patterns: Sequence[str],
    on_skip: Callable[[Path], None] | None = None,
) -> Iterator[Path]:
    """Yield supported, non-ignored files under ``root`` in a stable order.

    Unreadable subdirectories are logged, reported to ``on_skip`` and skipped.
    """
    root = Path(root)

    def _on_error(exc: OSError) -> None:
        error = DiscoveryError(exc.filename or root, exc.strerror or str(exc))
        LOGGER.warning("Skipping unreadable path: %s", error)
        if on_skip is not None:
            on_skip(error.path)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        current = Path(dirpath)
        relative_dir = current.relative_to(root)
        dirnames[:] = sorted(
            d for d in dirnames if not is_ignored(relative_dir / d, ignore_patterns)
        )
        for name in sorted(filenames):
            relative = relative_dir / name
            if not is_supported(relative, extensions):
                continue
            if is_ignored(relative, ignore_patterns):
                continue
            yield current / name


class SourceTree:
    """Restartable view over the indexable files of a directory tree.

    ``skipped`` holds the root-relative paths of directories that could not
    be read during the latest iteration.
    """

    def __init__(
        self, root: Path, *, extensions: Sequence[str], ignore_patterns: Sequence[str]
    ) -> None:
        self.root = Path(root)
        self.extensions = tuple(extensions)
        self.ignore_patterns = tuple(ignore_patterns)
        self.skipped: list[str] = []

    def __iter__(self) -> Iterator[Path]:
        self.skipped = []
        return iter_source_files(
            self.root,
            extensions=self.extensions,
            ignore_patterns=self.ignore_patterns,
            on_skip=self._record_skip,
        )

    def _record_skip(self, path: Path) -> None:
        try:
            self.skipped.append(self.relative(path))
        except ValueError:
            self.skipped.append("")

    def relative(self, path: Path) -> str:
        """Project-relative POSIX path used as the stored file key."""
        return Path(path).relative_to(self.root).as_posix()

    def was_skipped(self, relative_path: str) -> bool:
        """Return True if ``relative_path`` lies under a directory that could not be read."""
        for skipped in self.skipped:
            if skipped in ("", ".") or relative_path == skipped:
                return True
            if relative_path.startswith(skipped + "/"):
                return True
        return False


def sha256_bytes(data: bytes) -> str:
    """Lowercase hex SHA-256 of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def compute_sha256(path: Path) -> str:
    """Compute SHA256 hash for a file."""
    sha = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            sha.update(chunk)
    return sha.hexdigest()
