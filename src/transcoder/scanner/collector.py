"""Discover video files to enqueue."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = ("mp4", "mkv", "avi", "mov", "wmv", "flv", "webm", "m4v")


@dataclass(frozen=True)
class DiscoveredFile:
    """A file found during a scan."""

    path: Path
    size: int


def is_excluded(path: str, exclude: Iterable[str]) -> bool:
    """Return True if any exclude pattern is a substring of path."""
    return any(pattern in path for pattern in exclude)


def _walk(
    base_path: Path,
    exclude: tuple[str, ...],
    min_size: int | None,
    extensions: frozenset[str],
) -> Iterator[DiscoveredFile]:
    for dirpath, dirnames, filenames in os.walk(base_path):
        # Prune excluded directories so their contents are never visited
        dirnames[:] = sorted(
            d for d in dirnames if not is_excluded(os.path.join(dirpath, d), exclude)
        )
        for name in sorted(filenames):
            full = os.path.join(dirpath, name)
            if is_excluded(full, exclude):
                logger.debug("%s is excluded", full)
                continue
            ext = os.path.splitext(name)[1].lstrip(".").casefold()
            if ext not in extensions:
                continue
            try:
                size = os.stat(full).st_size
            except OSError as e:
                logger.warning("Cannot stat %s: %s", full, e)
                continue
            if min_size is not None and size < min_size:
                logger.debug("Skipping %s because it is too small", full)
                continue
            logger.debug("Found video file: %s", full)
            yield DiscoveredFile(path=Path(full), size=size)


def gather_files(
    base_path: Path,
    exclude: Iterable[str] = (),
    min_size: int | None = None,
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
) -> list[DiscoveredFile]:
    """Recursively collect video files under base_path.

    A path that names a single file is returned as-is, without extension
    or size filtering. Exclude patterns are plain substrings matched
    against the full path of every directory and file visited; an
    excluded directory is not descended into.

    Args:
        base_path: Directory to walk, or a single file.
        exclude: Substring patterns to skip.
        min_size: Skip files smaller than this many bytes.
        extensions: File extensions (without dot) to accept.

    Returns:
        Discovered files in walk order.

    Raises:
        FileNotFoundError: If base_path does not exist.
    """
    logger.info("Gathering files at %s", base_path)
    if base_path.is_file():
        logger.info("Path %s is a file, returning it", base_path)
        return [DiscoveredFile(path=base_path, size=base_path.stat().st_size)]
    if not base_path.exists():
        raise FileNotFoundError(f"Path not found: {base_path}")

    exts = frozenset(e.lstrip(".").casefold() for e in extensions)
    return list(_walk(base_path, tuple(exclude), min_size, exts))
