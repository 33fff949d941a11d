"""Directory primitives the build store relies on for atomicity.

Everything here assumes ``os.rename`` of a directory is atomic when source and
destination are on the same filesystem (true for POSIX local filesystems).
When they are not (EXDEV), ``move_dir`` copies into a hidden temporary sibling
of the destination first and renames that, so the destination name still only
ever appears fully populated.

Temporary names start with a dot and never match the build directory naming
scheme, so a crash at any point leaves directories that listings ignore. Each
temporary name also records the PR it belongs to and when it was created, so
leftovers can be told apart from directories an operation is still using.
"""

from __future__ import annotations

import errno
import logging
import os
import re
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

INCOMING_PREFIX = ".incoming-"
TRASH_PREFIX = ".trash-"

# <prefix>pr<N>-<sha>-<unix time>-<random>
_TEMP_NAME_RE = re.compile(
    rf"(?:{re.escape(INCOMING_PREFIX)}|{re.escape(TRASH_PREFIX)})pr(\d+)-[0-9A-Za-z]+-(\d+)-[0-9a-f]+"
)


@dataclass(frozen=True)
class Temporary:
    """An incoming or trash directory, with the PR it belongs to (if known) and its creation time."""

    path: Path
    pr: int | None
    created_at: float


def temp_sibling(path: Path, prefix: str) -> Path:
    """Return an unused hidden path next to ``path``, stamped with the current time."""
    return path.parent / f"{prefix}{path.name}-{int(time.time())}-{uuid.uuid4().hex[:12]}"


def move_dir(src: Path, dest: Path) -> None:
    """Move directory ``src`` to ``dest`` (which must not exist) so ``dest`` appears atomically.

    Tries a plain rename first. Across filesystems, the tree is copied into a
    temporary sibling of ``dest`` and renamed into place, then ``src`` is
    removed. On failure the copy is discarded and ``src`` is left untouched.
    """
    try:
        os.rename(src, dest)
        return
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise

    logger.debug("Cross-device move %s -> %s; copying via temporary sibling.", src, dest)
    tmp = temp_sibling(dest, INCOMING_PREFIX)
    try:
        shutil.copytree(src, tmp, symlinks=True)
        os.rename(tmp, dest)
    except BaseException:
        shutil.rmtree(tmp, ignore_errors=True)
        raise
    shutil.rmtree(src, ignore_errors=True)


def retire_dir(path: Path) -> Path:
    """Atomically take ``path`` out of view by renaming it to a trash sibling. Returns the trash path."""
    trash = temp_sibling(path, TRASH_PREFIX)
    os.rename(path, trash)
    return trash


def remove_dir(path: Path) -> None:
    """Remove ``path`` so that it disappears in one step rather than file by file."""
    trash = retire_dir(path)
    shutil.rmtree(trash, ignore_errors=True)


def list_temporaries(root: Path) -> list[Temporary]:
    """Return the incoming/trash directories directly under ``root``.

    Names that do not carry a timestamp fall back to the directory mtime.
    """
    if not root.is_dir():
        return []
    temporaries = []
    for entry in root.iterdir():
        if not entry.name.startswith((INCOMING_PREFIX, TRASH_PREFIX)) or not entry.is_dir():
            continue
        match = _TEMP_NAME_RE.fullmatch(entry.name)
        if match:
            temporaries.append(Temporary(entry, int(match.group(1)), float(match.group(2))))
            continue
        try:
            created_at = entry.stat().st_mtime
        except FileNotFoundError:
            continue
        temporaries.append(Temporary(entry, None, created_at))
    return temporaries

