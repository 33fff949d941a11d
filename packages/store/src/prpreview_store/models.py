"""Preview build data model and the on-disk directory naming scheme.

A build for (pr, sha) lives in a directory named ``pr<pr>-<sha>``. The name
alone is enough to recover the pair, so listing a subtree is all it takes to
know what is stored there.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

_BUILD_DIR_RE = re.compile(r"pr(\d+)-([0-9A-Za-z]+)")
_SHA_RE = re.compile(r"[0-9A-Za-z]+")

PUBLIC_SUBTREE = "public"
HIDDEN_SUBTREE = "hidden"


@dataclass(frozen=True)
class PreviewBuild:
    """One stored build artifact for one (pr, sha) pair."""

    pr: int
    sha: str
    is_public: bool
    content_root: Path


def build_dir_name(pr: int, sha: str) -> str:
    return f"pr{pr}-{sha}"


def parse_build_dir_name(name: str) -> tuple[int, str] | None:
    """Return (pr, sha) for a build directory name, or None for anything else (temp dirs, stray files)."""
    match = _BUILD_DIR_RE.fullmatch(name)
    if not match:
        return None
    return int(match.group(1)), match.group(2)


def is_valid_pr(pr) -> bool:
    return isinstance(pr, int) and not isinstance(pr, bool) and pr > 0


def is_valid_sha(sha) -> bool:
    return isinstance(sha, str) and bool(_SHA_RE.fullmatch(sha))
