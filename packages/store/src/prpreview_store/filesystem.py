"""FileSystemBuildStore: preview builds as directories under a builds root.

Layout::

    <builds_dir>/public/pr<N>-<sha>/...   served publicly
    <builds_dir>/hidden/pr<N>-<sha>/...   stored, not served

A build lives in exactly one of the two subtrees. Every directory appearing
under a build name is already complete: content is moved in via a temporary
sibling and a single rename (see prpreview_store.fs). Mutations of one PR are
serialized by a per-PR lock; different PRs proceed in parallel.

Lifecycle events are published while the PR lock is still held, so the event
order for a PR matches the order its changes hit the disk.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from pathlib import Path

from prpreview_core.config import LEFTOVER_MAX_AGE, assert_not_missing_or_empty
from prpreview_core.errors import InvalidInput, StorageError
from prpreview_core.events import BuildCreated, EventQueue, LifecycleEvent, VisibilityChanged
from prpreview_store.base import BaseBuildStore
from prpreview_store.fs import INCOMING_PREFIX, list_temporaries, move_dir, remove_dir, retire_dir, temp_sibling
from prpreview_store.locks import KeyedLock
from prpreview_store.models import (
    HIDDEN_SUBTREE,
    PUBLIC_SUBTREE,
    PreviewBuild,
    build_dir_name,
    is_valid_pr,
    is_valid_sha,
    parse_build_dir_name,
)

logger = logging.getLogger(__name__)


class FileSystemBuildStore(BaseBuildStore):
    def __init__(self, builds_dir: str | Path, events: EventQueue | None = None):
        assert_not_missing_or_empty("buildsDir", builds_dir)
        self.builds_dir = Path(builds_dir)
        self._events = events
        self._locks = KeyedLock()
        self._ensure_layout()

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def create(self, pr: int, sha: str, staged_content_root: str | Path, is_public: bool) -> BuildCreated:
        self._validate(pr, "create", sha)
        staged = Path(staged_content_root)

        with self._locks.hold(pr):
            target = self._build_path(pr, sha, is_public)
            existing = [p for p in self._locations(pr, sha) if p.exists()]
            incoming: Path | None = None
            retired: list[tuple[Path, Path]] = []
            try:
                self._ensure_layout()
                incoming = temp_sibling(target, INCOMING_PREFIX)
                move_dir(staged, incoming)
                for path in existing:
                    retired.append((path, retire_dir(path)))
                os.rename(incoming, target)
            except (OSError, StorageError) as e:
                self._rollback(incoming, retired)
                shutil.rmtree(staged, ignore_errors=True)
                raise StorageError(
                    f"Could not store build for PR #{pr} ({sha}): {e}", pr=pr, sha=sha, operation="create"
                ) from e

            for _, trash in retired:
                shutil.rmtree(trash, ignore_errors=True)

            if existing:
                logger.info("Replaced existing build for PR #%d (%s).", pr, sha)
            logger.info("Stored %s build for PR #%d (%s).", "public" if is_public else "hidden", pr, sha)
            event = BuildCreated(pr=pr, sha=sha, is_public=is_public)
            self._publish(event)
        return event

    def update_pr_visibility(self, pr: int, is_public: bool) -> VisibilityChanged | None:
        self._validate(pr, "update_pr_visibility")

        with self._locks.hold(pr):
            builds = self._scan(pr)
            if not builds:
                logger.debug("PR #%d has no builds; nothing to update.", pr)
                return None

            settled: list[str] = []
            for build in builds:
                try:
                    if build.is_public != is_public:
                        self._relocate(build, is_public)
                except OSError as e:
                    if settled:
                        self._publish(VisibilityChanged(pr=pr, shas=tuple(settled), is_public=is_public))
                    raise StorageError(
                        f"Could not move build for PR #{pr} ({build.sha}): {e}",
                        pr=pr,
                        sha=build.sha,
                        operation="update_pr_visibility",
                    ) from e
                settled.append(build.sha)

            logger.info("PR #%d builds are now %s: %s", pr, "public" if is_public else "hidden", ", ".join(settled))
            event = VisibilityChanged(pr=pr, shas=tuple(settled), is_public=is_public)
            self._publish(event)
        return event

    def remove_pr(self, pr: int) -> list[str]:
        self._validate(pr, "remove_pr")

        with self._locks.hold(pr):
            removed = []
            for build in self._scan(pr):
                try:
                    remove_dir(build.content_root)
                except FileNotFoundError:
                    continue
                except OSError as e:
                    raise StorageError(
                        f"Could not remove build for PR #{pr} ({build.sha}): {e}",
                        pr=pr,
                        sha=build.sha,
                        operation="remove_pr",
                    ) from e
                removed.append(build.sha)

        if removed:
            logger.info("Removed %d build(s) of PR #%d.", len(removed), pr)
        return removed

    def list_builds(self, pr: int | None = None) -> list[PreviewBuild]:
        if pr is not None:
            return self._scan(pr)
        builds = []
        for is_public in (True, False):
            builds.extend(self._scan_subtree(is_public))
        return sorted(builds, key=lambda b: (b.pr, b.sha, not b.is_public))

    def get_build(self, pr: int, sha: str) -> PreviewBuild | None:
        for build in self._scan(pr):
            if build.sha == sha:
                return build
        return None

    def purge_leftovers(self, max_age: float = LEFTOVER_MAX_AGE) -> list[Path]:
        """Remove incoming/trash directories left behind by an interrupted operation.

        Only temporaries at least ``max_age`` seconds old are touched, and each
        one is removed while holding the lock of the PR it belongs to. A create
        or visibility change that is still running keeps its directories.
        """
        now = time.time()
        removed = []
        for subtree in (PUBLIC_SUBTREE, HIDDEN_SUBTREE):
            for temp in list_temporaries(self.builds_dir / subtree):
                if max_age and now - temp.created_at < max_age:
                    continue
                with self._locks.hold(temp.pr):
                    if not temp.path.exists():
                        continue
                    shutil.rmtree(temp.path, ignore_errors=True)
                logger.warning("Purged leftover directory %s", temp.path)
                removed.append(temp.path)
        return removed

    # ------------------------------------------------------------------ #
    # Internals                                                            #
    # ------------------------------------------------------------------ #

    def _subtree(self, is_public: bool) -> Path:
        return self.builds_dir / (PUBLIC_SUBTREE if is_public else HIDDEN_SUBTREE)

    def _build_path(self, pr: int, sha: str, is_public: bool) -> Path:
        return self._subtree(is_public) / build_dir_name(pr, sha)

    def _locations(self, pr: int, sha: str) -> list[Path]:
        return [self._build_path(pr, sha, True), self._build_path(pr, sha, False)]

    def _ensure_layout(self) -> None:
        try:
            for is_public in (True, False):
                self._subtree(is_public).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create builds directory {self.builds_dir}: {e}") from e

    def _scan_subtree(self, is_public: bool, pr: int | None = None) -> list[PreviewBuild]:
        root = self._subtree(is_public)
        try:
            entries = list(root.iterdir())
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(f"Cannot list {root}: {e}", pr=pr, operation="scan") from e

        builds = []
        for entry in entries:
            parsed = parse_build_dir_name(entry.name)
            if parsed is None or not entry.is_dir():
                continue
            if pr is not None and parsed[0] != pr:
                continue
            builds.append(PreviewBuild(pr=parsed[0], sha=parsed[1], is_public=is_public, content_root=entry))
        return builds

    def _scan(self, pr: int) -> list[PreviewBuild]:
        """All builds of ``pr`` in both subtrees, ordered by sha.

        A sha present in both subtrees (only possible after an external
        interference or crash) is reported once, from the public side.
        """
        seen: dict[str, PreviewBuild] = {}
        for is_public in (True, False):
            for build in self._scan_subtree(is_public, pr):
                seen.setdefault(build.sha, build)
        return [seen[sha] for sha in sorted(seen)]

    def _relocate(self, build: PreviewBuild, is_public: bool) -> None:
        dest = self._build_path(build.pr, build.sha, is_public)
        if dest.exists():
            # A stray duplicate already sits at the destination; keep that one.
            remove_dir(build.content_root)
            return
        # Both subtrees live under builds_dir, so this is a same-filesystem rename.
        os.rename(build.content_root, dest)

    def _rollback(self, incoming: Path | None, retired: list[tuple[Path, Path]]) -> None:
        if incoming is not None and incoming.exists():
            shutil.rmtree(incoming, ignore_errors=True)
        for original, trash in reversed(retired):
            try:
                os.rename(trash, original)
            except OSError as e:
                logger.error("Could not restore %s from %s during rollback: %s", original, trash, e)

    def _publish(self, event: LifecycleEvent) -> None:
        if self._events is not None:
            self._events.publish(event)

    @staticmethod
    def _validate(pr, operation: str, *shas) -> None:
        if not is_valid_pr(pr):
            raise InvalidInput(f"Invalid PR number: {pr!r}", operation=operation)
        for sha in shas:
            if not is_valid_sha(sha):
                raise InvalidInput(f"Invalid commit sha: {sha!r}", pr=pr, operation=operation)
