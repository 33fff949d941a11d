"""Abstract build store interface.

The service layer depends on BaseBuildStore, not on the filesystem layout,
so tests and alternative backends can stand in for FileSystemBuildStore.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prpreview_core.events import BuildCreated, VisibilityChanged
    from prpreview_store.models import PreviewBuild


class BaseBuildStore(ABC):
    """Single source of truth for which previews exist and where they are served from.

    Implementations must serialize mutating operations per PR and must not
    cache build existence: every call re-reads the backing storage.
    """

    @abstractmethod
    def create(self, pr: int, sha: str, staged_content_root: str | Path, is_public: bool) -> BuildCreated:
        """Move staged content in as the build for (pr, sha), replacing any previous one."""

    @abstractmethod
    def update_pr_visibility(self, pr: int, is_public: bool) -> VisibilityChanged | None:
        """Move every build of ``pr`` to the public or hidden side.

        Returns None (and emits nothing) if the PR has no builds.
        """

    @abstractmethod
    def remove_pr(self, pr: int) -> list[str]:
        """Delete every build of ``pr``. Returns the removed shas; never fails for unknown PRs."""

    @abstractmethod
    def list_builds(self, pr: int | None = None) -> list[PreviewBuild]:
        """Return stored builds, optionally for a single PR. Empty list if there are none."""

    def close(self) -> None:
        """Release any resources held by the store.

        Optional. Default is a no-op so callers can always call close() safely.
        """
