"""PreviewService: reacts to CI and PR notifications.

The service is where core (trust, fetching) and store meet; neither of them
knows about the other. It owns the decisions about which notifications are
worth acting on and always cleans up staged artifacts, whether or not the
build made it into the store.
"""

from __future__ import annotations

import enum
import logging

from github import GithubException

from prpreview_core.errors import InvalidInput, UpstreamUnavailable
from prpreview_core.events import VisibilityChanged
from prpreview_core.fetcher import ArtifactFetcher
from prpreview_core.gh.pull_request import get_open_pull_numbers, get_pull, touches_significant_files
from prpreview_core.trust import TrustEvaluator
from prpreview_core.utils.sha import short_sha
from prpreview_store.base import BaseBuildStore

logger = logging.getLogger(__name__)

# PR actions that may change whether a PR is trusted. None = action not given.
TRUST_ACTIONS = frozenset({None, "", "labeled", "unlabeled"})
CLOSE_ACTIONS = frozenset({"closed"})


class BuildOutcome(enum.Enum):
    SKIPPED = "skipped"
    CREATED_PUBLIC = "created_public"
    CREATED_HIDDEN = "created_hidden"


class PreviewService:
    def __init__(
        self,
        fetcher: ArtifactFetcher,
        evaluator: TrustEvaluator,
        store: BaseBuildStore,
        repo,
        config: dict,
    ):
        self.fetcher = fetcher
        self.evaluator = evaluator
        self.store = store
        self._repo = repo
        self.github_org = config["github_org"]
        self.github_repo = config["github_repo"]
        self.preview_job_name = config["preview_job_name"]
        self.build_artifact_path = config["build_artifact_path"]
        self.significant_files_pattern = config["significant_files_pattern"]

    def handle_build_completed(self, build_num: int, job_name: str) -> BuildOutcome:
        """Fetch, vet and store the preview produced by CI build ``build_num``."""
        if job_name != self.preview_job_name:
            logger.info(
                "Build:%d, Job:%s - Skipping preview processing because this is not the %r job.",
                build_num,
                job_name,
                self.preview_job_name,
            )
            return BuildOutcome.SKIPPED

        info = self.fetcher.resolve_build_info(build_num)
        self._check_origin("githubOrg", self.github_org, info.org)
        self._check_origin("githubRepo", self.github_repo, info.repo)

        if not info.success:
            logger.info("PR:%d, Build:%d - Skipping preview processing because the build failed.", info.pr, build_num)
            return BuildOutcome.SKIPPED

        if not self._touches_significant_files(info.pr):
            logger.info(
                "PR:%d, Build:%d - Skipping preview processing because this PR did not touch any significant files.",
                info.pr,
                build_num,
            )
            return BuildOutcome.SKIPPED

        sha = short_sha(info.sha)
        staging = self.fetcher.fetch(build_num, info.pr, sha, self.build_artifact_path)
        try:
            is_public = self.evaluator.is_trusted(info.pr)
            self.store.create(info.pr, sha, staging.content_root, is_public)
        finally:
            staging.cleanup()

        return BuildOutcome.CREATED_PUBLIC if is_public else BuildOutcome.CREATED_HIDDEN

    def handle_pr_updated(self, pr: int, action: str | None = None) -> VisibilityChanged | list[str] | None:
        """Re-evaluate trust for a changed PR, or drop its builds once it is closed.

        Returns the visibility event, the removed shas for a close, or None if
        the action cannot affect previews.
        """
        if action in CLOSE_ACTIONS:
            return self.store.remove_pr(pr)
        if action not in TRUST_ACTIONS:
            logger.debug("PR #%d action %r does not affect visibility; ignoring.", pr, action)
            return None
        is_public = self.evaluator.is_trusted(pr)
        return self.store.update_pr_visibility(pr, is_public)

    def can_have_public_preview(self, pr: int) -> bool:
        return self.evaluator.is_trusted(pr)

    def prune(self) -> dict[int, list[str]]:
        """Remove builds of every PR that is no longer open. Returns {pr: removed shas}."""
        try:
            open_prs = get_open_pull_numbers(self._repo)
        except (GithubException, OSError) as e:
            raise UpstreamUnavailable(f"Could not list open pull requests: {e}", operation="prune") from e

        stored = sorted({b.pr for b in self.store.list_builds()})
        removed = {}
        for pr in stored:
            if pr not in open_prs:
                removed[pr] = self.store.remove_pr(pr)
        if removed:
            logger.info("Pruned builds of closed PRs: %s", ", ".join(f"#{pr}" for pr in removed))
        return removed

    def _touches_significant_files(self, pr_number: int) -> bool:
        try:
            return touches_significant_files(get_pull(self._repo, pr_number), self.significant_files_pattern)
        except (GithubException, OSError) as e:
            raise UpstreamUnavailable(
                f"Could not list files of PR #{pr_number}: {e}", pr=pr_number, operation="significant_files"
            ) from e

    @staticmethod
    def _check_origin(name: str, expected: str, actual: str) -> None:
        if actual != expected:
            raise InvalidInput(
                f'Invalid webhook: expected "{name}" property to equal "{expected}" but got "{actual}".',
                operation="handle_build_completed",
            )
