"""Decide whether a PR's preview may be served publicly.

A PR is trusted if it carries the trust label, or if its author belongs to at
least one of the allowed teams. Failures to reach GitHub are never turned into
a trust decision in either direction: they surface as UpstreamUnavailable and
the caller decides whether to retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from github import GithubException

from prpreview_core.config import assert_not_missing_or_empty
from prpreview_core.errors import UpstreamUnavailable
from prpreview_core.gh.pull_request import get_pull, has_label
from prpreview_core.gh.teams import is_member_by_slug

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrustDecision:
    pr: int
    is_public: bool


class TrustEvaluator:
    def __init__(self, gh, repo, org, allowed_team_slugs: list[str], trusted_pr_label: str):
        assert_not_missing_or_empty("allowedTeamSlugs", allowed_team_slugs)
        assert_not_missing_or_empty("trustedPrLabel", trusted_pr_label)
        self._gh = gh
        self._repo = repo
        self._org = org
        self.allowed_team_slugs = [s for s in allowed_team_slugs if s]
        self.trusted_pr_label = trusted_pr_label

    def is_trusted(self, pr_number: int) -> bool:
        try:
            pr = get_pull(self._repo, pr_number)
            if has_label(pr, self.trusted_pr_label):
                logger.debug("PR #%d carries the trust label %r.", pr_number, self.trusted_pr_label)
                return True
            return is_member_by_slug(self._gh, self._org, pr.user.login, self.allowed_team_slugs)
        except (GithubException, OSError) as e:
            # OSError covers the requests connection errors PyGithub lets through.
            raise UpstreamUnavailable(
                f"Could not determine trust for PR #{pr_number}: {e}",
                pr=pr_number,
                operation="is_trusted",
            ) from e

    def evaluate(self, pr_number: int) -> TrustDecision:
        decision = TrustDecision(pr=pr_number, is_public=self.is_trusted(pr_number))
        logger.info("PR #%d trust decision: %s", pr_number, "public" if decision.is_public else "hidden")
        return decision
