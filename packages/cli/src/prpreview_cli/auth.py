"""Credential resolution for the GitHub and CircleCI clients.

GitHub token, first match wins:
  1. GITHUB_TOKEN environment variable (what the preview server runs with)
  2. `gh auth token`, so maintainers can run the one-shot commands locally
     with their existing GitHub CLI session

The CircleCI token only comes from CIRCLE_CI_TOKEN.
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)


def resolve_github_token() -> str | None:
    """Return a GitHub token, or None if neither source has one. Never raises."""
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None

    if result.returncode == 0 and result.stdout.strip():
        logger.debug("Using the GitHub token of the gh CLI session.")
        return result.stdout.strip()
    return None


def resolve_circleci_token() -> str | None:
    return os.environ.get("CIRCLE_CI_TOKEN") or None
