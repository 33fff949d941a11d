"""Thin CircleCI v1.1 API client.

Only the three calls the preview pipeline needs: build details, the artifact
listing of a build, and streaming an artifact download. Transport and HTTP
status errors are translated to UpstreamUnavailable. There are no retries.
"""

from __future__ import annotations

import fnmatch
import logging
from contextlib import contextmanager
from typing import Iterator

import httpx

from prpreview_core.config import assert_not_missing_or_empty
from prpreview_core.errors import InvalidInput, UpstreamUnavailable

logger = logging.getLogger(__name__)

CIRCLE_CI_API_URL = "https://circleci.com/api/v1.1/project/github"


class CircleCiApi:
    def __init__(
        self,
        github_org: str,
        github_repo: str,
        circleci_token: str,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ):
        assert_not_missing_or_empty("githubOrg", github_org)
        assert_not_missing_or_empty("githubRepo", github_repo)
        assert_not_missing_or_empty("circleCiToken", circleci_token)
        self.base_url = f"{CIRCLE_CI_API_URL}/{github_org}/{github_repo}"
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._headers = {"Circle-Token": circleci_token, "Accept": "application/json"}

    def get_build_info(self, build_num: int) -> dict:
        return self._get_json(f"{self.base_url}/{build_num}", build_num)

    def get_build_artifact_url(self, build_num: int, artifact_pattern: str) -> str:
        """Return the download URL of the first artifact whose path matches ``artifact_pattern``."""
        artifacts = self._get_json(f"{self.base_url}/{build_num}/artifacts", build_num)
        for artifact in artifacts or []:
            if fnmatch.fnmatch(artifact.get("path", ""), artifact_pattern):
                return artifact["url"]
        raise InvalidInput(
            f"Build {build_num} has no artifact matching {artifact_pattern!r}.",
            operation="get_build_artifact_url",
        )

    @contextmanager
    def stream(self, url: str) -> Iterator[httpx.Response]:
        """Open a streaming GET for an artifact URL. Status errors raise before yielding."""
        with self._client.stream("GET", url, headers=self._headers) as response:
            response.raise_for_status()
            yield response

    def close(self) -> None:
        self._client.close()

    def _get_json(self, url: str, build_num: int):
        try:
            response = self._client.get(url, headers=self._headers)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.warning("CircleCI request for build %d failed: %s", build_num, e)
            raise UpstreamUnavailable(
                f"CircleCI request failed for build {build_num}: {e}",
                operation="circleci",
            ) from e
        except ValueError as e:
            raise UpstreamUnavailable(
                f"CircleCI returned invalid JSON for build {build_num}.",
                operation="circleci",
            ) from e
