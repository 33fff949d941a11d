"""Resolve, download and unpack CI build artifacts."""

from __future__ import annotations

import gzip
import logging
import os
import re
import shutil
import tarfile
import tempfile
import time
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path

import httpx

from prpreview_core.circleci import CircleCiApi
from prpreview_core.config import LEFTOVER_MAX_AGE, assert_not_missing_or_empty
from prpreview_core.errors import (
    ArtifactTooLarge,
    ConfigurationError,
    CorruptArtifact,
    InvalidInput,
    StorageError,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

_PR_BRANCH_RE = re.compile(r"pull/(\d+)")

# Names given by download_artifact and unpack_artifact.
_DOWNLOAD_NAME_RE = re.compile(r"\d+-[0-9A-Za-z]+-.+\.download")
_STAGING_NAME_RE = re.compile(r"pr\d+-[0-9A-Za-z]+-.+")

# Errors raised by tarfile/zipfile/gzip for archives that are not what they claim to be.
_ARCHIVE_ERRORS = (tarfile.TarError, zipfile.BadZipFile, gzip.BadGzipFile, zlib.error, EOFError)


@dataclass(frozen=True)
class BuildInfo:
    """Where a CI build came from, as reported by CircleCI."""

    org: str
    repo: str
    pr: int
    sha: str
    success: bool


@dataclass
class StagingArtifact:
    """A downloaded archive and the directory it was unpacked into.

    Lives only for one fetch+create operation. ``cleanup()`` is safe to call
    whether or not the content has already been moved into the store.
    """

    archive_path: Path
    content_root: Path

    def cleanup(self) -> None:
        _discard(self.archive_path)
        if self.content_root.exists():
            shutil.rmtree(self.content_root, ignore_errors=True)


class ArtifactFetcher:
    def __init__(
        self,
        api: CircleCiApi,
        download_size_limit: int,
        downloads_dir: str | Path,
        download_timeout: float | None = None,
    ):
        assert_not_missing_or_empty("downloadSizeLimit", download_size_limit)
        assert_not_missing_or_empty("downloadsDir", downloads_dir)
        if not isinstance(download_size_limit, int) or isinstance(download_size_limit, bool) or download_size_limit <= 0:
            raise ConfigurationError(
                f"Invalid parameter 'downloadSizeLimit': expected a positive number of bytes, got {download_size_limit!r}."
            )
        self._api = api
        self.download_size_limit = download_size_limit
        self.downloads_dir = Path(downloads_dir)
        self.download_timeout = download_timeout

    def resolve_build_info(self, build_num: int) -> BuildInfo:
        info = self._api.get_build_info(build_num)

        branch = info.get("branch") or ""
        match = _PR_BRANCH_RE.fullmatch(branch)
        if not match:
            raise InvalidInput(
                f"Build {build_num} is not a pull request build (branch {branch!r}).",
                operation="resolve_build_info",
            )
        sha = info.get("vcs_revision") or ""
        org = info.get("username") or ""
        repo = info.get("reponame") or ""
        if not (sha and org and repo):
            raise InvalidInput(
                f"Build {build_num} is missing org/repo/sha information.",
                operation="resolve_build_info",
            )

        return BuildInfo(org=org, repo=repo, pr=int(match.group(1)), sha=sha, success=not info.get("failed", False))

    def download_artifact(
        self,
        build_num: int,
        pr: int,
        sha: str,
        artifact_pattern: str,
        timeout: float | None = None,
    ) -> Path:
        """Stream the matching artifact of ``build_num`` to a fresh file under ``downloads_dir``.

        Bytes are counted as they arrive; the transfer is aborted with
        ArtifactTooLarge as soon as the size limit is crossed, and with
        UpstreamUnavailable once ``timeout`` (or ``download_timeout``) seconds
        have elapsed. The partial file is removed on every failure path.
        """
        url = self._api.get_build_artifact_url(build_num, artifact_pattern)
        timeout = timeout if timeout is not None else self.download_timeout
        deadline = time.monotonic() + timeout if timeout else None

        try:
            self.downloads_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f"{pr}-{sha}-", suffix=".download", dir=self.downloads_dir)
        except OSError as e:
            raise StorageError(f"Cannot create download file: {e}", pr=pr, sha=sha, operation="download") from e
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "wb") as out, self._api.stream(url) as response:
                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self.download_size_limit:
                    raise self._too_large(pr, sha)
                written = 0
                for chunk in response.iter_bytes():
                    written += len(chunk)
                    if written > self.download_size_limit:
                        raise self._too_large(pr, sha)
                    if deadline is not None and time.monotonic() > deadline:
                        raise UpstreamUnavailable(
                            f"Artifact download exceeded {timeout}s.", pr=pr, sha=sha, operation="download"
                        )
                    out.write(chunk)
        except httpx.HTTPError as e:
            _discard(tmp_path)
            raise UpstreamUnavailable(f"Artifact download failed: {e}", pr=pr, sha=sha, operation="download") from e
        except OSError as e:
            _discard(tmp_path)
            raise StorageError(f"Cannot write artifact: {e}", pr=pr, sha=sha, operation="download") from e
        except BaseException:
            # Also covers cancellation (KeyboardInterrupt, SystemExit) of an abandoned request.
            _discard(tmp_path)
            raise

        logger.info("Downloaded artifact for PR #%d (%s): %d bytes", pr, sha, written)
        return tmp_path

    def unpack_artifact(self, archive_path: str | Path, pr: int, sha: str) -> Path:
        """Extract ``archive_path`` into a new, uniquely named staging directory and return it."""
        try:
            self.downloads_dir.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=f"pr{pr}-{sha}-", dir=self.downloads_dir))
        except OSError as e:
            raise StorageError(f"Cannot create staging directory: {e}", pr=pr, sha=sha, operation="unpack") from e

        try:
            count = _extract(Path(archive_path), staging)
        except _ARCHIVE_ERRORS as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise CorruptArtifact(f"Cannot extract artifact: {e}", pr=pr, sha=sha, operation="unpack") from e
        except OSError as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise StorageError(f"Cannot extract artifact: {e}", pr=pr, sha=sha, operation="unpack") from e
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        if count == 0:
            shutil.rmtree(staging, ignore_errors=True)
            raise CorruptArtifact("Artifact archive is empty.", pr=pr, sha=sha, operation="unpack")

        logger.debug("Unpacked %d entries for PR #%d (%s) into %s", count, pr, sha, staging)
        return staging

    def fetch(self, build_num: int, pr: int, sha: str, artifact_pattern: str) -> StagingArtifact:
        """Download and unpack in one go. Nothing is left behind if either step fails."""
        archive = self.download_artifact(build_num, pr, sha, artifact_pattern)
        try:
            content_root = self.unpack_artifact(archive, pr, sha)
        except BaseException:
            _discard(archive)
            raise
        return StagingArtifact(archive_path=archive, content_root=content_root)

    def purge_leftovers(self, max_age: float = LEFTOVER_MAX_AGE) -> list[Path]:
        """Remove downloads and staging directories abandoned by an interrupted process.

        Age comes from the mtime, which a running download or unpack keeps
        fresh. Entries younger than ``max_age`` seconds are left alone.
        """
        if not self.downloads_dir.is_dir():
            return []
        now = time.time()
        removed = []
        for entry in self.downloads_dir.iterdir():
            is_staging = entry.is_dir() and _STAGING_NAME_RE.fullmatch(entry.name) is not None
            is_download = entry.is_file() and _DOWNLOAD_NAME_RE.fullmatch(entry.name) is not None
            if not (is_staging or is_download):
                continue
            try:
                age = now - entry.stat().st_mtime
            except FileNotFoundError:
                continue
            if max_age and age < max_age:
                continue
            if is_staging:
                shutil.rmtree(entry, ignore_errors=True)
            else:
                _discard(entry)
            logger.warning("Purged leftover download %s", entry)
            removed.append(entry)
        return removed

    def _too_large(self, pr: int, sha: str) -> ArtifactTooLarge:
        return ArtifactTooLarge(
            f"Artifact exceeds the download size limit of {self.download_size_limit} bytes.",
            pr=pr,
            sha=sha,
            operation="download",
        )


def _extract(archive: Path, dest: Path) -> int:
    """Extract a zip or tar(.gz/.bz2/.xz) archive into ``dest``. Returns the number of entries."""
    if zipfile.is_zipfile(archive):
        with zipfile.ZipFile(archive) as zf:
            names = zf.namelist()
            if names:
                zf.extractall(dest)
            return len(names)

    with tarfile.open(archive, "r:*") as tar:
        members = tar.getmembers()
        if members:
            # "data" rejects absolute paths, links outside dest and device files.
            tar.extractall(dest, filter="data")
        return len(members)


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
