"""Error taxonomy shared by every prpreview package.

Each error carries the pr/sha/operation it happened in, so the HTTP layer and
the CLI can log it and decide whether to retry without parsing messages.
"""

from __future__ import annotations


class PreviewError(Exception):
    """Base class for all prpreview failures."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        pr: int | None = None,
        sha: str | None = None,
        operation: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.pr = pr
        self.sha = sha
        self.operation = operation

    def context(self) -> str:
        """Return a compact ``operation pr=N sha=X`` string for log lines."""
        parts = []
        if self.operation:
            parts.append(self.operation)
        if self.pr is not None:
            parts.append(f"pr={self.pr}")
        if self.sha:
            parts.append(f"sha={self.sha}")
        return " ".join(parts)

    def __str__(self) -> str:
        return self.message


class ConfigurationError(PreviewError):
    """A required setting is missing or unusable. Raised at construction time."""


class InvalidInput(PreviewError):
    """Malformed pr/sha/payload. The caller's fault."""


class UpstreamUnavailable(PreviewError):
    """GitHub or CircleCI could not be reached or answered with an error."""

    retryable = True


class ArtifactTooLarge(PreviewError):
    """The artifact exceeded the configured download size ceiling."""


class CorruptArtifact(PreviewError):
    """The artifact is empty or could not be extracted."""


class StorageError(PreviewError):
    """A filesystem operation on the builds directory failed."""

    retryable = True
