"""Error taxonomy for rbxsync.

Every failure the engine reports to a caller derives from SyncError, so the
CLI can turn any of them into a non-zero exit with a readable message.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all rbxsync failures."""


class ValidationError(SyncError):
    """The desired state or a referenced file is invalid.

    Raised before any network activity. ``issues`` holds every problem found,
    not just the first.
    """

    def __init__(self, issues: list[str] | str):
        if isinstance(issues, str):
            issues = [issues]
        self.issues = list(issues)
        super().__init__("; ".join(self.issues))


class ProviderError(SyncError):
    """A remote call failed after exhausting its retries."""

    def __init__(self, message: str, status: int | None = None, retryable: bool = False):
        super().__init__(message)
        self.status = status
        self.retryable = retryable

    @property
    def category(self) -> str:
        return "retryable" if self.retryable else "non-retryable"


class ConflictError(SyncError):
    """One or more icons changed both locally and remotely since the last checkpoint."""

    def __init__(self, conflicts: list):
        self.conflicts = list(conflicts)
        names = ", ".join(f"{c.kind.label} '{c.key}'" for c in self.conflicts)
        super().__init__(f"Icon conflicts detected: {names}")


class IdentityError(SyncError):
    """A rename source is missing or its target key is already taken."""
