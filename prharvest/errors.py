"""Exception types for the harvester.

Each kind maps to one recovery action in the run controller:

- ``TransientAPIError``: suspend, state preserved, rerun to retry.
- ``NotFoundError``: skip the candidate, never retried.
- ``QuotaExhausted``: suspend before making a call.
- ``PersistenceError``: stop the run.
- ``ConfigMismatchError``: discard the stale checkpoint and start fresh.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import QuotaStatus


class HarvestError(Exception):
    """Base exception for all harvester errors."""


class ConfigurationError(HarvestError):
    """Raised when run settings are missing or invalid."""


class APIError(HarvestError):
    """Raised when a GitHub request fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientAPIError(APIError):
    """Network failure, server error or rate limiting. Safe to retry later."""


class RateLimitedError(TransientAPIError):
    """GitHub rejected the request because a rate limit was hit."""


class NotFoundError(APIError):
    """The requested resource is gone or no longer accessible."""


class AuthenticationError(APIError):
    """The credential was rejected."""


class QuotaExhausted(HarvestError):
    """Remaining API quota is below the safety threshold.

    Not a failure: raised proactively so the run can suspend before a call
    is rejected.
    """

    def __init__(self, status: QuotaStatus, threshold: int):
        super().__init__(
            f"API quota low: {status.remaining} remaining (threshold {threshold}), "
            f"resets at {status.reset_at.isoformat()}"
        )
        self.status = status
        self.threshold = threshold


class PersistenceError(HarvestError):
    """Checkpoint or report could not be read or written safely."""


class CheckpointLockedError(PersistenceError):
    """Another live run holds the checkpoint lock."""


class ConfigMismatchError(HarvestError):
    """Stored checkpoint belongs to a different repository or start date."""
