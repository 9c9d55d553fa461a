"""API quota checks used before discovery and before each enrichment."""

import logging
from datetime import UTC, datetime

from .config import QUOTA_SAFETY_THRESHOLD
from .errors import QuotaExhausted, TransientAPIError
from .github_client import GitHubClient
from .models import QuotaStatus

logger = logging.getLogger(__name__)


def parse_rate_limit(data: dict) -> QuotaStatus:
    """Extract the core budget from a /rate_limit response."""
    core = (data.get("resources") or {}).get("core") or data.get("rate")
    if not core or "remaining" not in core:
        raise TransientAPIError("Rate limit response has no core budget")
    return QuotaStatus(
        remaining=max(int(core["remaining"]), 0),
        reset_at=datetime.fromtimestamp(int(core.get("reset", 0)), UTC),
    )


class QuotaGate:
    """Reports the remaining API budget. Never caches: other consumers of the
    same credential can spend quota between two checks."""

    def __init__(self, client: GitHubClient, threshold: int = QUOTA_SAFETY_THRESHOLD):
        self.client = client
        self.threshold = threshold

    async def check_quota(self) -> QuotaStatus:
        status = parse_rate_limit(await self.client.get_rate_limit())
        logger.debug(f"Quota: {status.remaining} remaining, resets {status.reset_at.isoformat()}")
        return status

    async def require(self) -> QuotaStatus:
        """Check quota and raise QuotaExhausted if it is below the threshold."""
        status = await self.check_quota()
        if status.remaining < self.threshold:
            logger.info(
                f"Quota below threshold ({status.remaining} < {self.threshold}), "
                f"resets at {status.reset_at.isoformat()}"
            )
            raise QuotaExhausted(status, self.threshold)
        return status
