"""Discovery of merged pull requests inside a date window.

The closed-PR listing is walked newest-update first because GitHub cannot
sort by merge time. Pagination stops after the first page holding an item
that was both merged and last updated before the window opens. Updates made
while pages are being fetched reorder the listing, so the result is an
approximation for repositories with heavy concurrent activity.
"""

import logging
from collections.abc import Callable
from enum import Enum

from .config import MAX_DISCOVERY_PAGES, PER_PAGE
from .github_client import GitHubClient
from .models import CandidatePR, RunConfig

logger = logging.getLogger(__name__)


class Verdict(Enum):
    INCLUDE = "include"
    IGNORE = "ignore"
    STOP = "stop"


def classify(candidate: CandidatePR, config: RunConfig) -> Verdict:
    """Classify one listing item against the merge window.

    ``STOP`` means the item is outside the window and signals that pagination
    can end after the current page.
    """
    if candidate.merged_at is None:
        return Verdict.IGNORE
    if config.in_window(candidate.merged_at):
        return Verdict.INCLUDE
    if candidate.merged_at < config.window_start and candidate.updated_at < config.window_start:
        return Verdict.STOP
    return Verdict.IGNORE


async def discover(
    client: GitHubClient,
    config: RunConfig,
    max_pages: int = MAX_DISCOVERY_PAGES,
    on_page: Callable[[int, int], None] | None = None,
) -> list[CandidatePR]:
    """Collect merged PRs whose merge time falls inside the run window.

    Args:
        client: API client bound to the run's repository
        config: Run settings providing the window
        max_pages: Page ceiling; a soft safety cap, not a completeness bound
        on_page: Called with (page, found so far) before each page request

    Returns:
        Candidates in listing order (most recently updated first).
    """
    found: list[CandidatePR] = []
    seen: set[int] = set()
    stop = False
    page = 1

    while not stop:
        if page > max_pages:
            logger.warning(
                f"Discovery hit the {max_pages}-page ceiling for {config.full_name}; "
                "older in-window PRs may be missing"
            )
            break

        if on_page:
            on_page(page, len(found))
        items = await client.list_closed_pulls(page=page, per_page=PER_PAGE)
        if not items:
            break

        for item in items:
            candidate = CandidatePR.from_api(item)
            verdict = classify(candidate, config)
            if verdict is Verdict.INCLUDE and candidate.id not in seen:
                # An update between two page requests can shift a PR onto the next page
                seen.add(candidate.id)
                found.append(candidate)
            elif verdict is Verdict.STOP:
                stop = True

        logger.debug(f"Discovery page {page}: {len(items)} items, {len(found)} in window")
        page += 1

    logger.info(f"Discovered {len(found)} merged PRs in {config.full_name} after {page - 1} pages")
    return found
