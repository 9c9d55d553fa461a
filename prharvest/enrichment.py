"""Per-PR enrichment: detail, reviews, commits and comments.

Uses a trio nursery to fetch the four resources concurrently.
"""

import logging
from datetime import datetime

import trio

from .errors import HarvestError, NotFoundError
from .github_client import GitHubClient
from .models import CandidatePR, EnrichedPR, parse_datetime

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_HOUR


def first_commit_date(commits: list[dict]) -> datetime | None:
    """Author date of the earliest listed commit, None if missing or malformed."""
    if not commits:
        return None
    author = (commits[0].get("commit") or {}).get("author") or {}
    try:
        return parse_datetime(author.get("date"))
    except (TypeError, ValueError):
        return None


def derive_enriched_pr(
    candidate: CandidatePR,
    pr_data: dict,
    reviews: list[dict],
    commits: list[dict],
    comments: list[dict],
) -> EnrichedPR:
    """Build the metric record for one PR from its fetched resources."""
    created_at = parse_datetime(pr_data.get("created_at")) or candidate.created_at
    merged_at = parse_datetime(pr_data.get("merged_at")) or candidate.merged_at
    if merged_at is None:
        raise ValueError(f"PR #{candidate.number} has no merge timestamp")

    # Commit history can be empty for some merges; lead time then equals merge time
    started_at = first_commit_date(commits) or created_at

    reviewer_logins = frozenset(
        review["user"]["login"]
        for review in reviews
        if (review.get("user") or {}).get("login")
    )

    return EnrichedPR(
        id=candidate.id,
        number=candidate.number,
        title=pr_data.get("title") or candidate.title,
        author=(pr_data.get("user") or {}).get("login") or candidate.author,
        size=(pr_data.get("additions") or 0) + (pr_data.get("deletions") or 0),
        commit_count=len(commits),
        merge_time_hours=hours_between(created_at, merged_at),
        lead_time_hours=hours_between(started_at, merged_at),
        month=merged_at.strftime("%Y-%m"),
        comment_count=len(comments),
        url=pr_data.get("html_url") or candidate.url,
        reviewer_logins=reviewer_logins,
    )


def _leaf_exceptions(group: BaseExceptionGroup) -> list[BaseException]:
    leaves = []
    for exc in group.exceptions:
        if isinstance(exc, BaseExceptionGroup):
            leaves.extend(_leaf_exceptions(exc))
        else:
            leaves.append(exc)
    return leaves


async def enrich(client: GitHubClient, candidate: CandidatePR) -> EnrichedPR:
    """Fetch everything needed for one PR and derive its record.

    All four requests must succeed. The first failure cancels the others and
    is re-raised as-is; a ``NotFoundError`` wins over other failures since it
    is permanent.
    """
    pr_number = candidate.number
    fetched: dict[str, object] = {}

    async def fetch(key: str, request) -> None:
        fetched[key] = await request(pr_number)

    try:
        async with trio.open_nursery() as nursery:
            nursery.start_soon(fetch, "pr", client.get_pull_request)
            nursery.start_soon(fetch, "reviews", client.get_pr_reviews)
            nursery.start_soon(fetch, "commits", client.get_pr_commits)
            nursery.start_soon(fetch, "comments", client.get_pr_comments)
    except ExceptionGroup as group:
        leaves = _leaf_exceptions(group)
        for exc in leaves:
            if isinstance(exc, NotFoundError):
                raise exc from None
        for exc in leaves:
            if isinstance(exc, HarvestError):
                raise exc from None
        raise

    record = derive_enriched_pr(
        candidate,
        fetched["pr"],
        fetched["reviews"],
        fetched["commits"],
        fetched["comments"],
    )
    logger.debug(
        f"PR #{pr_number}: size={record.size} commits={record.commit_count} "
        f"reviewers={len(record.reviewer_logins)} comments={record.comment_count}"
    )
    return record
