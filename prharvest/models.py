"""Pydantic models for run settings, harvested records and checkpoint state."""

from collections.abc import Iterator
from datetime import UTC, date, datetime, time

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel


def parse_datetime(dt_str: str | None) -> datetime | None:
    """Parse ISO datetime string, returns None if input is empty."""
    if not dt_str:
        return None
    return datetime.fromisoformat(dt_str.replace("Z", "+00:00"))


def parse_datetime_required(dt_str: str) -> datetime:
    """Parse ISO datetime string, raises if input is empty."""
    if not dt_str:
        raise ValueError("datetime string is required")
    return datetime.fromisoformat(dt_str.replace("Z", "+00:00"))


class RunConfig(BaseModel):
    """Settings for one harvest run.

    A run is identified by repository and start date; a checkpoint written
    for one identity is never reused for another. Both dates are inclusive
    whole UTC days. The credential is never serialized.
    """

    model_config = ConfigDict(frozen=True)

    owner: str = Field(min_length=1)
    name: str = Field(min_length=1)
    from_date: date
    until_date: date
    credential: SecretStr | None = Field(default=None, exclude=True, repr=False)

    @model_validator(mode="after")
    def _check_range(self) -> "RunConfig":
        if self.from_date > self.until_date:
            raise ValueError(
                f"from_date {self.from_date} is after until_date {self.until_date}"
            )
        return self

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def window_start(self) -> datetime:
        return datetime.combine(self.from_date, time.min, tzinfo=UTC)

    @property
    def window_end(self) -> datetime:
        return datetime.combine(self.until_date, time.max, tzinfo=UTC)

    def in_window(self, moment: datetime) -> bool:
        return self.window_start <= moment <= self.window_end

    def identity(self) -> tuple[str, date]:
        return (self.full_name.lower(), self.from_date)

    def matches(self, other: "RunConfig") -> bool:
        """True when both configs describe the same run identity."""
        return self.identity() == other.identity()


class CandidatePR(BaseModel):
    """Closed pull request found by discovery, as listed by the API."""

    model_config = ConfigDict(frozen=True)

    id: int
    number: int
    title: str = ""
    author: str = "unknown"
    url: str = ""
    created_at: datetime
    updated_at: datetime
    merged_at: datetime | None = None

    @property
    def merged(self) -> bool:
        return self.merged_at is not None

    @classmethod
    def from_api(cls, pr_data: dict) -> "CandidatePR":
        """Build a candidate from a pull request listing item."""
        user = pr_data.get("user") or {}
        return cls(
            id=pr_data["id"],
            number=pr_data["number"],
            title=pr_data.get("title") or "",
            author=user.get("login", "unknown"),
            url=pr_data.get("html_url", ""),
            created_at=parse_datetime_required(pr_data["created_at"]),
            updated_at=parse_datetime_required(pr_data["updated_at"]),
            merged_at=parse_datetime(pr_data.get("merged_at")),
        )


class EnrichedPR(BaseModel):
    """Metric record for one merged pull request.

    ``reviewer_logins`` is a set: a reviewer who submitted several reviews
    appears once and order carries no meaning. It is written sorted so that
    reports are byte-stable.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    number: int
    title: str
    author: str
    size: int
    commit_count: int
    merge_time_hours: float
    lead_time_hours: float
    month: str
    comment_count: int
    url: str
    reviewer_logins: frozenset[str] = frozenset()

    @field_serializer("reviewer_logins")
    def _serialize_reviewers(self, logins: frozenset[str]) -> list[str]:
        return sorted(logins)


class QuotaStatus(BaseModel):
    """Remaining core API budget."""

    remaining: int = Field(ge=0)
    reset_at: datetime


class RunState(BaseModel):
    """Progress of a run. This is the unit of checkpointing.

    ``processed_ids`` and ``results`` always describe the same PRs, with
    results in processing order. ``skipped_ids`` holds candidates that
    vanished between discovery and enrichment.
    """

    config: RunConfig
    candidates: list[CandidatePR] = Field(default_factory=list)
    processed_ids: set[int] = Field(default_factory=set)
    skipped_ids: set[int] = Field(default_factory=set)
    results: list[EnrichedPR] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_consistency(self) -> "RunState":
        result_ids = [pr.id for pr in self.results]
        if len(set(result_ids)) != len(result_ids):
            raise ValueError("results contain duplicate PR ids")
        if set(result_ids) != self.processed_ids:
            raise ValueError("processed_ids do not match results")
        if self.processed_ids & self.skipped_ids:
            raise ValueError("a PR id is both processed and skipped")
        return self

    @field_serializer("processed_ids", "skipped_ids")
    def _serialize_ids(self, ids: set[int]) -> list[int]:
        return sorted(ids)

    def is_done(self, pr_id: int) -> bool:
        return pr_id in self.processed_ids or pr_id in self.skipped_ids

    def pending(self) -> Iterator[CandidatePR]:
        """Candidates not yet processed or skipped, in discovery order."""
        for candidate in self.candidates:
            if not self.is_done(candidate.id):
                yield candidate

    @property
    def remaining_count(self) -> int:
        return sum(1 for _ in self.pending())

    def record(self, pr: EnrichedPR) -> None:
        if self.is_done(pr.id):
            raise ValueError(f"PR id {pr.id} is already recorded")
        self.results.append(pr)
        self.processed_ids.add(pr.id)

    def narrow_to(self, config: RunConfig) -> int:
        """Drop candidates merged outside ``config``'s window, with their results
        and skips. Returns how many candidates were dropped."""
        keep = [c for c in self.candidates if c.merged_at is not None and config.in_window(c.merged_at)]
        dropped = len(self.candidates) - len(keep)
        if dropped:
            kept_ids = {c.id for c in keep}
            self.candidates = keep
            self.results = [pr for pr in self.results if pr.id in kept_ids]
            self.processed_ids &= kept_ids
            self.skipped_ids &= kept_ids
        return dropped

    def record_skip(self, pr_id: int) -> None:
        if self.is_done(pr_id):
            raise ValueError(f"PR id {pr_id} is already recorded")
        self.skipped_ids.add(pr_id)


class RepoSummary(BaseModel):
    """Repository metadata carried in the report."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    created_at: datetime | None = None


class Period(BaseModel):
    """Requested date range."""

    model_config = ConfigDict(populate_by_name=True)

    from_: date = Field(alias="from")
    until: date


class PeriodStats(BaseModel):
    merged: int
    skipped: int = 0


class Report(BaseModel):
    """Final artifact of a completed run."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    repo_info: RepoSummary
    period: Period
    period_stats: PeriodStats
    generated_at: datetime
    prs: list[EnrichedPR]
