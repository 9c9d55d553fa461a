"""Tests for Pydantic models."""

import json
from datetime import UTC, date, datetime

import pytest
from pydantic import ValidationError

from prharvest.models import (
    CandidatePR,
    EnrichedPR,
    Period,
    PeriodStats,
    Report,
    RepoSummary,
    RunConfig,
    RunState,
    parse_datetime,
)

from fakes import make_pr_item


def make_enriched(pr_id: int = 1001, **overrides) -> EnrichedPR:
    base = {
        "id": pr_id,
        "number": pr_id - 1000,
        "title": "Fix bug",
        "author": "octocat",
        "size": 60,
        "commit_count": 3,
        "merge_time_hours": 10.0,
        "lead_time_hours": 12.0,
        "month": "2024-01",
        "comment_count": 4,
        "url": "https://github.com/acme/widgets/pull/1",
        "reviewer_logins": frozenset({"b", "a"}),
    }
    base.update(overrides)
    return EnrichedPR(**base)


class TestParseDatetime:
    def test_z_suffix(self):
        assert parse_datetime("2024-01-10T12:00:00Z") == datetime(2024, 1, 10, 12, tzinfo=UTC)

    def test_empty_returns_none(self):
        assert parse_datetime(None) is None
        assert parse_datetime("") is None


class TestRunConfig:
    """Test RunConfig validation and identity."""

    def test_rejects_inverted_range(self):
        with pytest.raises(ValidationError, match="after until_date"):
            RunConfig(owner="acme", name="widgets", from_date=date(2024, 2, 1), until_date=date(2024, 1, 1))

    def test_rejects_empty_owner(self):
        with pytest.raises(ValidationError):
            RunConfig(owner="", name="widgets", from_date=date(2024, 1, 1), until_date=date(2024, 1, 2))

    def test_window_includes_whole_until_day(self, run_config):
        assert run_config.in_window(datetime(2024, 1, 1, 0, 0, tzinfo=UTC))
        assert run_config.in_window(datetime(2024, 1, 31, 23, 59, 59, tzinfo=UTC))
        assert not run_config.in_window(datetime(2024, 2, 1, 0, 0, tzinfo=UTC))
        assert not run_config.in_window(datetime(2023, 12, 31, 23, 59, 59, tzinfo=UTC))

    def test_identity_ignores_until_date(self, run_config):
        other = run_config.model_copy(update={"until_date": date(2024, 3, 31)})
        assert run_config.matches(other)

    def test_identity_differs_by_from_date(self, run_config):
        other = run_config.model_copy(update={"from_date": date(2023, 12, 1)})
        assert not run_config.matches(other)

    def test_identity_repo_is_case_insensitive(self, run_config):
        other = run_config.model_copy(update={"owner": "ACME"})
        assert run_config.matches(other)

    def test_credential_never_serialized(self, run_config):
        dumped = run_config.model_dump_json()
        assert "fake-token" not in dumped
        assert "credential" not in json.loads(dumped)
        assert "fake-token" not in repr(run_config)
        assert run_config.credential.get_secret_value() == "fake-token"


class TestCandidatePR:
    def test_from_api(self):
        candidate = CandidatePR.from_api(make_pr_item(7, merged_at="2024-01-10T12:00:00Z"))
        assert candidate.id == 1007
        assert candidate.number == 7
        assert candidate.author == "octocat"
        assert candidate.merged
        assert candidate.merged_at == datetime(2024, 1, 10, 12, tzinfo=UTC)

    def test_unmerged(self):
        candidate = CandidatePR.from_api(make_pr_item(8, merged_at=None))
        assert candidate.merged_at is None
        assert not candidate.merged

    def test_missing_user(self):
        item = make_pr_item(9)
        item["user"] = None
        assert CandidatePR.from_api(item).author == "unknown"


class TestEnrichedPR:
    def test_camel_case_aliases(self):
        data = make_enriched().model_dump(mode="json", by_alias=True)
        assert set(data) == {
            "id", "number", "title", "author", "size", "commitCount", "mergeTimeHours",
            "leadTimeHours", "month", "commentCount", "url", "reviewerLogins",
        }

    def test_reviewers_serialized_sorted(self):
        data = make_enriched(reviewer_logins=frozenset({"zed", "amy", "kim"})).model_dump(mode="json")
        assert data["reviewer_logins"] == ["amy", "kim", "zed"]

    def test_reviewers_set_semantics(self):
        pr = make_enriched(reviewer_logins=["a", "a", "b"])
        assert pr.reviewer_logins == {"a", "b"}

    def test_loads_from_aliases(self):
        pr = make_enriched()
        assert EnrichedPR.model_validate(pr.model_dump(mode="json", by_alias=True)) == pr

    def test_frozen(self):
        pr = make_enriched()
        with pytest.raises(ValidationError):
            pr.size = 1


class TestRunState:
    """Test RunState bookkeeping and invariants."""

    def test_record_and_pending(self, run_config):
        candidates = [CandidatePR.from_api(make_pr_item(n)) for n in (3, 2, 1)]
        state = RunState(config=run_config, candidates=candidates)

        state.record(make_enriched(1003))
        state.record_skip(1002)

        assert [c.number for c in state.pending()] == [1]
        assert state.remaining_count == 1
        assert state.processed_ids == {1003}
        assert state.skipped_ids == {1002}

    def test_narrow_to_earlier_end(self, run_config):
        candidates = [
            CandidatePR.from_api(make_pr_item(3, merged_at="2024-01-20T00:00:00Z")),
            CandidatePR.from_api(make_pr_item(2, merged_at="2024-01-12T00:00:00Z")),
            CandidatePR.from_api(make_pr_item(1, merged_at="2024-01-05T00:00:00Z")),
        ]
        state = RunState(config=run_config, candidates=candidates)
        state.record(make_enriched(1003))
        state.record_skip(1002)

        dropped = state.narrow_to(run_config.model_copy(update={"until_date": date(2024, 1, 15)}))

        assert dropped == 1
        assert [c.number for c in state.candidates] == [2, 1]
        assert state.results == []
        assert state.processed_ids == set()
        assert state.skipped_ids == {1002}

    def test_narrow_to_same_window_keeps_everything(self, run_config):
        state = RunState(config=run_config, candidates=[CandidatePR.from_api(make_pr_item(1))])
        state.record(make_enriched(1001))
        assert state.narrow_to(run_config) == 0
        assert state.processed_ids == {1001}

    def test_record_twice_rejected(self, run_config):
        state = RunState(config=run_config)
        state.record(make_enriched(1001))
        with pytest.raises(ValueError, match="already recorded"):
            state.record(make_enriched(1001))
        with pytest.raises(ValueError, match="already recorded"):
            state.record_skip(1001)

    def test_processed_ids_must_match_results(self, run_config):
        with pytest.raises(ValidationError, match="do not match"):
            RunState(config=run_config, processed_ids={1001}, results=[])

    def test_duplicate_results_rejected(self, run_config):
        pr = make_enriched(1001)
        with pytest.raises(ValidationError, match="duplicate"):
            RunState(config=run_config, processed_ids={1001}, results=[pr, pr])

    def test_processed_and_skipped_disjoint(self, run_config):
        with pytest.raises(ValidationError, match="both processed and skipped"):
            RunState(
                config=run_config,
                processed_ids={1001},
                skipped_ids={1001},
                results=[make_enriched(1001)],
            )

    def test_json_round_trip_preserves_order(self, run_config):
        state = RunState(config=run_config)
        for pr_id in (1005, 1001, 1003):
            state.record(make_enriched(pr_id))

        loaded = RunState.model_validate_json(state.model_dump_json())

        assert [pr.id for pr in loaded.results] == [1005, 1001, 1003]
        assert loaded.config.matches(run_config)
        assert loaded.config.credential is None


class TestReport:
    def test_report_uses_output_field_names(self):
        report = Report(
            repo_info=RepoSummary(name="widgets", created_at=datetime(2019, 5, 1, tzinfo=UTC)),
            period=Period(from_=date(2024, 1, 1), until=date(2024, 1, 31)),
            period_stats=PeriodStats(merged=1),
            generated_at=datetime(2024, 2, 1, tzinfo=UTC),
            prs=[make_enriched()],
        )
        data = json.loads(report.model_dump_json(by_alias=True))

        assert data["repoInfo"] == {"name": "widgets", "createdAt": "2019-05-01T00:00:00Z"}
        assert data["period"] == {"from": "2024-01-01", "until": "2024-01-31"}
        assert data["periodStats"] == {"merged": 1, "skipped": 0}
        assert data["prs"][0]["mergeTimeHours"] == 10.0
        assert Report.model_validate(data) == report
