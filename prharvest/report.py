"""Final report assembly and output."""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from .checkpoint import write_json_atomic
from .errors import PersistenceError
from .models import (
    Period,
    PeriodStats,
    Report,
    RepoSummary,
    RunConfig,
    RunState,
    parse_datetime,
)

logger = logging.getLogger(__name__)


def build_report(config: RunConfig, state: RunState, repo_data: dict) -> Report:
    """Assemble the report from collected results and repository metadata."""
    return Report(
        repo_info=RepoSummary(
            name=repo_data.get("name") or config.name,
            created_at=parse_datetime(repo_data.get("created_at")),
        ),
        period=Period(from_=config.from_date, until=config.until_date),
        period_stats=PeriodStats(merged=len(state.results), skipped=len(state.skipped_ids)),
        generated_at=datetime.now(UTC),
        prs=list(state.results),
    )


def write_report(report: Report, path: Path) -> None:
    """Write the report atomically as indented JSON with camelCase keys."""
    try:
        write_json_atomic(path, report.model_dump_json(by_alias=True, indent=2))
    except OSError as e:
        raise PersistenceError(f"Cannot write report {path}: {e}") from e
    logger.info(f"Report with {len(report.prs)} PRs written to {path}")


def load_report(path: Path) -> Report:
    """Read a report written by ``write_report``."""
    try:
        with open(path, encoding="utf-8") as f:
            return Report.model_validate(json.load(f))
    except FileNotFoundError as e:
        raise PersistenceError(f"No report at {path}. Run 'prharvest fetch' first.") from e
    except (OSError, ValueError, ValidationError) as e:
        raise PersistenceError(f"Cannot read report {path}: {e}") from e
