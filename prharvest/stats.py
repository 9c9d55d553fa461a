"""Aggregate statistics over a harvest report.

Loads the report's PRs into an in-memory DuckDB table (via Arrow) and computes
the monthly rollups, rankings and outliers consumed by the dashboard.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import duckdb
import pyarrow as pa

from .checkpoint import write_json_atomic
from .errors import PersistenceError
from .models import Report
from .report import load_report

logger = logging.getLogger(__name__)

PR_SCHEMA = pa.schema(
    [
        ("id", pa.int64()),
        ("number", pa.int64()),
        ("author", pa.string()),
        ("month", pa.string()),
        ("size", pa.int64()),
        ("mergeTimeHours", pa.float64()),
        ("leadTimeHours", pa.float64()),
        ("commentCount", pa.int64()),
        ("reviewCount", pa.int64()),
        ("reviewerLogins", pa.list_(pa.string())),
    ]
)


def pr_details(report: Report) -> list[dict]:
    """PR records as written in the report, plus a distinct reviewer count."""
    details = []
    for pr in report.prs:
        record = pr.model_dump(mode="json", by_alias=True)
        record["reviewCount"] = len(pr.reviewer_logins)
        details.append(record)
    return details


def get_connection(details: list[dict]) -> duckdb.DuckDBPyConnection:
    """Get DuckDB connection with a ``prs`` table over the given records."""
    rows = [{name: record[name] for name in PR_SCHEMA.names} for record in details]
    con = duckdb.connect()
    con.register("prs", pa.Table.from_pylist(rows, schema=PR_SCHEMA))
    return con


def fetch_dicts(con: duckdb.DuckDBPyConnection, query: str) -> list[dict]:
    """Run a query and return rows as dicts keyed by column name."""
    cursor = con.execute(query)
    columns = [column[0] for column in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def summary(con: duckdb.DuckDBPyConnection) -> dict:
    return fetch_dicts(con, """
        SELECT
            COUNT(*) AS "merged",
            AVG(size) AS "avgSize",
            AVG(mergeTimeHours) AS "avgTtm",
            AVG(leadTimeHours) AS "avgLeadTime"
        FROM prs
    """)[0]


def monthly_stats(con: duckdb.DuckDBPyConnection) -> list[dict]:
    return fetch_dicts(con, """
        SELECT
            month AS "month",
            COUNT(*) AS "count",
            AVG(size) AS "avgSize",
            MIN(size) AS "minSize",
            MAX(size) AS "maxSize",
            AVG(mergeTimeHours) AS "avgTtm",
            AVG(leadTimeHours) AS "avgLeadTime",
            AVG(commentCount) AS "avgComments",
            AVG(reviewCount) AS "avgReviewers"
        FROM prs
        GROUP BY month
        ORDER BY month
    """)


def merger_ranking(con: duckdb.DuckDBPyConnection) -> list[dict]:
    return fetch_dicts(con, """
        SELECT
            author AS "login",
            COUNT(*) AS "merged",
            AVG(mergeTimeHours) AS "avgTime"
        FROM prs
        GROUP BY author
        ORDER BY "merged" DESC, "login"
    """)


def reviewer_ranking(con: duckdb.DuckDBPyConnection) -> list[dict]:
    """PRs reviewed per login. Each PR counts once per reviewer."""
    return fetch_dicts(con, """
        WITH reviewer_rows AS (
            SELECT UNNEST(reviewerLogins) AS login FROM prs
        )
        SELECT
            login AS "login",
            COUNT(*) AS "count"
        FROM reviewer_rows
        GROUP BY login
        ORDER BY "count" DESC, "login"
    """)


OUTLIER_KEYS = {"slowest": "mergeTimeHours", "biggest": "size", "mostComments": "commentCount"}


def outliers(details: list[dict]) -> dict:
    """Largest PR per metric. Ties go to the PR listed first in the report."""
    return {
        name: max(details, key=lambda record: record[column]) if details else None
        for name, column in OUTLIER_KEYS.items()
    }


def build_stats(report: Report) -> dict:
    """Compute the dashboard statistics for a report."""
    details = pr_details(report)
    stats = {
        "repoInfo": report.repo_info.model_dump(mode="json", by_alias=True),
        "period": report.period.model_dump(mode="json", by_alias=True),
    }

    if not details:
        stats.update(
            summary={"merged": 0, "avgSize": None, "avgTtm": None, "avgLeadTime": None},
            monthlyStats=[],
            rankings={"mergers": [], "reviewers": []},
            outliers=outliers(details),
            scatterData=[],
        )
        return stats

    con = get_connection(details)
    try:
        stats.update(
            summary=summary(con),
            monthlyStats=monthly_stats(con),
            rankings={"mergers": merger_ranking(con), "reviewers": reviewer_ranking(con)},
            outliers=outliers(details),
            scatterData=[{"x": record["size"], "y": record["mergeTimeHours"]} for record in details],
        )
    finally:
        con.close()
    return stats


def write_stats(report_path: Path, stats_path: Path, details_path: Path) -> dict:
    """Read a report and write the stats and details files next to it."""
    report = load_report(report_path)
    stats = build_stats(report)
    try:
        write_json_atomic(stats_path, json.dumps(stats))
        write_json_atomic(details_path, json.dumps(pr_details(report)))
    except OSError as e:
        raise PersistenceError(f"Cannot write stats: {e}") from e
    logger.info(f"Stats for {len(report.prs)} PRs written to {stats_path}")
    return stats
