"""Resumable harvest run.

Drives one run through INIT -> DISCOVERING -> ENRICHING -> ASSEMBLING -> DONE,
or out to SUSPENDED when quota runs low or the API fails transiently. PRs are
enriched one at a time and the checkpoint is saved after each, so at most one
in-flight enrichment is lost to a crash and no PR id is enriched twice.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from rich.console import Console
from rich.status import Status

from .checkpoint import CheckpointStore
from .discovery import discover
from .enrichment import enrich
from .errors import NotFoundError, QuotaExhausted, TransientAPIError
from .github_client import GitHubClient
from .models import RunConfig, RunState
from .quota import QuotaGate
from .report import build_report, write_report

logger = logging.getLogger(__name__)


class RunPhase(Enum):
    INIT = "init"
    DISCOVERING = "discovering"
    ENRICHING = "enriching"
    ASSEMBLING = "assembling"
    DONE = "done"
    SUSPENDED = "suspended"


@dataclass
class RunOutcome:
    """How a run ended, for display and exit codes."""

    phase: RunPhase
    processed: int
    skipped: int
    remaining: int
    reason: str = ""
    reset_at: datetime | None = None
    report_path: Path | None = None

    @property
    def suspended(self) -> bool:
        return self.phase is RunPhase.SUSPENDED


class RunController:
    """Orchestrates discovery, enrichment and report assembly for one run."""

    def __init__(
        self,
        client: GitHubClient,
        store: CheckpointStore,
        report_path: Path,
        console: Console,
        quota: QuotaGate | None = None,
    ):
        self.client = client
        self.store = store
        self.report_path = Path(report_path)
        self.console = console
        self.quota = quota or QuotaGate(client)
        self.phase = RunPhase.INIT
        self._status: Status | None = None

    def _update_status(self, text: str) -> None:
        if self._status is not None:
            self._status.update(text)

    def _start(self, config: RunConfig) -> RunState:
        self.phase = RunPhase.INIT
        state = self.store.load_for(config)
        if state is not None:
            dropped = state.narrow_to(config)
            if dropped:
                logger.info(f"Dropped {dropped} stored candidates merged after {config.until_date}")
                self.store.save(state)
            logger.info(
                f"Resumed from checkpoint: {len(state.processed_ids)} processed, "
                f"{len(state.skipped_ids)} skipped, {len(state.candidates)} candidates"
            )
            self.console.print(
                f"[green]Resuming: {len(state.processed_ids)} of {len(state.candidates)} PRs processed[/]"
            )
            return state

        state = RunState(config=config)
        self.store.save(state)
        return state

    async def _discover(self, state: RunState, config: RunConfig) -> None:
        self.phase = RunPhase.DISCOVERING
        quota = await self.quota.require()
        self.console.print(f"[dim]API credits: {quota.remaining}[/]")

        def on_page(page: int, found: int) -> None:
            self._update_status(f"Fetching page {page} (found {found} so far)...")

        state.candidates = await discover(self.client, config, on_page=on_page)
        self.store.save(state)
        self.console.print(
            f"[green]Found {len(state.candidates)} merged PRs "
            f"between {config.from_date} and {config.until_date}[/]"
        )

    async def _enrich_pending(self, state: RunState) -> None:
        self.phase = RunPhase.ENRICHING
        pending = list(state.pending())
        total = len(pending)

        for index, candidate in enumerate(pending, 1):
            quota = await self.quota.require()
            self._update_status(
                f"Processing #{candidate.number} ({index}/{total}, {quota.remaining} credits left)"
            )

            try:
                record = await enrich(self.client, candidate)
            except NotFoundError as e:
                # Permanently gone: remember it so no resume retries it
                logger.warning(f"PR #{candidate.number} skipped: {e}")
                state.record_skip(candidate.id)
                self.store.save(state)
                continue

            state.record(record)
            self.store.save(state)
            logger.info(f"PR #{candidate.number} enriched ({index}/{total})")

    async def _assemble(self, state: RunState, config: RunConfig) -> RunOutcome:
        self.phase = RunPhase.ASSEMBLING
        self._update_status("Writing report...")
        repo_data = await self.client.get_repository()
        report = build_report(config, state, repo_data)
        write_report(report, self.report_path)
        self.store.discard()

        self.phase = RunPhase.DONE
        return RunOutcome(
            phase=self.phase,
            processed=len(state.results),
            skipped=len(state.skipped_ids),
            remaining=0,
            report_path=self.report_path,
        )

    def _suspend(self, state: RunState, reason: str, reset_at: datetime | None = None) -> RunOutcome:
        self.phase = RunPhase.SUSPENDED
        remaining = state.remaining_count
        logger.info(f"Run suspended with {remaining} PRs remaining: {reason}")
        return RunOutcome(
            phase=self.phase,
            processed=len(state.results),
            skipped=len(state.skipped_ids),
            remaining=remaining,
            reason=reason,
            reset_at=reset_at,
        )

    async def run(self, config: RunConfig) -> RunOutcome:
        """Run, or resume, the harvest described by ``config``.

        Returns a DONE outcome once the report is written and the checkpoint
        removed, or a SUSPENDED outcome with the checkpoint left in place.

        Raises:
            PersistenceError: The checkpoint or report could not be written.
            APIError: A non-transient API failure such as bad credentials.
        """
        logger.info("=" * 60)
        logger.info(f"Starting run: {config.full_name} {config.from_date} to {config.until_date}")

        state = self._start(config)
        with self.console.status("Starting...") as status:
            self._status = status
            try:
                if not state.candidates:
                    await self._discover(state, config)
                await self._enrich_pending(state)
                return await self._assemble(state, config)
            except QuotaExhausted as e:
                return self._suspend(state, str(e), e.status.reset_at)
            except TransientAPIError as e:
                return self._suspend(state, str(e))
            finally:
                self._status = None
