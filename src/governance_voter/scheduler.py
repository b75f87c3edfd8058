"""Periodic execution of voting rounds."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from governance_voter.round import RoundSummary, VotingRound

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 1800.0


@dataclass
class SchedulerStats:
    """Statistics for the scheduler."""

    started_at: datetime | None = None
    runs: int = 0
    skipped_triggers: int = 0
    last_run_at: datetime | None = None
    last_summary: RoundSummary | None = None


class RoundScheduler:
    """Runs a VotingRound every ``interval_seconds``, one at a time.

    A trigger that arrives while a round is in progress is skipped, not
    queued.

    Example:
        ```python
        scheduler = RoundScheduler(voting_round, interval_seconds=1800)
        task = asyncio.create_task(scheduler.run_forever())
        ...
        scheduler.stop()
        await task
        ```
    """

    def __init__(
        self,
        voting_round: VotingRound,
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        max_runs: int | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._round = voting_round
        self._interval = interval_seconds
        self._max_runs = max_runs
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self.stats = SchedulerStats()

    @property
    def is_running_round(self) -> bool:
        return self._lock.locked()

    async def trigger(self) -> RoundSummary | None:
        """Run a round now unless one is already in progress.

        Returns:
            The round summary, or None if the trigger was skipped.
        """
        if self._lock.locked():
            self.stats.skipped_triggers += 1
            logger.warning("Voting round already in progress, skipping trigger")
            return None

        async with self._lock:
            self.stats.last_run_at = datetime.now(UTC)
            summary = await self._round.run()
            self.stats.runs += 1
            self.stats.last_summary = summary
            return summary

    def stop(self) -> None:
        self._stop_event.set()

    async def run_forever(self) -> None:
        """Trigger rounds on the interval until stopped or ``max_runs`` is reached."""
        self.stats.started_at = datetime.now(UTC)
        logger.info("Scheduler started (interval=%.0fs)", self._interval)

        while not self._stop_event.is_set():
            await self.trigger()
            if self._max_runs is not None and self.stats.runs >= self._max_runs:
                logger.info("Reached %d scheduled runs", self._max_runs)
                break
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)

        logger.info("Scheduler stopped after %d runs", self.stats.runs)
