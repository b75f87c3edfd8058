"""Active proposal discovery.

Scans a sliding window of the most recent proposal IDs, normalizes each
result and keeps the ones still open for voting. Individual read failures
are isolated; the reader as a whole never raises.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from governance_voter.chain.client import ChainClient, is_rate_limit_error
from governance_voter.chain.timeouts import call_with_timeout
from governance_voter.config import Settings
from governance_voter.proposals.models import FIELD_MAP_V1, Proposal, ProposalFieldMap, get_field_map

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_WINDOW_SIZE = 10
DEFAULT_COUNT_TIMEOUT_SECONDS = 5.0
DEFAULT_ITEM_TIMEOUT_SECONDS = 5.0
DEFAULT_ITEM_DELAY_SECONDS = 1.0
DEFAULT_RATE_LIMIT_BACKOFF_SECONDS = 3.0
DEFAULT_READ_BUDGET_SECONDS = 30.0


class ProposalReader:
    """Reads and normalizes active proposals from the governance contract.

    Example:
        ```python
        reader = ProposalReader(client, window_size=20)
        for proposal in await reader.list_active():
            print(proposal.id, proposal.description)
        ```
    """

    def __init__(
        self,
        client: ChainClient,
        *,
        field_map: ProposalFieldMap = FIELD_MAP_V1,
        window_size: int = DEFAULT_WINDOW_SIZE,
        count_timeout_seconds: float = DEFAULT_COUNT_TIMEOUT_SECONDS,
        item_timeout_seconds: float = DEFAULT_ITEM_TIMEOUT_SECONDS,
        item_delay_seconds: float = DEFAULT_ITEM_DELAY_SECONDS,
        rate_limit_backoff_seconds: float = DEFAULT_RATE_LIMIT_BACKOFF_SECONDS,
        read_budget_seconds: float = DEFAULT_READ_BUDGET_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the reader.

        Args:
            client: Governance contract client.
            field_map: Layout of the raw ``getProposal`` tuple.
            window_size: How many of the latest proposals to inspect.
            count_timeout_seconds: Timeout for the proposal count read.
            item_timeout_seconds: Timeout for each proposal read.
            item_delay_seconds: Pause between proposal reads.
            rate_limit_backoff_seconds: Extra pause after a throttled read.
            read_budget_seconds: Overall budget for one scan.
            clock: Wall-clock source (UNIX seconds) used for deadlines.
        """
        if window_size < 1:
            raise ValueError("window_size must be >= 1")
        self._client = client
        self._field_map = field_map
        self._window_size = window_size
        self._count_timeout = count_timeout_seconds
        self._item_timeout = item_timeout_seconds
        self._item_delay = item_delay_seconds
        self._rate_limit_backoff = rate_limit_backoff_seconds
        self._read_budget = read_budget_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, client: ChainClient) -> ProposalReader:
        voting = settings.voting
        return cls(
            client,
            field_map=get_field_map(settings.chain.proposal_field_map),
            window_size=voting.window_size,
            count_timeout_seconds=voting.count_timeout_seconds,
            item_timeout_seconds=voting.proposal_fetch_timeout_seconds,
            item_delay_seconds=voting.proposal_fetch_delay_seconds,
            rate_limit_backoff_seconds=voting.rate_limit_backoff_seconds,
            read_budget_seconds=voting.read_budget_seconds,
        )

    async def get_proposal(self, proposal_id: int) -> Proposal:
        """Read and normalize a single proposal.

        Raises:
            ChainClientError: If the read or decode fails.
        """
        raw = await self._client.get_proposal(proposal_id)
        return Proposal.from_raw(raw, self._field_map)

    async def list_active(self, window_size: int | None = None) -> list[Proposal]:
        """Return votable proposals among the latest ``window_size`` IDs.

        Proposals are returned in ascending ID order. A failed count read or
        an exhausted read budget yields an empty list.
        """
        window = window_size or self._window_size
        started = time.monotonic()

        count_result = await call_with_timeout(
            self._client.get_proposal_count(),
            self._count_timeout,
            label="getProposalCount",
        )
        if not count_result.ok:
            logger.error("Could not read proposal count: %s", count_result.describe())
            return []

        total = int(count_result.value or 0)
        if total <= 0:
            logger.info("No proposals on chain")
            return []

        start_from = max(1, total - window + 1)
        logger.info(
            "Scanning proposals %d..%d (window=%d, total=%d)",
            start_from,
            total,
            window,
            total,
        )

        active: list[Proposal] = []
        for proposal_id in range(start_from, total + 1):
            if time.monotonic() - started > self._read_budget:
                logger.error(
                    "Proposal scan exceeded its %.1fs budget at proposal %d; discarding results",
                    self._read_budget,
                    proposal_id,
                )
                return []

            result = await call_with_timeout(
                self.get_proposal(proposal_id),
                self._item_timeout,
                label=f"getProposal({proposal_id})",
            )
            if result.ok and result.value is not None:
                proposal = result.value
                now = self._clock()
                if proposal.is_votable(now):
                    logger.debug(
                        "Proposal %d active, %.0fs left", proposal_id, proposal.time_left(now)
                    )
                    active.append(proposal)
                else:
                    logger.debug("Proposal %d not votable (state=%s)", proposal_id, proposal.state.name)
            else:
                logger.warning("Skipping proposal %d: %s", proposal_id, result.describe())
                if result.error is not None and is_rate_limit_error(result.error):
                    logger.info("Rate limited, backing off %.1fs", self._rate_limit_backoff)
                    await asyncio.sleep(self._rate_limit_backoff)

            if proposal_id < total and self._item_delay > 0:
                await asyncio.sleep(self._item_delay)

        logger.info("Found %d active proposals out of %d scanned", len(active), total - start_from + 1)
        return active
