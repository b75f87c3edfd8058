"""Per-wallet vote execution.

This module provides the VoteExecutor class that casts a decided vote from
every node wallet in turn, skipping wallets that already voted and isolating
each wallet's failures from the others.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from governance_voter.chain.client import ChainClient, VoteReceipt
from governance_voter.chain.timeouts import call_with_timeout
from governance_voter.chain.wallets import WalletSet
from governance_voter.config import Settings
from governance_voter.proposals.models import Proposal
from governance_voter.strategy.models import VoteDecision

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_HAS_VOTED_TIMEOUT_SECONDS = 3.0
DEFAULT_VOTE_TIMEOUT_SECONDS = 30.0
DEFAULT_WALLET_DELAY_SECONDS = 3.0

BUDGET_EXHAUSTED = "round budget exhausted"


class VoteOutcome(str, Enum):
    """What happened for one wallet on one proposal."""

    SUCCESS = "success"
    ALREADY_VOTED = "already_voted"
    SKIPPED_BY_STRATEGY = "skipped_by_strategy"
    TIMEOUT = "timeout"
    ERROR = "error"
    DRY_RUN = "dry_run"


@dataclass(frozen=True)
class WalletVoteRecord:
    """Result of one wallet's attempt on one proposal.

    ``already_voted`` is None when the vote-status check could not complete
    (or was never made).
    """

    wallet_index: int
    outcome: VoteOutcome
    already_voted: bool | None = None
    tx_hash: str | None = None
    error: str | None = None
    wallet_address: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallet_index": self.wallet_index,
            "wallet_address": self.wallet_address,
            "outcome": self.outcome.value,
            "already_voted": self.already_voted,
            "tx_hash": self.tx_hash,
            "error": self.error,
        }


class VoteExecutor:
    """Casts a decision's vote from each configured wallet, sequentially.

    For every wallet: check ``has_voted`` under a short timeout, then submit
    under a longer one. A ``has_voted`` check that times out or fails skips
    the wallet for this round rather than risking a duplicate submission.

    Example:
        ```python
        executor = VoteExecutor(client, wallet_count=5)
        records = await executor.execute_votes(proposal, decision)
        cast = sum(r.outcome is VoteOutcome.SUCCESS for r in records)
        ```
    """

    def __init__(
        self,
        client: ChainClient,
        wallet_count: int,
        *,
        addresses: Sequence[str] | None = None,
        has_voted_timeout_seconds: float = DEFAULT_HAS_VOTED_TIMEOUT_SECONDS,
        vote_timeout_seconds: float = DEFAULT_VOTE_TIMEOUT_SECONDS,
        wallet_delay_seconds: float = DEFAULT_WALLET_DELAY_SECONDS,
        dry_run: bool = False,
    ) -> None:
        """Initialize the executor.

        Args:
            client: Chain client used for vote checks and submissions.
            wallet_count: Number of node wallets (indices 0..wallet_count-1).
            addresses: Optional wallet addresses, recorded for reconciliation.
            has_voted_timeout_seconds: Timeout for each vote-status check.
            vote_timeout_seconds: Timeout for each vote submission.
            wallet_delay_seconds: Pause after each non-final wallet.
            dry_run: Check vote status but never submit.
        """
        if wallet_count < 1:
            raise ValueError("wallet_count must be >= 1")
        if addresses is not None and len(addresses) != wallet_count:
            raise ValueError("addresses must have one entry per wallet")
        self._client = client
        self._wallet_count = wallet_count
        self._addresses = list(addresses) if addresses is not None else None
        self._has_voted_timeout = has_voted_timeout_seconds
        self._vote_timeout = vote_timeout_seconds
        self._wallet_delay = wallet_delay_seconds
        self._dry_run = dry_run

    @classmethod
    def from_settings(
        cls, settings: Settings, client: ChainClient, wallets: WalletSet
    ) -> VoteExecutor:
        voting = settings.voting
        return cls(
            client,
            wallets.wallet_count(),
            addresses=wallets.addresses,
            has_voted_timeout_seconds=voting.has_voted_timeout_seconds,
            vote_timeout_seconds=voting.vote_timeout_seconds,
            wallet_delay_seconds=voting.wallet_delay_seconds,
            dry_run=settings.dry_run,
        )

    @property
    def wallet_count(self) -> int:
        return self._wallet_count

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def _address(self, index: int) -> str | None:
        return self._addresses[index] if self._addresses is not None else None

    async def execute_votes(
        self,
        proposal: Proposal,
        decision: VoteDecision,
        *,
        deadline: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> list[WalletVoteRecord]:
        """Execute ``decision`` on ``proposal`` from every wallet.

        Never raises; each wallet ends with exactly one record, in wallet order.
        Once ``clock()`` passes ``deadline``, the wallets not yet started are
        recorded as TIMEOUT with error ``BUDGET_EXHAUSTED``.
        """
        if not decision.should_vote:
            logger.info("Proposal %d: strategy abstained, skipping all wallets", proposal.id)
            return [
                WalletVoteRecord(
                    wallet_index=i,
                    outcome=VoteOutcome.SKIPPED_BY_STRATEGY,
                    wallet_address=self._address(i),
                )
                for i in range(self._wallet_count)
            ]

        records: list[WalletVoteRecord] = []
        for index in range(self._wallet_count):
            if index > 0 and deadline is not None and clock() > deadline:
                logger.warning(
                    "Proposal %d: round budget exhausted, %d wallets not attempted",
                    proposal.id,
                    self._wallet_count - index,
                )
                records.extend(
                    WalletVoteRecord(
                        wallet_index=i,
                        outcome=VoteOutcome.TIMEOUT,
                        error=BUDGET_EXHAUSTED,
                        wallet_address=self._address(i),
                    )
                    for i in range(index, self._wallet_count)
                )
                break
            record = await self._execute_for_wallet(index, proposal, decision)
            records.append(record)
            if index < self._wallet_count - 1 and self._wallet_delay > 0:
                await asyncio.sleep(self._wallet_delay)
        return records

    async def _execute_for_wallet(
        self, index: int, proposal: Proposal, decision: VoteDecision
    ) -> WalletVoteRecord:
        label = f"node-{index + 1}"
        address = self._address(index)

        check = await call_with_timeout(
            self._client.has_voted(proposal.id, index),
            self._has_voted_timeout,
            label=f"{label} hasVoted({proposal.id})",
        )
        if check.timed_out:
            logger.warning(
                "%s: vote status on proposal %d unknown (timed out), skipping this round",
                label,
                proposal.id,
            )
            return WalletVoteRecord(
                wallet_index=index,
                outcome=VoteOutcome.TIMEOUT,
                error="has_voted check timed out",
                wallet_address=address,
            )
        if not check.ok:
            return WalletVoteRecord(
                wallet_index=index,
                outcome=VoteOutcome.ERROR,
                error=f"has_voted check failed: {check.describe()}",
                wallet_address=address,
            )
        if check.value:
            logger.info("%s already voted on proposal %d", label, proposal.id)
            return WalletVoteRecord(
                wallet_index=index,
                outcome=VoteOutcome.ALREADY_VOTED,
                already_voted=True,
                wallet_address=address,
            )

        if self._dry_run:
            logger.info(
                "[dry-run] %s would vote %s on proposal %d",
                label,
                "FOR" if decision.support else "AGAINST",
                proposal.id,
            )
            return WalletVoteRecord(
                wallet_index=index,
                outcome=VoteOutcome.DRY_RUN,
                already_voted=False,
                wallet_address=address,
            )

        submission = await call_with_timeout(
            self._client.vote(index, proposal.id, decision.support),
            self._vote_timeout,
            label=f"{label} vote({proposal.id})",
        )
        if submission.timed_out:
            # The transaction may still land; it is not retried this round.
            return WalletVoteRecord(
                wallet_index=index,
                outcome=VoteOutcome.TIMEOUT,
                already_voted=False,
                error=f"vote not confirmed within {self._vote_timeout:.0f}s",
                wallet_address=address,
            )
        if not submission.ok:
            return WalletVoteRecord(
                wallet_index=index,
                outcome=VoteOutcome.ERROR,
                already_voted=False,
                error=submission.describe(),
                wallet_address=address,
            )

        receipt: VoteReceipt = submission.value  # type: ignore[assignment]
        if not receipt.succeeded:
            logger.error("%s vote on proposal %d reverted: %s", label, proposal.id, receipt.tx_hash)
            return WalletVoteRecord(
                wallet_index=index,
                outcome=VoteOutcome.ERROR,
                already_voted=False,
                tx_hash=receipt.tx_hash,
                error=f"transaction failed with status {receipt.status}",
                wallet_address=address,
            )

        logger.info(
            "%s voted %s on proposal %d: %s",
            label,
            "FOR" if decision.support else "AGAINST",
            proposal.id,
            receipt.tx_hash,
        )
        return WalletVoteRecord(
            wallet_index=index,
            outcome=VoteOutcome.SUCCESS,
            already_voted=False,
            tx_hash=receipt.tx_hash,
            wallet_address=address,
        )
