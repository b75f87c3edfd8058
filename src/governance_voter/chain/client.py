"""AssetDAO governance contract client.

This module provides the chain access used by the voting nodes with:
- Rate limiting to respect provider limits
- Retry logic with exponential backoff on reads
- Failover to a secondary RPC URL
- Signed vote submission from the configured node wallets
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol, TypeVar

from web3 import AsyncWeb3
from web3.contract import AsyncContract
from web3.exceptions import Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware
from web3.providers import AsyncHTTPProvider

from governance_voter.chain.abi import ASSET_DAO_ABI
from governance_voter.chain.wallets import WalletSet
from governance_voter.config import Settings
from governance_voter.errors import RateLimitError, RPCError, VoteSubmissionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default configuration
DEFAULT_MAX_REQUESTS_PER_SECOND = 5
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0
DEFAULT_RECEIPT_TIMEOUT_SECONDS = 120.0
PRIMARY_RECOVERY_INTERVAL_SECONDS = 60.0

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (Web3Exception, OSError, TimeoutError)
_RATE_LIMIT_MARKERS = ("429", "rate limit", "too many requests")


def is_rate_limit_error(error: BaseException) -> bool:
    """Heuristically detect provider throttling from an exception message."""
    if isinstance(error, RateLimitError):
        return True
    message = str(error).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


@dataclass(frozen=True)
class VoteReceipt:
    """Confirmed vote transaction."""

    tx_hash: str
    status: int
    block_number: int | None = None
    gas_used: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class ChainClient(Protocol):
    """Operations the voting pipeline needs from the governance contract."""

    async def get_proposal_count(self) -> int: ...

    async def get_proposal(self, proposal_id: int) -> Any: ...

    async def has_voted(self, proposal_id: int, wallet_index: int) -> bool: ...

    async def vote(self, wallet_index: int, proposal_id: int, support: bool) -> VoteReceipt: ...

    async def get_balance(self, address: str) -> Decimal: ...

    async def health_check(self) -> bool: ...


class RateLimiter:
    """Token bucket shared by every RPC call of one client.

    Concurrent callers queue on a lock, so tokens are granted in arrival order.
    """

    def __init__(
        self,
        rate: float,
        *,
        burst: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be > 0")
        self.rate = rate
        self.capacity = burst if burst is not None else rate
        self.tokens = self.capacity
        self._clock = clock
        self._updated = clock()
        self._lock = asyncio.Lock()

    @classmethod
    def create(cls, max_requests_per_second: float) -> RateLimiter:
        return cls(max_requests_per_second)

    def _available(self) -> float:
        now = self._clock()
        self.tokens = min(self.capacity, self.tokens + (now - self._updated) * self.rate)
        self._updated = now
        return self.tokens

    async def acquire(self, tokens: float = 1.0) -> None:
        async with self._lock:
            shortfall = tokens - self._available()
            if shortfall > 0:
                await asyncio.sleep(shortfall / self.rate)
                self._available()
            self.tokens -= tokens


@dataclass(frozen=True)
class _Endpoint:
    name: str
    w3: AsyncWeb3
    contract: AsyncContract


class AssetDaoClient:
    """AssetDAO client with rate limiting, retries and RPC failover.

    Reads are retried with exponential backoff, first on the primary RPC and
    then on the fallback. Vote transactions are broadcast exactly once per
    call; a failed send is reported, never silently re-sent.

    Example:
        ```python
        wallets = WalletSet.from_settings(settings.wallets)
        client = AssetDaoClient.from_settings(settings, wallets)

        count = await client.get_proposal_count()
        raw = await client.get_proposal(count)
        if not await client.has_voted(count, wallet_index=0):
            receipt = await client.vote(0, count, support=True)
        ```
    """

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        *,
        wallets: WalletSet,
        fallback_rpc_url: str | None = None,
        chain_id: int = 11155111,
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        receipt_timeout_seconds: float = DEFAULT_RECEIPT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the AssetDAO client.

        Args:
            rpc_url: Primary Ethereum RPC endpoint URL.
            contract_address: AssetDAO contract address.
            wallets: Node wallets used to sign votes.
            fallback_rpc_url: Optional fallback RPC URL for failover.
            chain_id: Chain ID embedded in signed transactions.
            max_requests_per_second: Rate limit for RPC calls.
            max_retries: Maximum retry attempts per endpoint.
            retry_delay_seconds: Initial delay between retries.
            receipt_timeout_seconds: How long to poll for a vote receipt.
        """
        self._rpc_url = rpc_url
        self._fallback_rpc_url = fallback_rpc_url
        self._contract_address = AsyncWeb3.to_checksum_address(contract_address)
        self._wallets = wallets
        self._chain_id = chain_id
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds
        self._receipt_timeout = receipt_timeout_seconds

        self._primary = self._new_endpoint("primary", rpc_url)
        self._fallback: _Endpoint | None = None
        if fallback_rpc_url:
            self._fallback = self._new_endpoint("fallback", fallback_rpc_url)

        self._rate_limiter = RateLimiter.create(max_requests_per_second)

        # Track primary RPC health
        self._primary_healthy = True
        self._last_primary_check = 0.0

        # Serializes nonce lookup + broadcast across concurrent callers.
        self._send_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, wallets: WalletSet) -> AssetDaoClient:
        chain = settings.chain
        return cls(
            chain.rpc_url,
            chain.asset_dao_address,
            wallets=wallets,
            fallback_rpc_url=chain.fallback_rpc_url,
            chain_id=chain.chain_id,
            max_requests_per_second=chain.max_requests_per_second,
            max_retries=chain.max_retries,
            retry_delay_seconds=chain.retry_delay_seconds,
            receipt_timeout_seconds=settings.voting.vote_timeout_seconds,
        )

    @property
    def wallets(self) -> WalletSet:
        return self._wallets

    def _new_endpoint(self, name: str, rpc_url: str) -> _Endpoint:
        w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        try:
            w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        except Exception as e:
            logger.warning("Failed to inject PoA middleware (rpc=%s): %s", name, e)
        contract = w3.eth.contract(address=self._contract_address, abi=ASSET_DAO_ABI)
        return _Endpoint(name=name, w3=w3, contract=contract)

    def _should_try_primary(self) -> bool:
        if self._primary_healthy:
            return True
        now = time.monotonic()
        if now - self._last_primary_check > PRIMARY_RECOVERY_INTERVAL_SECONDS:
            self._last_primary_check = now
            return True
        return False

    def _active_endpoint(self) -> _Endpoint:
        if self._should_try_primary() or self._fallback is None:
            return self._primary
        return self._fallback

    async def _try_endpoint(
        self,
        endpoint: _Endpoint,
        label: str,
        call: Callable[[_Endpoint], Awaitable[T]],
    ) -> tuple[bool, T | None, BaseException | None]:
        delay = self._retry_delay
        last_error: BaseException | None = None
        for attempt in range(self._max_retries):
            try:
                return True, await call(endpoint), None
            except _TRANSIENT_ERRORS as e:
                last_error = e
                logger.warning(
                    "%s RPC %s failed (attempt %d/%d): %s",
                    endpoint.name.capitalize(),
                    label,
                    attempt + 1,
                    self._max_retries,
                    e,
                )
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(delay)
                    delay *= 2  # Exponential backoff
        return False, None, last_error

    async def _execute_with_retry(
        self,
        label: str,
        call: Callable[[_Endpoint], Awaitable[T]],
    ) -> T:
        """Execute a read with retry and failover logic.

        Args:
            label: Name of the operation, for logs and errors.
            call: Coroutine factory run against an endpoint.

        Returns:
            Result from the RPC call.

        Raises:
            RateLimitError: If the last failure looked like provider throttling.
            RPCError: If all retries and failover fail.
        """
        await self._rate_limiter.acquire()

        last_error: BaseException | None = None

        if self._should_try_primary():
            ok, result, last_error = await self._try_endpoint(self._primary, label, call)
            if ok:
                self._primary_healthy = True
                return result  # type: ignore[return-value]
            self._primary_healthy = False
            self._last_primary_check = time.monotonic()

        if self._fallback is not None:
            ok, result, error = await self._try_endpoint(self._fallback, label, call)
            if ok:
                logger.info("Fallback RPC succeeded for %s", label)
                return result  # type: ignore[return-value]
            last_error = error

        if last_error is not None and is_rate_limit_error(last_error):
            raise RateLimitError(f"RPC call {label} rate limited: {last_error}")
        raise RPCError(f"RPC call {label} failed after all retries: {last_error}")

    async def get_proposal_count(self) -> int:
        """Return the total number of proposals ever created."""
        count = await self._execute_with_retry(
            "getProposalCount",
            lambda ep: ep.contract.functions.getProposalCount().call(),
        )
        return int(count)

    async def get_proposal(self, proposal_id: int) -> Any:
        """Return the raw ``getProposal`` tuple for ``proposal_id``."""
        return await self._execute_with_retry(
            f"getProposal({proposal_id})",
            lambda ep: ep.contract.functions.getProposal(proposal_id).call(),
        )

    async def has_voted(self, proposal_id: int, wallet_index: int) -> bool:
        """Check whether node wallet ``wallet_index`` already voted on a proposal."""
        address = self._wallets.get_wallet(wallet_index).address
        voted = await self._execute_with_retry(
            f"hasVoted({proposal_id})",
            lambda ep: ep.contract.functions.hasVoted(proposal_id, address).call(),
        )
        return bool(voted)

    async def vote(self, wallet_index: int, proposal_id: int, support: bool) -> VoteReceipt:
        """Sign and broadcast a vote, then wait for its receipt.

        Raises:
            VoteSubmissionError: If the transaction could not be built, signed or sent.
            RPCError: If the nonce lookup fails on every endpoint.
        """
        wallet = self._wallets.get_wallet(wallet_index)
        account = wallet.account

        async with self._send_lock:
            nonce = await self._execute_with_retry(
                "get_transaction_count",
                lambda ep: ep.w3.eth.get_transaction_count(account.address, "pending"),
            )
            await self._rate_limiter.acquire()
            endpoint = self._active_endpoint()
            try:
                tx = await endpoint.contract.functions.vote(proposal_id, support).build_transaction(
                    {
                        "from": account.address,
                        "nonce": nonce,
                        "chainId": self._chain_id,
                    }
                )
                signed = account.sign_transaction(tx)
                tx_hash = await endpoint.w3.eth.send_raw_transaction(signed.raw_transaction)
            except _TRANSIENT_ERRORS as e:
                raise VoteSubmissionError(
                    f"{wallet.label} failed to submit vote on proposal {proposal_id}: {e}",
                    node_index=wallet_index,
                ) from e

        tx_hex = AsyncWeb3.to_hex(tx_hash)
        logger.info(
            "%s submitted vote on proposal %d (support=%s): %s",
            wallet.label,
            proposal_id,
            support,
            tx_hex,
        )

        try:
            receipt = await endpoint.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout
            )
        except _TRANSIENT_ERRORS as e:
            raise VoteSubmissionError(
                f"{wallet.label} vote {tx_hex} was sent but no receipt was obtained: {e}",
                node_index=wallet_index,
            ) from e

        return VoteReceipt(
            tx_hash=tx_hex,
            status=int(receipt["status"]),
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
        )

    async def get_balance(self, address: str) -> Decimal:
        """Get latest wallet ETH balance in Wei."""
        balance = await self._execute_with_retry(
            "get_balance",
            lambda ep: ep.w3.eth.get_balance(AsyncWeb3.to_checksum_address(address)),
        )
        return Decimal(balance)

    async def validate_connectivity(self) -> bool:
        """Check chain ID and that the governance contract is deployed.

        Returns:
            True if the endpoint serves the expected chain and the contract
            address holds code, False otherwise.
        """
        try:
            chain_id = await self._execute_with_retry("chain_id", lambda ep: ep.w3.eth.chain_id)
            code = await self._execute_with_retry(
                "get_code",
                lambda ep: ep.w3.eth.get_code(self._contract_address),
            )
        except RPCError as e:
            logger.error("Connectivity check failed: %s", e)
            return False

        if int(chain_id) != self._chain_id:
            logger.error("RPC serves chain %s, expected %s", chain_id, self._chain_id)
            return False
        if not code:
            logger.error("No contract code at %s", self._contract_address)
            return False
        return True

    async def health_check(self) -> bool:
        """Check if the client can connect to the RPC.

        Returns:
            True if healthy, False otherwise.
        """
        try:
            await self._execute_with_retry("block_number", lambda ep: ep.w3.eth.block_number)
            return True
        except RPCError:
            return False

    async def aclose(self) -> None:
        """Close async HTTP provider sessions to avoid leaked aiohttp sessions."""
        providers = [self._primary.w3.provider]
        if self._fallback is not None:
            providers.append(self._fallback.w3.provider)

        for provider in providers:
            disconnect = getattr(provider, "disconnect", None)
            if not callable(disconnect):
                continue
            try:
                result = disconnect()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning("Failed to close RPC provider session: %s", e)
