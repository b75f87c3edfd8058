"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
governance voter, loading and validating environment variables once at
process start. The resulting ``Settings`` object is passed explicitly into
every component constructor.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from governance_voter.errors import ConfigurationError

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

MAX_WALLETS = 5

StrategyName = Literal["conservative", "aggressive", "balanced"]


class ChainSettings(BaseSettings):
    """Blockchain RPC and contract settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore", populate_by_name=True)

    rpc_url: str = Field(
        default="https://ethereum-sepolia-rpc.publicnode.com",
        alias="ETHEREUM_RPC_URL",
        description="Primary Ethereum RPC endpoint",
    )
    fallback_rpc_url: str | None = Field(
        default=None,
        alias="ETHEREUM_FALLBACK_RPC_URL",
        description="Fallback Ethereum RPC endpoint",
    )
    asset_dao_address: str = Field(
        alias="ASSET_DAO_CONTRACT_ADDRESS",
        description="AssetDAO governance contract address",
    )
    chain_id: int = Field(
        default=11155111,
        alias="CHAIN_ID",
        ge=1,
        description="Chain ID used when signing vote transactions (Sepolia=11155111)",
    )
    max_requests_per_second: float = Field(
        default=5.0,
        alias="RPC_MAX_REQUESTS_PER_SECOND",
        gt=0.0,
        le=1000.0,
        description="Client-side rate limit for RPC calls",
    )
    max_retries: int = Field(
        default=3,
        alias="RPC_MAX_RETRIES",
        ge=1,
        le=10,
        description="Retry attempts per RPC endpoint before failing over",
    )
    retry_delay_seconds: float = Field(
        default=1.0,
        alias="RPC_RETRY_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Initial retry delay (doubles on each attempt)",
    )
    proposal_field_map: Literal["v1", "v2"] = Field(
        default="v1",
        alias="PROPOSAL_FIELD_MAP",
        description="Positional layout of the getProposal() return tuple",
    )

    @field_validator("rpc_url", "fallback_rpc_url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate RPC URL format."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("RPC URL must be an HTTP(S) endpoint")
        return v

    @field_validator("asset_dao_address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Validate contract address format."""
        v = v.strip()
        if not _ADDRESS_RE.match(v):
            raise ValueError("ASSET_DAO_CONTRACT_ADDRESS must be a 0x-prefixed 40-hex-char address")
        return v


class WalletSettings(BaseSettings):
    """Signing credentials, one per governance node."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore", populate_by_name=True)

    wallet_count: int = Field(
        default=MAX_WALLETS,
        alias="WALLET_COUNT",
        ge=1,
        le=MAX_WALLETS,
        description="Number of node wallets that must be configured",
    )
    node_1_private_key: SecretStr | None = Field(default=None, alias="AI_NODE_1_PRIVATE_KEY")
    node_2_private_key: SecretStr | None = Field(default=None, alias="AI_NODE_2_PRIVATE_KEY")
    node_3_private_key: SecretStr | None = Field(default=None, alias="AI_NODE_3_PRIVATE_KEY")
    node_4_private_key: SecretStr | None = Field(default=None, alias="AI_NODE_4_PRIVATE_KEY")
    node_5_private_key: SecretStr | None = Field(default=None, alias="AI_NODE_5_PRIVATE_KEY")

    def private_keys(self) -> list[SecretStr | None]:
        """Return the configured keys for node indices ``0..wallet_count-1``."""
        keys = [
            self.node_1_private_key,
            self.node_2_private_key,
            self.node_3_private_key,
            self.node_4_private_key,
            self.node_5_private_key,
        ]
        return keys[: self.wallet_count]

    @property
    def configured_count(self) -> int:
        """Number of keys actually present among the required ones."""
        return sum(1 for key in self.private_keys() if key is not None)


class VotingSettings(BaseSettings):
    """Voting round limits, timeouts and pacing."""

    model_config = SettingsConfigDict(env_prefix="VOTING_", extra="ignore", populate_by_name=True)

    strategy: StrategyName = Field(
        default="conservative",
        alias="VOTING_STRATEGY",
        description="Risk strategy used by this node",
    )
    window_size: int = Field(
        default=10,
        alias="VOTING_WINDOW_SIZE",
        ge=1,
        le=200,
        description="Latest proposals to inspect per round (bounds RPC cost)",
    )
    max_proposals: int = Field(
        default=10,
        alias="VOTING_MAX_PROPOSALS",
        ge=1,
        le=100,
        description="Maximum proposals executed per round",
    )
    round_budget_seconds: float = Field(
        default=60.0,
        alias="VOTING_ROUND_BUDGET_SECONDS",
        gt=0.0,
        le=3600.0,
        description="Wall-clock budget for a whole round (emergency brake)",
    )
    health_check_timeout_seconds: float = Field(
        default=10.0,
        alias="VOTING_HEALTH_CHECK_TIMEOUT_SECONDS",
        gt=0.0,
        le=120.0,
    )
    count_timeout_seconds: float = Field(
        default=5.0,
        alias="VOTING_COUNT_TIMEOUT_SECONDS",
        gt=0.0,
        le=120.0,
    )
    proposal_fetch_timeout_seconds: float = Field(
        default=5.0,
        alias="VOTING_PROPOSAL_FETCH_TIMEOUT_SECONDS",
        gt=0.0,
        le=120.0,
    )
    read_budget_seconds: float = Field(
        default=30.0,
        alias="VOTING_READ_BUDGET_SECONDS",
        gt=0.0,
        le=600.0,
        description="Overall budget for scanning the proposal window",
    )
    has_voted_timeout_seconds: float = Field(
        default=3.0,
        alias="VOTING_HAS_VOTED_TIMEOUT_SECONDS",
        gt=0.0,
        le=60.0,
    )
    vote_timeout_seconds: float = Field(
        default=30.0,
        alias="VOTING_VOTE_TIMEOUT_SECONDS",
        gt=0.0,
        le=600.0,
        description="Time allowed for a vote transaction to confirm",
    )
    proposal_fetch_delay_seconds: float = Field(
        default=1.0,
        alias="VOTING_PROPOSAL_FETCH_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
    )
    rate_limit_backoff_seconds: float = Field(
        default=3.0,
        alias="VOTING_RATE_LIMIT_BACKOFF_SECONDS",
        ge=0.0,
        le=120.0,
    )
    wallet_delay_seconds: float = Field(
        default=3.0,
        alias="VOTING_WALLET_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Pause between wallets to stay under RPC rate limits",
    )
    proposal_delay_seconds: float = Field(
        default=3.0,
        alias="VOTING_PROPOSAL_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
    )
    high_value_amount: Decimal = Field(
        default=Decimal("1000"),
        alias="VOTING_HIGH_VALUE_AMOUNT",
        description="Amount above which a proposal is prioritized as high-value",
    )
    schedule_interval_seconds: int = Field(
        default=1800,
        alias="VOTING_SCHEDULE_INTERVAL_SECONDS",
        ge=10,
        le=86_400,
        description="Interval between scheduled rounds",
    )

    @field_validator("high_value_amount")
    @classmethod
    def validate_high_value_amount(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("VOTING_HIGH_VALUE_AMOUNT must be >= 0")
        return v


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from governance_voter.config import get_settings

        settings = get_settings()
        print(settings.chain.rpc_url)
        print(settings.voting.strategy)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
        populate_by_name=True,
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    chain: ChainSettings = Field(
        default_factory=lambda: ChainSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    wallets: WalletSettings = Field(
        default_factory=lambda: WalletSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    voting: VotingSettings = Field(
        default_factory=lambda: VotingSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Check vote status but never submit vote transactions",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        keys = self.wallets.private_keys()
        return {
            "chain": {
                "rpc_url": self._redact_url(self.chain.rpc_url),
                "fallback_rpc_url": (
                    self._redact_url(self.chain.fallback_rpc_url)
                    if self.chain.fallback_rpc_url
                    else "(not set)"
                ),
                "asset_dao_address": self.chain.asset_dao_address,
                "chain_id": str(self.chain.chain_id),
                "proposal_field_map": self.chain.proposal_field_map,
            },
            "wallets": {
                f"node_{i + 1}_private_key": "(set)" if key else "(not set)"
                for i, key in enumerate(keys)
            },
            "voting": {
                "strategy": self.voting.strategy,
                "window_size": str(self.voting.window_size),
                "max_proposals": str(self.voting.max_proposals),
                "round_budget_seconds": str(self.voting.round_budget_seconds),
                "schedule_interval_seconds": str(self.voting.schedule_interval_seconds),
            },
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    def validate_requirements(self) -> None:
        """Validate that every required node credential is present.

        A round can only start once all ``wallet_count`` keys are configured;
        this is a fatal startup condition, not something a round recovers from.

        Raises:
            ConfigurationError: With code ``MISSING_PRIVATE_KEY`` listing the absent keys.
        """
        missing = [
            f"AI_NODE_{i + 1}_PRIVATE_KEY"
            for i, key in enumerate(self.wallets.private_keys())
            if key is None or not key.get_secret_value().strip()
        ]
        if missing:
            raise ConfigurationError(
                f"Missing signing credentials: {', '.join(missing)}", "MISSING_PRIVATE_KEY"
            )

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact API keys embedded in RPC URLs (Infura/Alchemy style paths)."""
        if "://" not in url:
            return url
        protocol_end = url.index("://") + 3
        host, _, path = url[protocol_end:].partition("/")
        if "@" in host:
            host = "***@" + host.split("@", 1)[1]
        if not path:
            return f"{url[:protocol_end]}{host}"
        segments = path.split("/")
        if len(segments[-1]) >= 16:
            segments[-1] = "***"
        return f"{url[:protocol_end]}{host}/{'/'.join(segments)}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once per process.
    Components never call this themselves; the entry point does and passes
    the result down.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
