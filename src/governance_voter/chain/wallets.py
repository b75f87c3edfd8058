"""Node wallet set built from configured private keys."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from eth_account import Account
from eth_account.signers.local import LocalAccount

from governance_voter.config import WalletSettings
from governance_voter.errors import ConfigurationError

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")

# Keys with fewer distinct hex characters than this are almost certainly
# placeholders or test patterns.
MIN_UNIQUE_KEY_CHARS = 8


@dataclass(frozen=True)
class NodeWallet:
    """One governance node's signing identity."""

    index: int
    account: LocalAccount

    @property
    def address(self) -> str:
        return str(self.account.address)

    @property
    def label(self) -> str:
        return f"node-{self.index + 1}"


def normalize_private_key(raw: str, *, node_index: int) -> str:
    """Normalize a hex private key to ``0x`` + 64 hex chars.

    Raises:
        ConfigurationError: If the key is empty or malformed.
    """
    key = raw.strip()
    if not key:
        raise ConfigurationError(
            f"AI_NODE_{node_index + 1}_PRIVATE_KEY is empty",
            code="MISSING_PRIVATE_KEY",
            node_index=node_index,
        )
    if not key.startswith("0x"):
        key = "0x" + key
    if not _KEY_RE.match(key):
        raise ConfigurationError(
            f"AI_NODE_{node_index + 1}_PRIVATE_KEY must be 32 bytes of hex",
            code="INVALID_PRIVATE_KEY",
            node_index=node_index,
        )
    if len(set(key[2:].lower())) < MIN_UNIQUE_KEY_CHARS:
        logger.warning(
            "AI_NODE_%d_PRIVATE_KEY has very low entropy; is it a placeholder?",
            node_index + 1,
        )
    return key


class WalletSet:
    """Ordered set of node wallets.

    Wallet ``i`` always corresponds to ``AI_NODE_<i+1>_PRIVATE_KEY``, so vote
    records can be reconciled against configuration.
    """

    def __init__(self, wallets: Sequence[NodeWallet]) -> None:
        if not wallets:
            raise ConfigurationError("At least one node wallet is required")
        self._wallets = list(wallets)

    @classmethod
    def from_private_keys(cls, keys: Sequence[str | None]) -> WalletSet:
        """Build the set from raw hex keys, in node order."""
        wallets = []
        for index, raw in enumerate(keys):
            if raw is None:
                raise ConfigurationError(
                    f"AI_NODE_{index + 1}_PRIVATE_KEY is not configured",
                    code="MISSING_PRIVATE_KEY",
                    node_index=index,
                )
            key = normalize_private_key(raw, node_index=index)
            try:
                account = Account.from_key(key)
            except ValueError as e:
                raise ConfigurationError(
                    f"AI_NODE_{index + 1}_PRIVATE_KEY is not a valid secp256k1 key: {e}",
                    code="INVALID_PRIVATE_KEY",
                    node_index=index,
                ) from e
            wallets.append(NodeWallet(index=index, account=account))
        return cls(wallets)

    @classmethod
    def from_settings(cls, settings: WalletSettings) -> WalletSet:
        """Build the set from wallet settings.

        Raises:
            ConfigurationError: If any of the required keys is missing or malformed.
        """
        keys = [
            secret.get_secret_value() if secret is not None else None
            for secret in settings.private_keys()
        ]
        wallet_set = cls.from_private_keys(keys)
        logger.info("Loaded %d node wallets", wallet_set.wallet_count())
        return wallet_set

    def wallet_count(self) -> int:
        return len(self._wallets)

    def get_wallet(self, index: int) -> NodeWallet:
        """Return wallet ``index`` (0-based).

        Raises:
            IndexError: If no wallet is configured at that index.
        """
        if index < 0 or index >= len(self._wallets):
            raise IndexError(f"wallet index {index} out of range (0..{len(self._wallets) - 1})")
        return self._wallets[index]

    @property
    def addresses(self) -> list[str]:
        return [wallet.address for wallet in self._wallets]

    def __iter__(self):
        return iter(self._wallets)

    def __len__(self) -> int:
        return len(self._wallets)
