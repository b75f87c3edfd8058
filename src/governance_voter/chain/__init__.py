"""Chain access: governance contract client, node wallets and call timeouts."""

from governance_voter.chain.client import AssetDaoClient, ChainClient, VoteReceipt
from governance_voter.chain.timeouts import CallResult, CallStatus, call_with_timeout
from governance_voter.chain.wallets import NodeWallet, WalletSet

__all__ = [
    "AssetDaoClient",
    "CallResult",
    "CallStatus",
    "ChainClient",
    "NodeWallet",
    "VoteReceipt",
    "WalletSet",
    "call_with_timeout",
]
