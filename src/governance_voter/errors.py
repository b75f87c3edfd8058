"""Exception hierarchy shared across the governance voter."""

from __future__ import annotations


class GovernanceError(Exception):
    """Base exception for governance voter errors.

    Attributes:
        code: Machine-readable error code (e.g. ``MISSING_PRIVATE_KEY``).
        node_index: Optional wallet/node index the error relates to.
    """

    def __init__(self, message: str, code: str = "GOVERNANCE_ERROR", *, node_index: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.node_index = node_index


class ConfigurationError(GovernanceError):
    """Raised at startup when required configuration is missing or invalid."""

    def __init__(self, message: str, code: str = "CONFIGURATION_ERROR", *, node_index: int | None = None) -> None:
        super().__init__(message, code, node_index=node_index)


class ChainClientError(GovernanceError):
    """Base exception for chain client errors."""


class RPCError(ChainClientError):
    """Raised when an RPC call fails after all retries and failover."""

    def __init__(self, message: str, code: str = "RPC_ERROR", *, node_index: int | None = None) -> None:
        super().__init__(message, code, node_index=node_index)


class RateLimitError(RPCError):
    """Raised when the RPC provider rejects a call as rate limited."""

    def __init__(self, message: str, code: str = "RATE_LIMITED", *, node_index: int | None = None) -> None:
        super().__init__(message, code, node_index=node_index)


class ProposalDecodeError(ChainClientError):
    """Raised when a raw on-chain proposal record cannot be mapped."""

    def __init__(self, message: str, code: str = "PROPOSAL_DECODE_ERROR", *, node_index: int | None = None) -> None:
        super().__init__(message, code, node_index=node_index)


class VoteSubmissionError(ChainClientError):
    """Raised when a vote transaction is rejected or reverts."""

    def __init__(self, message: str, code: str = "VOTING_ERROR", *, node_index: int | None = None) -> None:
        super().__init__(message, code, node_index=node_index)
