"""Tests for the exception hierarchy."""

import pytest

from governance_voter.errors import (
    ChainClientError,
    ConfigurationError,
    GovernanceError,
    ProposalDecodeError,
    RateLimitError,
    RPCError,
    VoteSubmissionError,
)


@pytest.mark.parametrize(
    ("error_cls", "code"),
    [
        (ConfigurationError, "CONFIGURATION_ERROR"),
        (RPCError, "RPC_ERROR"),
        (RateLimitError, "RATE_LIMITED"),
        (ProposalDecodeError, "PROPOSAL_DECODE_ERROR"),
        (VoteSubmissionError, "VOTING_ERROR"),
    ],
)
def test_default_codes(error_cls: type[GovernanceError], code: str) -> None:
    error = error_cls("boom")
    assert error.code == code
    assert str(error) == "boom"
    assert isinstance(error, GovernanceError)


def test_chain_errors_share_base() -> None:
    assert issubclass(RateLimitError, RPCError)
    assert issubclass(RPCError, ChainClientError)
    assert issubclass(VoteSubmissionError, ChainClientError)
    assert not issubclass(ConfigurationError, ChainClientError)


def test_custom_code_and_node_index() -> None:
    error = ConfigurationError("missing key", code="MISSING_PRIVATE_KEY", node_index=2)
    assert error.code == "MISSING_PRIVATE_KEY"
    assert error.node_index == 2
