"""Proposal models and reader."""

from governance_voter.proposals.models import (
    FIELD_MAP_V1,
    FIELD_MAP_V2,
    Proposal,
    ProposalFieldMap,
    ProposalState,
    ProposalType,
    normalize_timestamp,
)
from governance_voter.proposals.reader import ProposalReader

__all__ = [
    "FIELD_MAP_V1",
    "FIELD_MAP_V2",
    "Proposal",
    "ProposalFieldMap",
    "ProposalReader",
    "ProposalState",
    "ProposalType",
    "normalize_timestamp",
]
