"""Tests for proposal models and raw result mapping."""

import pytest

from governance_voter.errors import ProposalDecodeError
from governance_voter.proposals.models import (
    FIELD_MAP_V1,
    FIELD_MAP_V2,
    MILLISECOND_TIMESTAMP_THRESHOLD,
    Proposal,
    ProposalState,
    ProposalType,
    format_units,
    get_field_map,
    normalize_timestamp,
)

WEI = 10**18


class TestNormalizeTimestamp:
    @pytest.mark.parametrize("seconds", [0, 1, 1_700_000_000, MILLISECOND_TIMESTAMP_THRESHOLD])
    def test_seconds_unchanged(self, seconds: int) -> None:
        assert normalize_timestamp(seconds) == seconds

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (1_700_000_000_000, 1_700_000_000),
            (1_700_000_000_999, 1_700_000_000),
            (MILLISECOND_TIMESTAMP_THRESHOLD + 1, (MILLISECOND_TIMESTAMP_THRESHOLD + 1) // 1000),
        ],
    )
    def test_milliseconds_divided(self, raw: int, expected: int) -> None:
        assert normalize_timestamp(raw) == expected

    @pytest.mark.parametrize("raw", [0, 1_600_000_000, 1_760_000_000_000, 1_893_456_000_000])
    def test_idempotent(self, raw: int) -> None:
        once = normalize_timestamp(raw)
        assert normalize_timestamp(once) == once

    def test_seconds_after_2030_misread(self) -> None:
        # Known boundary case: a genuine seconds value after 2030 is taken as ms.
        assert normalize_timestamp(1_900_000_000) == 1_900_000


class TestFormatUnits:
    @pytest.mark.parametrize(
        ("wei", "expected"),
        [
            (0, "0"),
            (3000 * WEI, "3000"),
            (WEI // 2, "0.5"),
            (1, "0.000000000000000001"),
            (123_456_789 * WEI + WEI // 4, "123456789.25"),
        ],
    )
    def test_format(self, wei: int, expected: str) -> None:
        assert format_units(wei) == expected

    def test_string_integers_accepted(self) -> None:
        assert format_units(str(7 * WEI)) == "7"

    def test_rejects_garbage(self) -> None:
        with pytest.raises(ProposalDecodeError):
            format_units("12.5.3")


class TestFieldMaps:
    def test_get_field_map(self) -> None:
        assert get_field_map("v1") is FIELD_MAP_V1
        assert get_field_map("v2") is FIELD_MAP_V2
        with pytest.raises(ValueError):
            get_field_map("v3")

    def test_v2_omits_vote_tallies(self) -> None:
        assert set(FIELD_MAP_V1.indices) - set(FIELD_MAP_V2.indices) == {"votes_for", "votes_against"}
        assert FIELD_MAP_V1.width == FIELD_MAP_V2.width == 12

    def test_short_tuple_rejected(self) -> None:
        with pytest.raises(ProposalDecodeError, match="needs 12"):
            FIELD_MAP_V1.extract((1, 0, "0x"))

    def test_non_sequence_rejected(self) -> None:
        with pytest.raises(ProposalDecodeError):
            FIELD_MAP_V1.extract("not a tuple")

    def test_mapping_missing_fields(self) -> None:
        with pytest.raises(ProposalDecodeError, match="missing fields"):
            FIELD_MAP_V1.extract({"id": 1})


class TestProposalFromRaw:
    def test_v1_layout(self, make_raw, now: int) -> None:
        raw = make_raw(
            4,
            proposal_type=1,
            amount_wei=3000 * WEI,
            votes_for_wei=12 * WEI,
            votes_against_wei=WEI // 2,
        )
        proposal = Proposal.from_raw(raw, FIELD_MAP_V1)

        assert proposal.id == 4
        assert proposal.proposal_type is ProposalType.DIVEST
        assert proposal.asset_address == raw[2]
        assert proposal.proposer == raw[5]
        assert proposal.amount == "3000"
        assert proposal.votes_for == "12"
        assert proposal.votes_against == "0.5"
        assert proposal.state is ProposalState.ACTIVE
        assert proposal.start_time == now - 600
        assert proposal.end_time == now + 3600
        assert proposal.executed is False
        assert proposal.cancelled is False

    def test_v2_layout(self, now: int) -> None:
        raw = (
            9,
            2,
            "0x742d35Cc6634C0532925a3b844Bc9e7595f5eaE2",
            0,
            "Rebalance WBTC position",
            "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
            500 * WEI,
            now + 100,
            now - 100,
            0,
            1,
            False,
        )
        proposal = Proposal.from_raw(raw, FIELD_MAP_V2)

        assert proposal.id == 9
        assert proposal.proposal_type is ProposalType.REBALANCE
        assert proposal.proposer == "0x742d35Cc6634C0532925a3b844Bc9e7595f5eaE2"
        assert proposal.asset_address == "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"
        assert proposal.amount == "500"
        assert proposal.votes_for == "0"
        assert proposal.votes_against == "0"
        assert proposal.start_time == now - 100
        assert proposal.end_time == now + 100
        assert proposal.is_votable(now)

    def test_millisecond_timestamps_normalized(self, make_raw, now: int) -> None:
        raw = make_raw(start_time=(now - 600) * 1000, end_time=(now + 3600) * 1000)
        proposal = Proposal.from_raw(raw)
        assert proposal.start_time == now - 600
        assert proposal.end_time == now + 3600

    def test_named_mapping(self, make_raw) -> None:
        raw = make_raw(7)
        named = {name: raw[index] for name, index in FIELD_MAP_V1.indices.items()}
        assert Proposal.from_raw(named, FIELD_MAP_V2).id == 7

    def test_cancelled_state(self, make_raw) -> None:
        proposal = Proposal.from_raw(make_raw(state=6))
        assert proposal.state is ProposalState.CANCELLED
        assert proposal.cancelled is True

    @pytest.mark.parametrize(("field", "value"), [("proposal_type", 9), ("state", 42)])
    def test_unknown_enum_values(self, make_raw, field: str, value: int) -> None:
        with pytest.raises(ProposalDecodeError):
            Proposal.from_raw(make_raw(**{field: value}))


class TestProposalVotable:
    def test_active_and_open(self, make_proposal, now: int) -> None:
        assert make_proposal().is_votable(now)

    def test_one_second_past_end(self, make_proposal, now: int) -> None:
        assert not make_proposal(end_time=now - 1).is_votable(now)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"state": ProposalState.PENDING},
            {"state": ProposalState.SUCCEEDED},
            {"executed": True},
            {"cancelled": True},
        ],
    )
    def test_not_votable(self, make_proposal, now: int, overrides: dict) -> None:
        assert not make_proposal(**overrides).is_votable(now)

    def test_time_left_and_period(self, make_proposal, now: int) -> None:
        proposal = make_proposal()
        assert proposal.time_left(now) == 3600
        assert proposal.voting_period == 4200

    def test_amount_value(self, make_proposal) -> None:
        assert str(make_proposal(amount="12.5").amount_value) == "12.5"
        assert make_proposal(amount="abc").amount_value is None
