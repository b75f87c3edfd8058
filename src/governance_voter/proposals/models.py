"""Data models for governance proposals.

Raw ``getProposal`` results are positional tuples whose layout differs
between contract deployments. They are mapped to the canonical
:class:`Proposal` here, at the ingestion boundary, and never passed on.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import IntEnum
from typing import Any

from governance_voter.errors import ProposalDecodeError

# Raw timestamps above this (2030-01-01 in seconds) are taken to be milliseconds.
MILLISECOND_TIMESTAMP_THRESHOLD = 1_893_456_000

WEI_DECIMALS = 18

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class ProposalType(IntEnum):
    INVEST = 0
    DIVEST = 1
    REBALANCE = 2


class ProposalState(IntEnum):
    PENDING = 0
    ACTIVE = 1
    SUCCEEDED = 2
    DEFEATED = 3
    QUEUED = 4
    EXECUTED = 5
    CANCELLED = 6


def normalize_timestamp(raw: int) -> int:
    """Return a UNIX timestamp in seconds.

    Values beyond 2030 in seconds are assumed to be milliseconds and divided
    down. A genuine seconds value past 2030 is misread; this is accepted.
    """
    raw = int(raw)
    if raw > MILLISECOND_TIMESTAMP_THRESHOLD:
        return raw // 1000
    return raw


def format_units(value: Any, decimals: int = WEI_DECIMALS) -> str:
    """Convert an integer base-unit amount to a plain decimal string.

    ``format_units(1500 * 10**18)`` returns ``"1500"``. Never uses float.
    """
    try:
        quantity = Decimal(int(value)).scaleb(-decimals)
    except (TypeError, ValueError, InvalidOperation) as e:
        raise ProposalDecodeError(f"Not an integer amount: {value!r}") from e
    return format(quantity.normalize(), "f")


@dataclass(frozen=True)
class ProposalFieldMap:
    """Positional layout of a ``getProposal`` result."""

    version: str
    indices: Mapping[str, int]

    @property
    def width(self) -> int:
        return max(self.indices.values()) + 1

    def extract(self, raw: Any) -> dict[str, Any]:
        """Pull canonical fields out of a raw tuple or a named mapping.

        Raises:
            ProposalDecodeError: If the result is too short or missing fields.
        """
        if isinstance(raw, Mapping):
            missing = [name for name in self.indices if name not in raw]
            if missing:
                raise ProposalDecodeError(f"Proposal result missing fields: {', '.join(missing)}")
            return {name: raw[name] for name in self.indices}
        if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence):
            raise ProposalDecodeError(f"Unexpected proposal result type: {type(raw).__name__}")
        if len(raw) < self.width:
            raise ProposalDecodeError(
                f"Proposal tuple has {len(raw)} fields, layout {self.version} needs {self.width}"
            )
        return {name: raw[index] for name, index in self.indices.items()}


FIELD_MAP_V1 = ProposalFieldMap(
    version="v1",
    indices={
        "id": 0,
        "proposal_type": 1,
        "asset_address": 2,
        "amount": 3,
        "description": 4,
        "proposer": 5,
        "start_time": 6,
        "end_time": 7,
        "votes_for": 8,
        "votes_against": 9,
        "state": 10,
        "executed": 11,
    },
)

FIELD_MAP_V2 = ProposalFieldMap(
    version="v2",
    # Slots 3 and 9 are unused; this layout carries no vote tallies.
    indices={
        "id": 0,
        "proposal_type": 1,
        "proposer": 2,
        "description": 4,
        "asset_address": 5,
        "amount": 6,
        "end_time": 7,
        "start_time": 8,
        "state": 10,
        "executed": 11,
    },
)

FIELD_MAPS: dict[str, ProposalFieldMap] = {
    FIELD_MAP_V1.version: FIELD_MAP_V1,
    FIELD_MAP_V2.version: FIELD_MAP_V2,
}


def get_field_map(version: str) -> ProposalFieldMap:
    try:
        return FIELD_MAPS[version]
    except KeyError:
        raise ValueError(f"Unknown proposal field map: {version}") from None


@dataclass(frozen=True)
class Proposal:
    """A governance proposal in canonical form.

    Amounts and vote tallies are decimal strings (18-decimal fixed point
    converted from wei); timestamps are UNIX seconds.
    """

    id: int
    proposer: str
    proposal_type: ProposalType
    asset_address: str
    amount: str
    description: str
    votes_for: str
    votes_against: str
    start_time: int
    end_time: int
    state: ProposalState
    executed: bool = False
    cancelled: bool = False

    @classmethod
    def from_raw(cls, raw: Any, field_map: ProposalFieldMap = FIELD_MAP_V1) -> "Proposal":
        """Create a Proposal from a raw contract result.

        Vote tallies absent from the layout default to zero.

        Raises:
            ProposalDecodeError: If the result cannot be mapped.
        """
        fields = field_map.extract(raw)
        try:
            proposal_type = ProposalType(int(fields["proposal_type"]))
        except ValueError as e:
            raise ProposalDecodeError(f"Unknown proposal type: {fields['proposal_type']!r}") from e
        try:
            state = ProposalState(int(fields["state"]))
        except ValueError as e:
            raise ProposalDecodeError(f"Unknown proposal state: {fields['state']!r}") from e
        try:
            start_time = normalize_timestamp(fields["start_time"])
            end_time = normalize_timestamp(fields["end_time"])
            proposal_id = int(fields["id"])
        except (TypeError, ValueError) as e:
            raise ProposalDecodeError(f"Malformed proposal numeric field: {e}") from e

        return cls(
            id=proposal_id,
            proposer=str(fields["proposer"]),
            proposal_type=proposal_type,
            asset_address=str(fields["asset_address"]),
            amount=format_units(fields["amount"]),
            description=str(fields["description"] or ""),
            votes_for=format_units(fields.get("votes_for", 0)),
            votes_against=format_units(fields.get("votes_against", 0)),
            start_time=start_time,
            end_time=end_time,
            state=state,
            executed=bool(fields["executed"]),
            cancelled=state is ProposalState.CANCELLED,
        )

    @property
    def voting_period(self) -> int:
        return max(0, self.end_time - self.start_time)

    def time_left(self, now: float) -> float:
        return self.end_time - now

    def is_votable(self, now: float) -> bool:
        """True iff the proposal is active, open and still accepting votes."""
        return (
            self.state is ProposalState.ACTIVE
            and not self.executed
            and not self.cancelled
            and self.end_time > now
        )

    @property
    def amount_value(self) -> Decimal | None:
        """Amount as a Decimal, or None if it does not parse."""
        try:
            return Decimal(self.amount)
        except (InvalidOperation, ValueError):
            return None
