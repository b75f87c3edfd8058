"""Shared eligibility and scoring rules used by every strategy.

All functions here are pure: they take a proposal, an optional market
snapshot and (where time matters) the current UNIX time.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from governance_voter.proposals.models import ZERO_ADDRESS, Proposal, ProposalState, ProposalType
from governance_voter.strategy.models import MarketSnapshot

ASSET_SYMBOLS = ("USDC", "WBTC", "PAXG", "EURT")
STABLE_SYMBOLS = ("USDC", "EURT")
GROWTH_SYMBOLS = ("WBTC", "PAXG")

MIN_DESCRIPTION_LENGTH = 10

# Amount bounds (inclusive)
GENERIC_AMOUNT_BOUNDS = (Decimal("0.01"), Decimal("100000"))
STABLE_AMOUNT_BOUNDS = (Decimal("0.001"), Decimal("500000"))

# Risk scoring constants
BASE_RISK = 0.5
LARGE_AMOUNT_THRESHOLD = 1000.0
LARGE_AMOUNT_RISK = 0.2
SMALL_AMOUNT_THRESHOLD = 10.0
SMALL_AMOUNT_RISK = -0.1
PROPOSAL_TYPE_RISK = {
    ProposalType.INVEST: 0.1,
    ProposalType.DIVEST: -0.1,
    ProposalType.REBALANCE: 0.05,
}
MARKET_RISK_WEIGHT = 0.3
FAILING_SUPPORT_RATIO = 0.3
FAILING_PROPOSAL_RISK = 0.2

# Momentum thresholds (total votes)
LOW_ACTIVITY_MAX = 100
MEDIUM_ACTIVITY_MAX = 1000

LAST_MINUTE_FRACTION = 0.1
STRONG_SIGNAL_CONFIDENCE = 0.7
STRONG_TREND_MIN_COUNT = 3
STRONG_TREND_MIN_MARGIN = 2

Activity = Literal["low", "medium", "high"]


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: str = ""


@dataclass(frozen=True)
class VotingMomentum:
    total_votes: float
    support_ratio: float
    activity: Activity


def parse_amount(value: Any) -> Decimal | None:
    """Parse a decimal string, returning None for anything non-finite or malformed."""
    if value is None:
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


def mentioned_asset(proposal: Proposal) -> str | None:
    """First known asset ticker mentioned in the description."""
    text = proposal.description.upper()
    for symbol in ASSET_SYMBOLS:
        if symbol in text:
            return symbol
    return None


def mentions_any(proposal: Proposal, symbols: tuple[str, ...]) -> bool:
    text = proposal.description.upper()
    return any(symbol in text for symbol in symbols)


def is_stable_asset(proposal: Proposal) -> bool:
    return mentions_any(proposal, STABLE_SYMBOLS)


def is_growth_asset(proposal: Proposal) -> bool:
    return mentions_any(proposal, GROWTH_SYMBOLS)


def validate_proposal(proposal: Proposal, now: float) -> ValidationResult:
    """Check whether a proposal is eligible for any vote at all."""
    if proposal.state is not ProposalState.ACTIVE:
        return ValidationResult(False, f"state is {proposal.state.name}, not ACTIVE")
    if proposal.end_time > 0 and now > proposal.end_time:
        return ValidationResult(False, "voting period has ended")
    if proposal.executed or proposal.cancelled:
        return ValidationResult(False, "already executed or cancelled")
    if not proposal.description or len(proposal.description.strip()) < MIN_DESCRIPTION_LENGTH:
        return ValidationResult(False, "description missing or too short")
    if not proposal.asset_address or proposal.asset_address.lower() == ZERO_ADDRESS:
        return ValidationResult(False, "asset address is the zero address")

    amount = parse_amount(proposal.amount)
    if amount is None or amount < 0:
        return ValidationResult(False, f"invalid amount {proposal.amount!r}")
    low, high = STABLE_AMOUNT_BOUNDS if is_stable_asset(proposal) else GENERIC_AMOUNT_BOUNDS
    if amount < low or amount > high:
        return ValidationResult(False, f"amount {proposal.amount} outside [{low}, {high}]")

    for label, raw in (("votes_for", proposal.votes_for), ("votes_against", proposal.votes_against)):
        votes = parse_amount(raw)
        if votes is None or votes < 0:
            return ValidationResult(False, f"invalid {label} {raw!r}")

    return ValidationResult(True)


def analyze_voting_momentum(proposal: Proposal) -> VotingMomentum:
    votes_for = float(parse_amount(proposal.votes_for) or 0)
    votes_against = float(parse_amount(proposal.votes_against) or 0)
    total = votes_for + votes_against
    ratio = votes_for / total if total > 0 else 0.5

    activity: Activity = "low"
    if total > MEDIUM_ACTIVITY_MAX:
        activity = "high"
    elif total > LOW_ACTIVITY_MAX:
        activity = "medium"
    return VotingMomentum(total_votes=total, support_ratio=ratio, activity=activity)


def calculate_risk_score(proposal: Proposal, market: MarketSnapshot | None) -> float:
    """Score proposal risk in [0, 1]; higher is riskier.

    Rounded to 6 places, so 0.5 + 0.2 + 0.1 scores exactly 0.8.
    """
    score = BASE_RISK

    amount = float(parse_amount(proposal.amount) or 0)
    if amount > LARGE_AMOUNT_THRESHOLD:
        score += LARGE_AMOUNT_RISK
    elif amount < SMALL_AMOUNT_THRESHOLD:
        score += SMALL_AMOUNT_RISK

    score += PROPOSAL_TYPE_RISK.get(proposal.proposal_type, 0.0)

    if market is not None:
        score += market.risk_score * MARKET_RISK_WEIGHT

    momentum = analyze_voting_momentum(proposal)
    if momentum.total_votes > 0 and momentum.support_ratio < FAILING_SUPPORT_RATIO:
        score += FAILING_PROPOSAL_RISK

    return round(max(0.0, min(1.0, score)), 6)


def is_aligned_with_market(proposal: Proposal, market: MarketSnapshot | None) -> bool:
    """Whether the proposal's direction matches the market signal for its asset.

    Missing market data, an unrecognized asset or no recommendation all
    count as aligned.
    """
    if market is None:
        return True
    symbol = mentioned_asset(proposal)
    if symbol is None:
        return True
    recommendation = market.recommendation_for(symbol)
    if recommendation is None:
        return True

    if proposal.proposal_type is ProposalType.INVEST:
        return recommendation.action == "buy"
    if proposal.proposal_type is ProposalType.DIVEST:
        return recommendation.action == "sell"
    if proposal.proposal_type is ProposalType.REBALANCE:
        return recommendation.action != "hold"
    return True


def time_to_deadline(proposal: Proposal, now: float) -> float:
    return max(0.0, proposal.end_time - now)


def is_last_minute(proposal: Proposal, now: float) -> bool:
    """True in the final 10% of the voting period."""
    return time_to_deadline(proposal, now) < proposal.voting_period * LAST_MINUTE_FRACTION


def detect_strong_trend(market: MarketSnapshot) -> bool:
    recommendations = market.recommendations.values()
    strong_buys = sum(
        1 for r in recommendations if r.action == "buy" and r.confidence > STRONG_SIGNAL_CONFIDENCE
    )
    strong_sells = sum(
        1 for r in recommendations if r.action == "sell" and r.confidence > STRONG_SIGNAL_CONFIDENCE
    )
    return (
        max(strong_buys, strong_sells) >= STRONG_TREND_MIN_COUNT
        and abs(strong_buys - strong_sells) >= STRONG_TREND_MIN_MARGIN
    )


def detect_downtrend(
    proposal: Proposal,
    market: MarketSnapshot | None,
    *,
    min_confidence: float = 0.6,
) -> bool:
    """Bearish signal for the proposal's asset, or broadly bearish market."""
    if market is None:
        return False
    symbol = mentioned_asset(proposal)
    if symbol is not None:
        recommendation = market.recommendation_for(symbol)
        if recommendation is not None:
            return recommendation.action == "sell" and recommendation.confidence > min_confidence
    sell_signals = sum(1 for r in market.recommendations.values() if r.action == "sell")
    return sell_signals >= 2


def has_volatility_opportunity(
    market: MarketSnapshot | None,
    *,
    low: float = 0.4,
    high: float = 0.7,
) -> bool:
    """Moderate risk with mixed buy/sell signals."""
    if market is None:
        return False
    if not low <= market.risk_score <= high:
        return False
    actions = {r.action for r in market.recommendations.values()}
    return "buy" in actions and "sell" in actions
