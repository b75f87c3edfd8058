"""Voting strategy variants.

Three risk profiles share one decision contract and the free-function rules
in :mod:`governance_voter.strategy.rules`:

- Conservative: low risk tolerance, small amounts, favors stable assets
- Aggressive: high tolerance, follows growth assets and market trends
- Balanced: thresholds midway between the two

Every call to ``decide`` goes through :func:`audited_decision`, which logs
the outcome and turns any exception into a non-voting decision.
"""

import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Protocol

from governance_voter.proposals.models import Proposal, ProposalType
from governance_voter.strategy import rules
from governance_voter.strategy.models import (
    MarketConditionWeights,
    MarketSnapshot,
    StrategyConfig,
    VoteDecision,
)

logger = logging.getLogger(__name__)


class StrategyKind(str, Enum):
    CONSERVATIVE = "conservative"
    AGGRESSIVE = "aggressive"
    BALANCED = "balanced"


CONSERVATIVE_CONFIG = StrategyConfig(
    risk_tolerance=0.3,
    max_position_size=0.15,
    diversification_threshold=0.25,
    rebalance_threshold=0.1,
    market_condition_weights=MarketConditionWeights(trending=0.2, volatility=0.5, volume=0.3),
    amount_ceiling=1000.0,
    confidence_floor=0.1,
    confidence_ceiling=0.9,
)

AGGRESSIVE_CONFIG = StrategyConfig(
    risk_tolerance=0.8,
    max_position_size=0.4,
    diversification_threshold=0.15,
    rebalance_threshold=0.2,
    market_condition_weights=MarketConditionWeights(trending=0.5, volatility=0.2, volume=0.3),
    amount_ceiling=5000.0,
    confidence_floor=0.1,
    confidence_ceiling=0.95,
)

BALANCED_CONFIG = StrategyConfig(
    risk_tolerance=0.55,
    max_position_size=0.275,
    diversification_threshold=0.2,
    rebalance_threshold=0.15,
    market_condition_weights=MarketConditionWeights(trending=0.35, volatility=0.35, volume=0.3),
    amount_ceiling=3000.0,
    confidence_floor=0.1,
    confidence_ceiling=0.92,
)


class VotingStrategy(Protocol):
    """Decision contract shared by all strategy variants."""

    kind: StrategyKind
    config: StrategyConfig

    def decide(self, proposal: Proposal, market: MarketSnapshot | None = None) -> VoteDecision: ...


Evaluator = Callable[[Proposal, MarketSnapshot | None, float], VoteDecision]


def audited_decision(
    kind: StrategyKind,
    evaluate: Evaluator,
    proposal: Proposal,
    market: MarketSnapshot | None,
    now: float,
) -> VoteDecision:
    """Run a strategy evaluation at the decision boundary.

    Exceptions become ``should_vote=False``. Every outcome is logged at INFO
    as the audit trail.
    """
    try:
        decision = evaluate(proposal, market, now)
    except Exception as e:
        logger.exception("Strategy %s failed on proposal %s", kind.value, proposal.id)
        decision = VoteDecision.abstain(f"analysis failed: {e}", strategy=kind.value)

    logger.info(
        "Decision proposal=%s strategy=%s type=%s amount=%s should_vote=%s support=%s "
        "confidence=%.2f reasoning=%s",
        proposal.id,
        kind.value,
        proposal.proposal_type.name,
        proposal.amount,
        decision.should_vote,
        decision.support,
        decision.confidence,
        decision.reasoning,
    )
    return decision


def _ineligible(kind: StrategyKind, reason: str) -> VoteDecision:
    return VoteDecision.abstain(f"Proposal failed basic validation: {reason}", strategy=kind.value)


class ConservativeStrategy:
    """Capital preservation first.

    Opposes anything above its amount ceiling or risk tolerance and only
    backs stable-asset investments, well-supported aligned investments,
    divestments in uncertain markets and market-driven rebalances.
    """

    kind = StrategyKind.CONSERVATIVE

    MARKET_RISK_LIMIT = 0.6
    DIVEST_MARKET_RISK = 0.5
    LAST_MINUTE_FACTOR = 0.8
    MOMENTUM_ADJUSTMENT = 0.1

    def __init__(
        self,
        config: StrategyConfig = CONSERVATIVE_CONFIG,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self._clock = clock

    def decide(self, proposal: Proposal, market: MarketSnapshot | None = None) -> VoteDecision:
        return audited_decision(self.kind, self._evaluate, proposal, market, self._clock())

    def _evaluate(
        self, proposal: Proposal, market: MarketSnapshot | None, now: float
    ) -> VoteDecision:
        validation = rules.validate_proposal(proposal, now)
        if not validation.ok:
            return _ineligible(self.kind, validation.reason)

        risk = rules.calculate_risk_score(proposal, market)
        momentum = rules.analyze_voting_momentum(proposal)
        aligned = rules.is_aligned_with_market(proposal, market)
        amount = float(rules.parse_amount(proposal.amount) or 0)

        if amount > self.config.amount_ceiling:
            support, confidence = False, 0.7
            reasoning = (
                f"Amount {proposal.amount} exceeds conservative amount limit "
                f"({self.config.amount_ceiling:g})"
            )
        elif risk > self.config.risk_tolerance:
            support, confidence = False, 0.8
            reasoning = (
                f"High risk score ({risk:.2f}) exceeds tolerance ({self.config.risk_tolerance})"
            )
        elif market is not None and market.risk_score > self.MARKET_RISK_LIMIT:
            support, confidence = False, 0.6
            reasoning = "High market volatility detected, avoiding new positions"
        elif proposal.proposal_type is ProposalType.INVEST:
            if rules.is_stable_asset(proposal):
                support, confidence = True, 0.8
                reasoning = "Supporting stable coin investment - low risk"
            elif aligned and momentum.support_ratio > 0.6:
                support, confidence = True, 0.6
                reasoning = "Market aligned investment with good community support"
            else:
                support, confidence = False, 0.5
                reasoning = "Non-stable asset investment without strong market signals"
        elif proposal.proposal_type is ProposalType.DIVEST:
            if market is not None and market.risk_score > self.DIVEST_MARKET_RISK:
                support, confidence = True, 0.8
                reasoning = "Supporting divestment during uncertain market conditions"
            elif momentum.support_ratio > 0.5:
                support, confidence = True, 0.6
                reasoning = "Supporting divestment with community consensus"
            else:
                support, confidence = False, 0.4
                reasoning = "Divestment not justified by current market conditions"
        else:
            if market is not None and market.portfolio_rebalance:
                support, confidence = True, 0.7
                reasoning = "Supporting portfolio rebalancing based on market analysis"
            else:
                support, confidence = False, 0.4
                reasoning = "Rebalancing not supported by current market analysis"

        if momentum.activity == "high":
            with_majority = support == (momentum.support_ratio > 0.5)
            confidence += self.MOMENTUM_ADJUSTMENT if with_majority else -self.MOMENTUM_ADJUSTMENT

        if rules.is_last_minute(proposal, now):
            confidence *= self.LAST_MINUTE_FACTOR
            reasoning += " (last-minute decision factor applied)"

        return VoteDecision(
            should_vote=True,
            support=support,
            confidence=self.config.clamp_confidence(confidence),
            reasoning=reasoning,
            strategy=self.kind.value,
            risk_score=risk,
        )


class AggressiveStrategy:
    """Growth seeking.

    Tolerates high risk and larger amounts, backs growth assets and strong
    market trends, and leans into momentum and volatility.
    """

    kind = StrategyKind.AGGRESSIVE

    DIVEST_MARKET_RISK = 0.8
    STRONG_MOMENTUM_RATIO = 0.8
    CONTRARIAN_RATIO = 0.3
    VOLATILITY_ZONE = (0.6, 0.8)

    def __init__(
        self,
        config: StrategyConfig = AGGRESSIVE_CONFIG,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self._clock = clock

    def decide(self, proposal: Proposal, market: MarketSnapshot | None = None) -> VoteDecision:
        return audited_decision(self.kind, self._evaluate, proposal, market, self._clock())

    def _evaluate(
        self, proposal: Proposal, market: MarketSnapshot | None, now: float
    ) -> VoteDecision:
        validation = rules.validate_proposal(proposal, now)
        if not validation.ok:
            return _ineligible(self.kind, validation.reason)

        risk = rules.calculate_risk_score(proposal, market)
        momentum = rules.analyze_voting_momentum(proposal)
        aligned = rules.is_aligned_with_market(proposal, market)
        amount = float(rules.parse_amount(proposal.amount) or 0)

        if risk > self.config.risk_tolerance:
            support, confidence = False, 0.6
            reasoning = f"Risk score ({risk:.2f}) exceeds even aggressive tolerance"
        elif amount > self.config.amount_ceiling:
            support, confidence = False, 0.5
            reasoning = (
                f"Amount {proposal.amount} exceeds aggressive amount limit "
                f"({self.config.amount_ceiling:g})"
            )
        elif proposal.proposal_type is ProposalType.INVEST:
            if rules.is_growth_asset(proposal) and aligned:
                support, confidence = True, 0.9
                reasoning = "Supporting growth asset investment with strong market signals"
            elif market is not None and rules.detect_strong_trend(market):
                support, confidence = True, 0.8
                reasoning = "Strong market trend detected - capitalizing on momentum"
            elif momentum.support_ratio > 0.7:
                support, confidence = True, 0.7
                reasoning = "Strong community support indicates potential opportunity"
            elif rules.is_stable_asset(proposal):
                support, confidence = True, 0.4
                reasoning = "Supporting stable coin investment for portfolio balance"
            else:
                support, confidence = False, 0.3
                reasoning = "Investment lacks strong growth potential or market support"
        elif proposal.proposal_type is ProposalType.DIVEST:
            if market is not None and market.risk_score > self.DIVEST_MARKET_RISK:
                support, confidence = True, 0.8
                reasoning = "Supporting divestment due to extreme market risk"
            elif rules.detect_downtrend(proposal, market):
                support, confidence = True, 0.7
                reasoning = "Divestment aligned with bearish market conditions"
            elif momentum.support_ratio > 0.6:
                support, confidence = True, 0.5
                reasoning = "Following community consensus on divestment"
            else:
                support, confidence = False, 0.6
                reasoning = "Divestment may reduce potential upside in current market"
        else:
            if market is not None and market.portfolio_rebalance:
                support, confidence = True, 0.8
                reasoning = "Supporting rebalancing to optimize for current market conditions"
            elif rules.has_volatility_opportunity(market):
                support, confidence = True, 0.7
                reasoning = "Market volatility presents rebalancing opportunity"
            else:
                support, confidence = False, 0.3
                reasoning = "Current market conditions do not justify rebalancing"

        if momentum.activity == "high":
            if momentum.support_ratio > self.STRONG_MOMENTUM_RATIO:
                confidence += 0.1
                reasoning += " (riding strong momentum)"
            elif momentum.support_ratio < self.CONTRARIAN_RATIO and not support:
                confidence += 0.1
                reasoning += " (contrarian opportunity)"

        low, high = self.VOLATILITY_ZONE
        if market is not None and low < market.risk_score < high:
            confidence += 0.05
            reasoning += " (volatility opportunity)"

        if support and rules.is_last_minute(proposal, now):
            confidence += 0.05
            reasoning += " (quick decisive action)"

        return VoteDecision(
            should_vote=True,
            support=support,
            confidence=self.config.clamp_confidence(confidence),
            reasoning=reasoning,
            strategy=self.kind.value,
            risk_score=risk,
        )


class BalancedStrategy:
    """Middle ground between Conservative and Aggressive.

    Uses the same rules with thresholds interpolated between the two
    profiles: moderate amount ceiling, stable and aligned growth
    investments both backed, softer momentum and last-minute adjustments.
    """

    kind = StrategyKind.BALANCED

    MARKET_RISK_LIMIT = 0.7
    DIVEST_MARKET_RISK = 0.65
    LAST_MINUTE_FACTOR = 0.9
    MOMENTUM_ADJUSTMENT = 0.05

    def __init__(
        self,
        config: StrategyConfig = BALANCED_CONFIG,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self._clock = clock

    def decide(self, proposal: Proposal, market: MarketSnapshot | None = None) -> VoteDecision:
        return audited_decision(self.kind, self._evaluate, proposal, market, self._clock())

    def _evaluate(
        self, proposal: Proposal, market: MarketSnapshot | None, now: float
    ) -> VoteDecision:
        validation = rules.validate_proposal(proposal, now)
        if not validation.ok:
            return _ineligible(self.kind, validation.reason)

        risk = rules.calculate_risk_score(proposal, market)
        momentum = rules.analyze_voting_momentum(proposal)
        aligned = rules.is_aligned_with_market(proposal, market)
        amount = float(rules.parse_amount(proposal.amount) or 0)

        if amount > self.config.amount_ceiling:
            support, confidence = False, 0.6
            reasoning = (
                f"Amount {proposal.amount} exceeds balanced amount limit "
                f"({self.config.amount_ceiling:g})"
            )
        elif risk > self.config.risk_tolerance:
            support, confidence = False, 0.7
            reasoning = (
                f"Risk score ({risk:.2f}) exceeds balanced tolerance ({self.config.risk_tolerance})"
            )
        elif market is not None and market.risk_score > self.MARKET_RISK_LIMIT:
            support, confidence = False, 0.55
            reasoning = "Elevated market risk, holding off on new positions"
        elif proposal.proposal_type is ProposalType.INVEST:
            if rules.is_stable_asset(proposal):
                support, confidence = True, 0.7
                reasoning = "Supporting stable coin investment"
            elif rules.is_growth_asset(proposal) and aligned:
                support, confidence = True, 0.7
                reasoning = "Supporting growth asset investment aligned with market"
            elif aligned and momentum.support_ratio > 0.65:
                support, confidence = True, 0.6
                reasoning = "Market aligned investment with solid community support"
            else:
                support, confidence = False, 0.45
                reasoning = "Investment lacks market alignment or community support"
        elif proposal.proposal_type is ProposalType.DIVEST:
            if market is not None and market.risk_score > self.DIVEST_MARKET_RISK:
                support, confidence = True, 0.8
                reasoning = "Supporting divestment under elevated market risk"
            elif rules.detect_downtrend(proposal, market, min_confidence=0.65):
                support, confidence = True, 0.65
                reasoning = "Divestment aligned with bearish market signals"
            elif momentum.support_ratio > 0.55:
                support, confidence = True, 0.55
                reasoning = "Supporting divestment with community consensus"
            else:
                support, confidence = False, 0.5
                reasoning = "Divestment not justified by current market conditions"
        else:
            if market is not None and market.portfolio_rebalance:
                support, confidence = True, 0.75
                reasoning = "Supporting portfolio rebalancing based on market analysis"
            elif rules.has_volatility_opportunity(market, low=0.45, high=0.65):
                support, confidence = True, 0.6
                reasoning = "Mixed market signals justify rebalancing"
            else:
                support, confidence = False, 0.35
                reasoning = "Rebalancing not supported by current market analysis"

        if momentum.activity == "high":
            with_majority = support == (momentum.support_ratio > 0.5)
            confidence += self.MOMENTUM_ADJUSTMENT if with_majority else -self.MOMENTUM_ADJUSTMENT

        if rules.is_last_minute(proposal, now):
            confidence *= self.LAST_MINUTE_FACTOR
            reasoning += " (last-minute decision factor applied)"

        return VoteDecision(
            should_vote=True,
            support=support,
            confidence=self.config.clamp_confidence(confidence),
            reasoning=reasoning,
            strategy=self.kind.value,
            risk_score=risk,
        )


_STRATEGIES: dict[StrategyKind, type[ConservativeStrategy | AggressiveStrategy | BalancedStrategy]] = {
    StrategyKind.CONSERVATIVE: ConservativeStrategy,
    StrategyKind.AGGRESSIVE: AggressiveStrategy,
    StrategyKind.BALANCED: BalancedStrategy,
}


def build_strategy(
    kind: StrategyKind | str,
    *,
    clock: Callable[[], float] = time.time,
) -> VotingStrategy:
    """Instantiate the strategy variant named by ``kind``.

    Raises:
        ValueError: If ``kind`` is not a known strategy.
    """
    try:
        resolved = StrategyKind(kind)
    except ValueError:
        raise ValueError(
            f"Unknown strategy {kind!r}; expected one of {[k.value for k in StrategyKind]}"
        ) from None
    return _STRATEGIES[resolved](clock=clock)
