"""Data models for voting strategies."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

Action = Literal["buy", "sell", "hold"]


@dataclass(frozen=True)
class MarketConditionWeights:
    trending: float
    volatility: float
    volume: float


@dataclass(frozen=True)
class StrategyConfig:
    """Risk parameters of a strategy variant.

    Attributes:
        risk_tolerance: Proposals scoring above this are opposed.
        max_position_size: Largest share of the treasury a single proposal may move.
        diversification_threshold: Minimum spread across assets.
        rebalance_threshold: Drift that justifies a rebalance.
        market_condition_weights: Relative weight of market signals.
        amount_ceiling: Proposals asking for more than this are opposed.
        confidence_floor: Lower bound applied to final confidence.
        confidence_ceiling: Upper bound applied to final confidence.
    """

    risk_tolerance: float
    max_position_size: float
    diversification_threshold: float
    rebalance_threshold: float
    market_condition_weights: MarketConditionWeights
    amount_ceiling: float
    confidence_floor: float = 0.1
    confidence_ceiling: float = 0.9

    def __post_init__(self) -> None:
        for name in (
            "risk_tolerance",
            "max_position_size",
            "diversification_threshold",
            "rebalance_threshold",
            "confidence_floor",
            "confidence_ceiling",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")
        if self.confidence_floor > self.confidence_ceiling:
            raise ValueError("confidence_floor must not exceed confidence_ceiling")

    def clamp_confidence(self, confidence: float) -> float:
        return max(self.confidence_floor, min(self.confidence_ceiling, confidence))


@dataclass(frozen=True)
class VoteDecision:
    """Result of evaluating one proposal."""

    should_vote: bool
    support: bool
    confidence: float
    reasoning: str
    strategy: str = ""
    risk_score: float | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")

    @classmethod
    def abstain(cls, reasoning: str, *, strategy: str = "") -> "VoteDecision":
        return cls(
            should_vote=False,
            support=False,
            confidence=0.0,
            reasoning=reasoning,
            strategy=strategy,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "should_vote": self.should_vote,
            "support": self.support,
            "confidence": round(self.confidence, 4),
            "reasoning": self.reasoning,
            "strategy": self.strategy,
            "risk_score": None if self.risk_score is None else round(self.risk_score, 4),
        }


@dataclass(frozen=True)
class AssetRecommendation:
    """Trading signal for one asset."""

    action: Action
    confidence: float
    reasoning: str = ""
    allocated_percentage: float = 0.0


@dataclass(frozen=True)
class MarketSnapshot:
    """Market view used to refine decisions."""

    recommendations: dict[str, AssetRecommendation]
    portfolio_rebalance: bool = False
    risk_score: float = 0.5
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def recommendation_for(self, symbol: str) -> AssetRecommendation | None:
        return self.recommendations.get(symbol.upper())
