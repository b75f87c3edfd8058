"""Voting strategies - proposal evaluation under a risk profile."""

from governance_voter.strategy.models import (
    AssetRecommendation,
    MarketConditionWeights,
    MarketSnapshot,
    StrategyConfig,
    VoteDecision,
)
from governance_voter.strategy.strategies import (
    AggressiveStrategy,
    BalancedStrategy,
    ConservativeStrategy,
    StrategyKind,
    VotingStrategy,
    build_strategy,
)

__all__ = [
    "AggressiveStrategy",
    "AssetRecommendation",
    "BalancedStrategy",
    "ConservativeStrategy",
    "MarketConditionWeights",
    "MarketSnapshot",
    "StrategyConfig",
    "StrategyKind",
    "VoteDecision",
    "VotingStrategy",
    "build_strategy",
]
