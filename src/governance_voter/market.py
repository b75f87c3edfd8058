"""Market data snapshots for strategy refinement."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Protocol

from governance_voter.strategy.models import AssetRecommendation, MarketSnapshot

logger = logging.getLogger(__name__)

# Signal thresholds (24h % change)
BUY_CHANGE_THRESHOLD = 5.0
SELL_CHANGE_THRESHOLD = -5.0
BUY_CONFIDENCE = 0.8
SELL_CONFIDENCE = 0.7
HOLD_CONFIDENCE = 0.6

# Mean absolute 24h change at which market risk saturates at 1.0
RISK_SATURATION_CHANGE = 10.0
NEUTRAL_RISK = 0.5


@dataclass(frozen=True)
class PriceQuote:
    """Latest price data for one asset."""

    symbol: str
    price: Decimal
    change_24h: float
    volume: Decimal = Decimal("0")
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class MarketDataProvider(Protocol):
    async def get_snapshot(self) -> MarketSnapshot: ...


def recommend(quote: PriceQuote) -> AssetRecommendation:
    if quote.change_24h > BUY_CHANGE_THRESHOLD:
        return AssetRecommendation("buy", BUY_CONFIDENCE, "Strong positive momentum")
    if quote.change_24h < SELL_CHANGE_THRESHOLD:
        return AssetRecommendation("sell", SELL_CONFIDENCE, "Negative trend detected")
    return AssetRecommendation("hold", HOLD_CONFIDENCE, "Stable market conditions")


def analyze_quotes(quotes: Iterable[PriceQuote]) -> MarketSnapshot:
    """Turn price quotes into a market snapshot.

    Each asset gets a buy/sell/hold recommendation from its 24h change.
    Market risk grows with the mean absolute 24h change, and a rebalance
    is suggested when buy and sell signals coexist.
    """
    quotes = list(quotes)
    if not quotes:
        return MarketSnapshot(recommendations={}, portfolio_rebalance=False, risk_score=NEUTRAL_RISK)

    recommendations = {quote.symbol.upper(): recommend(quote) for quote in quotes}

    buys = [symbol for symbol, rec in recommendations.items() if rec.action == "buy"]
    if buys:
        share = round(100.0 / len(buys), 2)
        recommendations = {
            symbol: (
                AssetRecommendation(rec.action, rec.confidence, rec.reasoning, share)
                if symbol in buys
                else rec
            )
            for symbol, rec in recommendations.items()
        }

    mean_abs_change = sum(abs(q.change_24h) for q in quotes) / len(quotes)
    risk_score = round(min(1.0, mean_abs_change / RISK_SATURATION_CHANGE), 6)

    actions = {rec.action for rec in recommendations.values()}
    return MarketSnapshot(
        recommendations=recommendations,
        portfolio_rebalance="buy" in actions and "sell" in actions,
        risk_score=risk_score,
    )


class StaticMarketDataProvider:
    """Provider backed by a fixed set of quotes.

    Example:
        ```python
        provider = StaticMarketDataProvider([
            PriceQuote("USDC", Decimal("1.00"), 0.01),
            PriceQuote("WBTC", Decimal("45000"), 2.5),
        ])
        snapshot = await provider.get_snapshot()
        ```
    """

    def __init__(self, quotes: Iterable[PriceQuote]) -> None:
        self._quotes = list(quotes)

    def update(self, quotes: Iterable[PriceQuote]) -> None:
        self._quotes = list(quotes)

    async def get_snapshot(self) -> MarketSnapshot:
        snapshot = analyze_quotes(self._quotes)
        logger.debug(
            "Market snapshot: %d assets, risk=%.2f, rebalance=%s",
            len(snapshot.recommendations),
            snapshot.risk_score,
            snapshot.portfolio_rebalance,
        )
        return snapshot
