"""Tests for market snapshot analysis."""

from decimal import Decimal

import pytest

from governance_voter.market import PriceQuote, StaticMarketDataProvider, analyze_quotes, recommend


def quote(symbol: str, change: float) -> PriceQuote:
    return PriceQuote(symbol=symbol, price=Decimal("1"), change_24h=change)


class TestRecommend:
    @pytest.mark.parametrize(
        ("change", "action", "confidence"),
        [(6.0, "buy", 0.8), (5.0, "hold", 0.6), (-5.0, "hold", 0.6), (-7.5, "sell", 0.7), (0.0, "hold", 0.6)],
    )
    def test_thresholds(self, change: float, action: str, confidence: float) -> None:
        rec = recommend(quote("WBTC", change))
        assert rec.action == action
        assert rec.confidence == confidence


class TestAnalyzeQuotes:
    def test_empty(self) -> None:
        snapshot = analyze_quotes([])
        assert snapshot.recommendations == {}
        assert snapshot.risk_score == 0.5
        assert snapshot.portfolio_rebalance is False

    def test_mixed_signals(self) -> None:
        snapshot = analyze_quotes(
            [quote("usdc", 0.0), quote("WBTC", 8.0), quote("PAXG", 6.0), quote("EURT", -6.0)]
        )

        assert snapshot.recommendation_for("USDC").action == "hold"
        assert snapshot.recommendation_for("wbtc").allocated_percentage == 50.0
        assert snapshot.recommendation_for("EURT").allocated_percentage == 0.0
        assert snapshot.portfolio_rebalance is True
        assert snapshot.risk_score == 0.5

    def test_risk_saturates(self) -> None:
        snapshot = analyze_quotes([quote("WBTC", 25.0), quote("PAXG", -15.0)])
        assert snapshot.risk_score == 1.0

    def test_calm_market(self) -> None:
        snapshot = analyze_quotes([quote("USDC", 0.1), quote("EURT", -0.3)])
        assert snapshot.risk_score == 0.02
        assert snapshot.portfolio_rebalance is False


class TestStaticMarketDataProvider:
    @pytest.mark.asyncio
    async def test_snapshot_and_update(self) -> None:
        provider = StaticMarketDataProvider([quote("WBTC", 8.0)])
        first = await provider.get_snapshot()
        assert first.recommendation_for("WBTC").action == "buy"

        provider.update([quote("WBTC", -8.0)])
        second = await provider.get_snapshot()
        assert second.recommendation_for("WBTC").action == "sell"
