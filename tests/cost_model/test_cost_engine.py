"""
Tests for CostModelEngine.

Reference book (asks 100 x 2, 101 x 3; bids 99 x 5, 98 x 1) with default
parameters: 100 quote units -> 1 base unit at the best ask.
"""

from __future__ import annotations

import math
from decimal import Decimal

import pytest

from tradesim.contracts.events import OrderBookSnapshot, PriceLevel
from tradesim.contracts.simulation import MAX_QUANTITY, FeeTier, OrderType, SimulationParameters
from tradesim.cost_model.engine import CostModelConfig, CostModelEngine, _logistic
from tradesim.market_metrics.calculator import NEUTRAL_METRICS, MarketMetrics


def _levels(*pairs: tuple[str, str]) -> tuple[PriceLevel, ...]:
    return tuple(PriceLevel(Decimal(p), Decimal(s)) for p, s in pairs)


def make_snapshot(
    asks: tuple[PriceLevel, ...] | None = None,
    bids: tuple[PriceLevel, ...] | None = None,
) -> OrderBookSnapshot:
    return OrderBookSnapshot(
        timestamp="2025-05-04T10:39:13Z",
        exchange="OKX",
        symbol="BTC-USDT-SWAP",
        asks=_levels(("100", "2"), ("101", "3")) if asks is None else asks,
        bids=_levels(("99", "5"), ("98", "1")) if bids is None else bids,
    )


@pytest.fixture()
def engine() -> CostModelEngine:
    return CostModelEngine()


class TestEvaluate:
    """End-to-end estimate for the reference book."""

    def test_reference_values(self, engine: CostModelEngine) -> None:
        estimate = engine.evaluate(make_snapshot(), SimulationParameters())
        result = estimate.result

        # 1 base unit fills entirely at the best ask.
        assert result.expected_slippage_pct == 0.0
        assert result.expected_fees_abs == pytest.approx(0.1)

        liquidity_factor = 1 + 1 / math.sqrt(11)
        expected_impact = (0.01 * 1 + 0.05 * 1 * 0.02) * liquidity_factor
        assert result.expected_market_impact_pct == pytest.approx(expected_impact)

        assert result.net_cost_abs == pytest.approx(0.1 + 100 * expected_impact / 100)
        assert result.compute_latency_ms >= 0.0

        assert estimate.metrics.depth == Decimal(11)

    def test_maker_share_reference(self, engine: CostModelEngine) -> None:
        result = engine.evaluate(make_snapshot(), SimulationParameters()).result
        z = -3.0 * 0.5 - 2.0 * (1 / 11) + 1.5 * math.log1p(11) / 10 - 0.5 * (1 / 11)
        assert result.maker_taker_proportion == pytest.approx(1 / (1 + math.exp(-z)))

    def test_fees_follow_tier(self, engine: CostModelEngine) -> None:
        snapshot = make_snapshot()
        vip0 = engine.evaluate(snapshot, SimulationParameters(fee_tier=FeeTier.VIP_0)).result
        vip5 = engine.evaluate(snapshot, SimulationParameters(fee_tier=FeeTier.VIP_5)).result
        assert vip0.expected_fees_abs == pytest.approx(0.1)
        assert vip5.expected_fees_abs == 0.0
        assert vip0.net_cost_abs - vip5.net_cost_abs == pytest.approx(0.1)

    def test_order_type_does_not_change_result(self, engine: CostModelEngine) -> None:
        snapshot = make_snapshot()
        market = engine.evaluate(snapshot, SimulationParameters(order_type=OrderType.MARKET))
        limit = engine.evaluate(snapshot, SimulationParameters(order_type=OrderType.LIMIT))
        assert market.result.net_cost_abs == limit.result.net_cost_abs

    def test_insufficient_liquidity_drives_slippage(self, engine: CostModelEngine) -> None:
        """10 base units exceed the 5 available: sentinel impact feeds slippage."""
        params = SimulationParameters(quantity=Decimal(1000))
        result = engine.evaluate(make_snapshot(), params).result
        imbalance_factor = 1 + 0.5 * (1 / 11)
        depth_factor = 1 + 100 / 12
        assert result.expected_slippage_pct == pytest.approx(100 * imbalance_factor * depth_factor)

    def test_degenerate_book_all_zero(self, engine: CostModelEngine) -> None:
        estimate = engine.evaluate(make_snapshot(bids=()), SimulationParameters())
        assert estimate.metrics == NEUTRAL_METRICS
        result = estimate.result
        assert result.expected_slippage_pct == 0.0
        assert result.expected_fees_abs == 0.0
        assert result.expected_market_impact_pct == 0.0
        assert result.net_cost_abs == 0.0
        assert result.maker_taker_proportion == 0.0

    def test_compute_with_precomputed_metrics(self, engine: CostModelEngine) -> None:
        snapshot = make_snapshot()
        metrics = engine.calculator.calculate(snapshot)
        direct = engine.compute(snapshot, metrics, SimulationParameters())
        via_evaluate = engine.evaluate(snapshot, SimulationParameters()).result
        assert direct.net_cost_abs == pytest.approx(via_evaluate.net_cost_abs)

    def test_all_outputs_non_negative(self, engine: CostModelEngine) -> None:
        crossed = make_snapshot(asks=_levels(("99", "1")), bids=_levels(("100", "1")))
        for snapshot in (make_snapshot(), crossed):
            for quantity in (Decimal("0.01"), Decimal(100), Decimal(10_000)):
                result = engine.evaluate(snapshot, SimulationParameters(quantity=quantity)).result
                assert result.expected_slippage_pct >= 0
                assert result.expected_market_impact_pct >= 0
                assert result.net_cost_abs >= 0
                assert 0 <= result.maker_taker_proportion <= 1

    @pytest.mark.parametrize(
        ("ask", "bid", "size"),
        [("1e-30", "1e-30", "1e30"), ("1e-30", "1e-30", "1e-30"), ("9e30", "8e30", "1e-30")],
    )
    def test_largest_quantity_stays_finite(
        self, engine: CostModelEngine, ask: str, bid: str, size: str
    ) -> None:
        """Maximum order size on a book at the wire limits gives finite costs."""
        snapshot = make_snapshot(asks=_levels((ask, size)), bids=_levels((bid, size)))
        params = SimulationParameters(quantity=MAX_QUANTITY, volatility=10.0)
        result = engine.evaluate(snapshot, params).result
        for value in (
            result.expected_slippage_pct,
            result.expected_fees_abs,
            result.expected_market_impact_pct,
            result.net_cost_abs,
        ):
            assert math.isfinite(value)
            assert value >= 0
        assert 0 <= result.maker_taker_proportion <= 1


class TestSlippage:
    def test_thin_book_penalized(self, engine: CostModelEngine) -> None:
        snapshot = make_snapshot()
        metrics = engine.calculator.calculate(snapshot)
        thin = MarketMetrics(
            spread=metrics.spread,
            mid_price=metrics.mid_price,
            depth=Decimal(0),
            imbalance=metrics.imbalance,
            volatility_proxy=metrics.volatility_proxy,
        )
        quantity_base = Decimal(3)
        assert engine.slippage_pct(snapshot, thin, quantity_base) > engine.slippage_pct(
            snapshot, metrics, quantity_base
        )

    def test_imbalance_penalized(self, engine: CostModelEngine) -> None:
        snapshot = make_snapshot()
        balanced = MarketMetrics(depth=Decimal(11), imbalance=Decimal(0))
        skewed = MarketMetrics(depth=Decimal(11), imbalance=Decimal(-1))
        q = Decimal(3)
        assert engine.slippage_pct(snapshot, skewed, q) == pytest.approx(
            engine.slippage_pct(snapshot, balanced, q) * Decimal("1.5")
        )


class TestMarketImpact:
    def test_zero_depth_uses_factor_two(self, engine: CostModelEngine) -> None:
        impact = engine.market_impact_pct(NEUTRAL_METRICS, 1.0, 2.0)
        assert impact == pytest.approx((0.01 + 0.05 * 0.02) * 2.0)

    def test_grows_with_volatility(self, engine: CostModelEngine) -> None:
        metrics = MarketMetrics(depth=Decimal(100))
        assert engine.market_impact_pct(metrics, 5.0, 10.0) > engine.market_impact_pct(
            metrics, 5.0, 0.1
        )

    def test_superlinear_in_size(self, engine: CostModelEngine) -> None:
        metrics = MarketMetrics(depth=Decimal(100))
        small = engine.market_impact_pct(metrics, 1.0, 2.0)
        large = engine.market_impact_pct(metrics, 10.0, 2.0)
        assert large > 10 * small

    def test_custom_coefficients(self) -> None:
        engine = CostModelEngine(CostModelConfig(eta=0.0, gamma=0.0))
        assert engine.market_impact_pct(MarketMetrics(depth=Decimal(4)), 3.0, 5.0) == 0.0


class TestMakerTaker:
    def test_zero_depth_is_zero(self, engine: CostModelEngine) -> None:
        assert engine.maker_taker_proportion(NEUTRAL_METRICS, 1.0, 2.0) == 0.0

    def test_larger_orders_less_maker(self, engine: CostModelEngine) -> None:
        metrics = MarketMetrics(spread=Decimal(1), depth=Decimal(11))
        assert engine.maker_taker_proportion(metrics, 0.1, 2.0) > engine.maker_taker_proportion(
            metrics, 10.0, 2.0
        )

    def test_extreme_inputs_stay_bounded(self, engine: CostModelEngine) -> None:
        metrics = MarketMetrics(spread=Decimal(1), depth=Decimal("1e-9"))
        share = engine.maker_taker_proportion(metrics, 1e12, 1e-12)
        assert 0.0 <= share <= 1.0

    def test_logistic_stable(self) -> None:
        assert _logistic(0.0) == 0.5
        assert _logistic(-1000.0) == 0.0
        assert _logistic(1000.0) == 1.0


class TestNetCost:
    def test_formula(self) -> None:
        # 1000 * 0.5% + 2 + 1000 * 0.25%
        assert CostModelEngine.net_cost_abs(1000.0, 0.5, 2.0, 0.25) == pytest.approx(9.5)

    def test_fees_only(self) -> None:
        assert CostModelEngine.net_cost_abs(100.0, 0.0, 0.1, 0.0) == pytest.approx(0.1)
