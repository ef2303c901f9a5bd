"""
Cost model engine for transaction-cost estimation.

Implements, for an order of Q quote units and q = Q / best_ask base units:
- slippage_pct = max(0, walk_impact(q) * (1 + 0.5*|imbalance|) * (1 + 100/(depth+1)))
- fees_abs = Q * fee_rate(tier)
- impact_pct = (eta*q + gamma/2 * q^2 * sigma) * (1 + 1/sqrt(depth)), floored at 0
- maker_share = logistic(z) over order size, spread/depth, log depth, |imbalance|
- net_cost_abs = Q*slippage_pct/100 + fees_abs + Q*impact_pct/100

The impact model is Almgren-Chriss style: a linear permanent term and a
quadratic temporary term scaled by volatility. eta and gamma are calibration
knobs, not derived from data.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from tradesim.contracts.simulation import SimulationResult
from tradesim.cost_model.fees import compute_fees
from tradesim.market_metrics.calculator import (
    ComputationInputError,
    MarketMetrics,
    MarketMetricsCalculator,
    best_levels,
)

if TYPE_CHECKING:
    from tradesim.contracts.events import OrderBookSnapshot
    from tradesim.contracts.simulation import SimulationParameters


@dataclass(frozen=True)
class CostModelConfig:
    """Configuration for the cost models.

    Attributes:
        imbalance_penalty: Slippage multiplier per unit |imbalance|. Default: 0.5.
        depth_penalty: Numerator of the thin-book slippage factor. Default: 100.
        eta: Permanent impact coefficient. Default: 0.01.
        gamma: Temporary impact coefficient. Default: 0.1.
        maker_base_offset: Logistic intercept. Default: 0.0.
        maker_size_weight: Weight on relative order size. Default: 3.0.
        maker_spread_weight: Weight on spread/depth. Default: 2.0.
        maker_depth_weight: Weight on log(1+depth)/10. Default: 1.5.
        maker_imbalance_weight: Weight on |imbalance|. Default: 0.5.
    """

    imbalance_penalty: Decimal = Decimal("0.5")
    depth_penalty: Decimal = Decimal(100)
    eta: float = 0.01
    gamma: float = 0.1
    maker_base_offset: float = 0.0
    maker_size_weight: float = 3.0
    maker_spread_weight: float = 2.0
    maker_depth_weight: float = 1.5
    maker_imbalance_weight: float = 0.5


@dataclass(frozen=True)
class CostEstimate:
    """Metrics and result produced by one engine pass."""

    metrics: MarketMetrics
    result: SimulationResult


def _logistic(z: float) -> float:
    """Numerically stable 1 / (1 + e^-z)."""
    if z >= 0:
        return 1.0 / (1.0 + math.exp(-z))
    ez = math.exp(z)
    return ez / (1.0 + ez)


class CostModelEngine:
    """
    Combines a snapshot, its metrics and user parameters into a cost estimate.

    Every call is a single synchronous pass with no I/O; results are new
    immutable SimulationResult instances.
    """

    def __init__(
        self,
        config: CostModelConfig | None = None,
        calculator: MarketMetricsCalculator | None = None,
    ) -> None:
        """Initialize cost model engine.

        Args:
            config: Cost model configuration. Uses defaults if not provided.
            calculator: Metrics calculator used for book walks.
        """
        self._config = config or CostModelConfig()
        self._calculator = calculator or MarketMetricsCalculator()

    @property
    def config(self) -> CostModelConfig:
        """Get cost model configuration."""
        return self._config

    @property
    def calculator(self) -> MarketMetricsCalculator:
        """Get the metrics calculator."""
        return self._calculator

    def slippage_pct(
        self,
        snapshot: OrderBookSnapshot,
        metrics: MarketMetrics,
        quantity_base: Decimal,
    ) -> Decimal:
        """Expected slippage in percent for a buy of quantity_base."""
        walk_impact = self._calculator.price_impact(snapshot, quantity_base, "buy")
        imbalance_factor = 1 + self._config.imbalance_penalty * abs(metrics.imbalance)
        depth_factor = 1 + self._config.depth_penalty / (metrics.depth + 1)
        return max(Decimal(0), walk_impact * imbalance_factor * depth_factor)

    def market_impact_pct(
        self,
        metrics: MarketMetrics,
        quantity_base: float,
        volatility_pct: float,
    ) -> float:
        """
        Almgren-Chriss style impact in percent.

        Zero depth uses a liquidity factor of 2 (depth treated as 1).
        """
        sigma = volatility_pct / 100
        permanent = self._config.eta * quantity_base
        temporary = (self._config.gamma / 2) * quantity_base**2 * sigma

        depth = float(metrics.depth)
        liquidity_factor = 1 + 1 / math.sqrt(depth) if depth > 0 else 2.0

        return max(0.0, (permanent + temporary) * liquidity_factor)

    def maker_taker_proportion(
        self,
        metrics: MarketMetrics,
        quantity_base: float,
        top_of_book_size: float,
    ) -> float:
        """
        Estimated maker share of the order in [0, 1].

        Returns 0 when there is no resting liquidity in the depth band.
        """
        depth = float(metrics.depth)
        if depth <= 0 or top_of_book_size <= 0:
            return 0.0

        cfg = self._config
        relative_size = quantity_base / top_of_book_size
        spread_ratio = float(metrics.spread) / depth
        depth_term = math.log1p(depth) / 10

        z = (
            cfg.maker_base_offset
            - cfg.maker_size_weight * relative_size
            - cfg.maker_spread_weight * spread_ratio
            + cfg.maker_depth_weight * depth_term
            - cfg.maker_imbalance_weight * abs(float(metrics.imbalance))
        )
        return min(1.0, max(0.0, _logistic(z)))

    @staticmethod
    def net_cost_abs(
        quantity: float,
        slippage_pct: float,
        fees_abs: float,
        market_impact_pct: float,
    ) -> float:
        """Total cost in quote currency."""
        return quantity * (slippage_pct / 100) + fees_abs + quantity * (market_impact_pct / 100)

    def compute(
        self,
        snapshot: OrderBookSnapshot,
        metrics: MarketMetrics,
        parameters: SimulationParameters,
    ) -> SimulationResult:
        """
        Compute a full cost estimate from precomputed metrics.

        A book without a best ask or best bid yields an all-zero result.
        """
        return self._compute(snapshot, metrics, parameters, time.perf_counter())

    def evaluate(
        self,
        snapshot: OrderBookSnapshot,
        parameters: SimulationParameters,
    ) -> CostEstimate:
        """Compute metrics and the cost estimate in one timed pass."""
        started = time.perf_counter()
        metrics = self._calculator.calculate(snapshot)
        result = self._compute(snapshot, metrics, parameters, started)
        return CostEstimate(metrics=metrics, result=result)

    def _compute(
        self,
        snapshot: OrderBookSnapshot,
        metrics: MarketMetrics,
        parameters: SimulationParameters,
        started: float,
    ) -> SimulationResult:
        try:
            best_ask, _best_bid = best_levels(snapshot)
        except ComputationInputError:
            return SimulationResult(compute_latency_ms=_elapsed_ms(started))

        quantity = parameters.quantity
        quantity_base = quantity / best_ask.price

        slippage = float(self.slippage_pct(snapshot, metrics, quantity_base))
        fees = float(compute_fees(quantity, parameters.fee_tier))
        impact = self.market_impact_pct(metrics, float(quantity_base), parameters.volatility)
        maker_share = self.maker_taker_proportion(
            metrics, float(quantity_base), float(best_ask.size)
        )
        net_cost = self.net_cost_abs(float(quantity), slippage, fees, impact)

        return SimulationResult(
            expected_slippage_pct=slippage,
            expected_fees_abs=fees,
            expected_market_impact_pct=impact,
            net_cost_abs=net_cost,
            maker_taker_proportion=maker_share,
            compute_latency_ms=_elapsed_ms(started),
        )


def _elapsed_ms(started: float) -> float:
    return max(0.0, (time.perf_counter() - started) * 1000)
