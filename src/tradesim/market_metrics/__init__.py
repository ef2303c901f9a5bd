"""Order-book microstructure metrics (spread, depth, imbalance, VWAP, impact)."""

from tradesim.market_metrics.calculator import (
    INSUFFICIENT_LIQUIDITY_IMPACT_PCT,
    NEUTRAL_METRICS,
    ComputationInputError,
    MarketMetrics,
    MarketMetricsCalculator,
    MetricsConfig,
    best_levels,
    compute_price_impact,
    compute_realized_volatility,
    compute_vwap,
    normalize_levels,
)

__all__ = [
    "INSUFFICIENT_LIQUIDITY_IMPACT_PCT",
    "NEUTRAL_METRICS",
    "ComputationInputError",
    "MarketMetrics",
    "MarketMetricsCalculator",
    "MetricsConfig",
    "best_levels",
    "compute_price_impact",
    "compute_realized_volatility",
    "compute_vwap",
    "normalize_levels",
]
