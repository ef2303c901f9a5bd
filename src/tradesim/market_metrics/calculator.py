"""
Market microstructure metrics derived from a single order-book snapshot.

Implements:
- spread = best_ask - best_bid
- mid = (best_ask + best_bid) / 2
- depth = total size within a symmetric band (default 2%) around mid
- imbalance = (bid_depth - ask_depth) / (bid_depth + ask_depth), 0 if empty
- volatility_proxy = spread / mid * 100
- VWAP per side and book-walk price impact

All functions are pure and operate on Decimal. Levels are normalized
(non-positive prices/sizes dropped, sorted best-first) before use because
the wire does not guarantee ordering.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Literal

from tradesim.contracts.events import PriceLevel

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from tradesim.contracts.events import OrderBookSnapshot, Side

ZERO = Decimal(0)
HUNDRED = Decimal(100)

# Returned by price_impact when the side cannot fill the requested size.
INSUFFICIENT_LIQUIDITY_IMPACT_PCT = Decimal(100)

TradeSide = Literal["buy", "sell"]


class ComputationInputError(Exception):
    """Raised internally when a snapshot has no best ask or no best bid.

    Never propagated out of MarketMetricsCalculator.calculate(); callers get
    neutral metrics instead.
    """


@dataclass(frozen=True)
class MetricsConfig:
    """Configuration for metric derivation.

    Attributes:
        depth_band_frac: Half-width of the depth band as a fraction of mid.
            Default: 0.02 (2%).
        insufficient_liquidity_pct: Impact returned when a side cannot fill
            the requested quantity. Default: 100 (%).
    """

    depth_band_frac: Decimal = Decimal("0.02")
    insufficient_liquidity_pct: Decimal = INSUFFICIENT_LIQUIDITY_IMPACT_PCT


@dataclass(frozen=True)
class MarketMetrics:
    """Metrics for one snapshot.

    Attributes:
        spread: best_ask - best_bid (may be <= 0 on a crossed book).
        mid_price: Midpoint of best ask and best bid.
        depth: Bid + ask size within the depth band.
        imbalance: Normalized depth imbalance in [-1, 1].
        volatility_proxy: Relative spread in percent. A liquidity-based
            short-horizon proxy, not a statistical volatility estimate.
    """

    spread: Decimal = ZERO
    mid_price: Decimal = ZERO
    depth: Decimal = ZERO
    imbalance: Decimal = ZERO
    volatility_proxy: Decimal = ZERO

    @property
    def is_neutral(self) -> bool:
        """True for the 'no data yet' metrics."""
        return self == NEUTRAL_METRICS


NEUTRAL_METRICS = MarketMetrics()


def normalize_levels(levels: Iterable[PriceLevel], side: Side) -> list[PriceLevel]:
    """
    Drop empty levels and sort best-first.

    Args:
        levels: Raw levels from the wire.
        side: "asks" (ascending) or "bids" (descending).

    Returns:
        Levels with price > 0 and size > 0, best price first.
    """
    usable = [level for level in levels if level.price > 0 and level.size > 0]
    usable.sort(key=lambda level: level.price, reverse=(side == "bids"))
    return usable


def best_levels(snapshot: OrderBookSnapshot) -> tuple[PriceLevel, PriceLevel]:
    """
    Get (best_ask, best_bid) of a snapshot.

    Raises:
        ComputationInputError: If either side has no usable level.
    """
    asks = normalize_levels(snapshot.asks, "asks")
    bids = normalize_levels(snapshot.bids, "bids")
    if not asks or not bids:
        raise ComputationInputError(
            f"Degenerate book: {len(asks)} ask levels, {len(bids)} bid levels"
        )
    return asks[0], bids[0]


def compute_vwap(levels: Sequence[PriceLevel]) -> Decimal:
    """
    Size-weighted average price over a set of levels.

    Returns:
        VWAP, or 0 if there are no levels or total size is 0.
    """
    total_size = ZERO
    weighted = ZERO
    for level in levels:
        weighted += level.price * level.size
        total_size += level.size
    if total_size == 0:
        return ZERO
    return weighted / total_size


def compute_price_impact(
    levels: Sequence[PriceLevel],
    quantity_base: Decimal,
    side: TradeSide,
    insufficient_liquidity_pct: Decimal = INSUFFICIENT_LIQUIDITY_IMPACT_PCT,
) -> Decimal:
    """
    Walk levels from the best price outward and measure the fill's impact.

    Args:
        levels: Normalized levels of the side being consumed (asks for a
            buy, bids for a sell), best first.
        quantity_base: Quantity to fill, in base units.
        side: "buy" or "sell".
        insufficient_liquidity_pct: Sentinel returned when the total size of
            all levels is below quantity_base.

    Returns:
        Percentage distance of the average fill price from the best price.
        Non-negative for a well-formed side. 0 for a non-positive quantity or
        an empty side.

    Example:
        >>> asks = [PriceLevel(Decimal(100), Decimal(2)), PriceLevel(Decimal(101), Decimal(3))]
        >>> compute_price_impact(asks, Decimal(1), "buy")
        Decimal('0')
    """
    if quantity_base <= 0 or not levels:
        return ZERO

    best_price = levels[0].price
    remaining = quantity_base
    total_cost = ZERO

    for level in levels:
        if remaining <= 0:
            break
        fill = min(remaining, level.size)
        total_cost += fill * level.price
        remaining -= fill

    if remaining > 0:
        return insufficient_liquidity_pct

    avg_price = total_cost / quantity_base
    if side == "buy":
        return (avg_price - best_price) / best_price * HUNDRED
    return (best_price - avg_price) / best_price * HUNDRED


def compute_realized_volatility(prices: Sequence[float], window: int = 20) -> float:
    """
    Annualized standard deviation of log returns, in percent.

    Uses the last `window` returns and 252 periods per year. This is a
    display statistic over the result history; no cost model consumes it.

    Returns:
        Volatility in percent, or 0.0 with fewer than 3 usable prices.
    """
    usable = [p for p in prices if p > 0]
    if len(usable) < 3:
        return 0.0

    returns = [math.log(b / a) for a, b in zip(usable, usable[1:])]
    returns = returns[-window:]
    if len(returns) < 2:
        return 0.0

    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / (len(returns) - 1)
    return math.sqrt(variance * 252) * 100


class MarketMetricsCalculator:
    """Derives MarketMetrics, VWAP and price impact from snapshots."""

    def __init__(self, config: MetricsConfig | None = None) -> None:
        """Initialize calculator.

        Args:
            config: Metrics configuration. Uses defaults if not provided.
        """
        self._config = config or MetricsConfig()

    @property
    def config(self) -> MetricsConfig:
        """Get metrics configuration."""
        return self._config

    def calculate(self, snapshot: OrderBookSnapshot) -> MarketMetrics:
        """
        Compute spread, mid, depth, imbalance and volatility proxy.

        Returns NEUTRAL_METRICS if either side has no usable best level.
        """
        asks = normalize_levels(snapshot.asks, "asks")
        bids = normalize_levels(snapshot.bids, "bids")
        if not asks or not bids:
            return NEUTRAL_METRICS

        best_ask = asks[0].price
        best_bid = bids[0].price
        spread = best_ask - best_bid
        mid = (best_ask + best_bid) / 2
        band = mid * self._config.depth_band_frac

        bid_depth = sum((lvl.size for lvl in bids if abs(mid - lvl.price) <= band), ZERO)
        ask_depth = sum((lvl.size for lvl in asks if abs(mid - lvl.price) <= band), ZERO)
        depth = bid_depth + ask_depth

        imbalance = (bid_depth - ask_depth) / depth if depth != 0 else ZERO

        return MarketMetrics(
            spread=spread,
            mid_price=mid,
            depth=depth,
            imbalance=imbalance,
            volatility_proxy=spread / mid * HUNDRED,
        )

    def vwap(self, snapshot: OrderBookSnapshot, side: Side) -> Decimal:
        """Size-weighted average price of one side; 0 if empty."""
        return compute_vwap(normalize_levels(snapshot.levels(side), side))

    def price_impact(
        self,
        snapshot: OrderBookSnapshot,
        quantity_base: Decimal,
        side: TradeSide = "buy",
    ) -> Decimal:
        """
        Book-walk price impact in percent.

        A buy consumes asks, a sell consumes bids. Returns the configured
        insufficient-liquidity sentinel if the side cannot fill quantity_base.
        """
        book_side: Side = "asks" if side == "buy" else "bids"
        levels = normalize_levels(snapshot.levels(book_side), book_side)
        return compute_price_impact(
            levels,
            quantity_base,
            side,
            insufficient_liquidity_pct=self._config.insufficient_liquidity_pct,
        )
