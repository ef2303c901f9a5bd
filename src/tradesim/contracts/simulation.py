"""
Simulation contracts: user parameters, computed results and history points.

All models are frozen; a new instance is created per recomputation.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from enum import Enum
from typing import Any, Literal

import orjson
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

SUPPORTED_EXCHANGE = "OKX"

# Largest accepted order size in quote currency. The quadratic impact term
# must stay within float range for any book that passes wire validation.
MAX_QUANTITY = Decimal("1e12")


class OrderType(str, Enum):
    """Order type selected by the user."""

    MARKET = "market"
    LIMIT = "limit"


class FeeTier(str, Enum):
    """Exchange fee tier (closed set)."""

    VIP_0 = "VIP 0"
    VIP_1 = "VIP 1"
    VIP_2 = "VIP 2"
    VIP_3 = "VIP 3"
    VIP_4 = "VIP 4"
    VIP_5 = "VIP 5"

    @classmethod
    def from_label(cls, label: str) -> FeeTier:
        """
        Resolve a tier label, falling back to the base tier.

        Unrecognized labels resolve to VIP 0 (the highest fee rate), never
        to a zero-fee tier.
        """
        try:
            return cls(label)
        except ValueError:
            logger.warning(
                "Unknown fee tier, using base tier",
                extra={"fee_tier": label, "fallback": cls.VIP_0.value},
            )
            return cls.VIP_0


class SimulationParameters(BaseModel):
    """
    User-controlled simulation inputs.

    Attributes:
        exchange: Venue (only OKX is supported).
        asset: Instrument symbol.
        order_type: Market or limit.
        quantity: Order size in quote currency, in (0, MAX_QUANTITY].
        volatility: Volatility in percent, within [0.1, 10].
        fee_tier: Fee tier used for the fee lookup.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    exchange: Literal["OKX"] = Field(default=SUPPORTED_EXCHANGE, description="Venue")
    asset: str = Field(default="BTC-USDT-SWAP", min_length=1, description="Instrument")
    order_type: OrderType = Field(default=OrderType.MARKET, description="Order type")
    quantity: Decimal = Field(
        default=Decimal("100"),
        gt=0,
        le=MAX_QUANTITY,
        description="Order size in quote currency",
    )
    volatility: float = Field(default=2.0, ge=0.1, le=10.0, description="Volatility (%)")
    fee_tier: FeeTier = Field(default=FeeTier.VIP_0, description="Fee tier")

    @field_validator("fee_tier", mode="before")
    @classmethod
    def resolve_fee_tier(cls, v: Any) -> Any:
        """Map unknown tier labels to the base tier."""
        if isinstance(v, str) and not isinstance(v, FeeTier):
            return FeeTier.from_label(v)
        return v


class SimulationResult(BaseModel):
    """
    Transaction-cost estimate for one snapshot + parameter pair.

    Attributes:
        expected_slippage_pct: Expected slippage in percent.
        expected_fees_abs: Exchange fees in quote currency.
        expected_market_impact_pct: Market impact in percent.
        net_cost_abs: Total cost in quote currency.
        maker_taker_proportion: Estimated maker share of the fill [0, 1].
        compute_latency_ms: Wall-clock duration of the computation (diagnostic).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    expected_slippage_pct: float = Field(default=0.0, ge=0)
    expected_fees_abs: float = Field(default=0.0, ge=0)
    expected_market_impact_pct: float = Field(default=0.0, ge=0)
    net_cost_abs: float = Field(default=0.0, ge=0)
    maker_taker_proportion: float = Field(default=0.0, ge=0, le=1)
    compute_latency_ms: float = Field(default=0.0, ge=0)

    def to_json(self) -> bytes:
        """Serialize to JSON bytes using orjson."""
        return orjson.dumps(self.model_dump(mode="json"))


class TimeSeriesPoint(BaseModel):
    """One history entry, appended on each snapshot-driven recomputation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp: str = Field(..., description="Snapshot timestamp from the exchange")
    recorded_at_ms: int = Field(..., ge=0, description="Local wall clock (ms)")
    expected_slippage_pct: float = Field(..., ge=0)
    expected_fees_abs: float = Field(..., ge=0)
    expected_market_impact_pct: float = Field(..., ge=0)
    net_cost_abs: float = Field(..., ge=0)
    maker_taker_proportion: float = Field(..., ge=0, le=1)
    compute_latency_ms: float = Field(..., ge=0)
    best_ask: float = Field(..., description="Best ask price")
    best_bid: float = Field(..., description="Best bid price")

    @classmethod
    def from_result(
        cls,
        result: SimulationResult,
        *,
        timestamp: str,
        recorded_at_ms: int,
        best_ask: Decimal,
        best_bid: Decimal,
    ) -> TimeSeriesPoint:
        """Build a history point from a result and the snapshot's best prices."""
        return cls(
            timestamp=timestamp,
            recorded_at_ms=recorded_at_ms,
            best_ask=float(best_ask),
            best_bid=float(best_bid),
            **result.model_dump(),
        )

    @property
    def mid_price(self) -> float:
        """Mid price at the time of the point."""
        return (self.best_ask + self.best_bid) / 2

    def to_json(self) -> bytes:
        """Serialize to JSON bytes using orjson."""
        return orjson.dumps(self.model_dump(mode="json"))
