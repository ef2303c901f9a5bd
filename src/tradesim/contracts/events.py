"""
Wire contracts for the order-book feed.

One inbound frame carries one complete order-book snapshot:

    {"timestamp": "...", "exchange": "OKX", "symbol": "BTC-USDT-SWAP",
     "asks": [["95000.1", "0.25"], ...],
     "bids": [["95000.0", "1.10"], ...]}

Prices and sizes arrive as strings and are held as Decimal so that repeated
multiply/sum passes in the calculator do not accumulate float error.
Level ordering is not guaranteed by the wire and is not validated here.
Values whose decimal exponent lies outside +-MAX_LEVEL_EXPONENT are rejected:
they are finite but would overflow the calculator's Decimal arithmetic.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Literal, NamedTuple

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

Side = Literal["asks", "bids"]

# Prices and sizes must lie within 1e-30 .. 1e30 (zero is allowed).
MAX_LEVEL_EXPONENT = 30


class ParseError(Exception):
    """Raised when an inbound frame cannot be decoded into a snapshot.

    Non-fatal for the feed: the connection stays open and the last good
    snapshot remains authoritative.
    """

    def __init__(self, message: str, *, excerpt: str = "") -> None:
        super().__init__(message)
        self.excerpt = excerpt


class PriceLevel(NamedTuple):
    """Single price level (price, size)."""

    price: Decimal
    size: Decimal


class OrderBookSnapshot(BaseModel):
    """
    Complete order-book state for one instrument at one point in time.

    Attributes:
        timestamp: Exchange timestamp as delivered on the wire.
        exchange: Venue identifier (e.g., "OKX").
        symbol: Instrument identifier (e.g., "BTC-USDT-SWAP").
        asks: Ask levels, expected ascending by price.
        bids: Bid levels, expected descending by price.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    timestamp: str = Field(..., description="Exchange timestamp")
    exchange: str = Field(..., min_length=1, description="Venue identifier")
    symbol: str = Field(..., min_length=1, description="Instrument identifier")
    asks: tuple[PriceLevel, ...] = Field(default=(), description="Ask levels")
    bids: tuple[PriceLevel, ...] = Field(default=(), description="Bid levels")

    @field_validator("asks", "bids")
    @classmethod
    def check_level_magnitude(cls, v: tuple[PriceLevel, ...]) -> tuple[PriceLevel, ...]:
        """Reject prices/sizes too large or too small for book arithmetic."""
        for level in v:
            for value in level:
                if value and abs(value.adjusted()) > MAX_LEVEL_EXPONENT:
                    raise ValueError(
                        f"level value {value} outside 1e-{MAX_LEVEL_EXPONENT}"
                        f"..1e{MAX_LEVEL_EXPONENT}"
                    )
        return v

    def levels(self, side: Side) -> tuple[PriceLevel, ...]:
        """Get raw levels for one side."""
        return self.asks if side == "asks" else self.bids

    def to_json(self) -> bytes:
        """Serialize to JSON bytes using orjson (decimals as strings)."""
        return orjson.dumps(self.model_dump(mode="json"))

    @classmethod
    def from_json(cls, data: bytes | str) -> OrderBookSnapshot:
        """Deserialize from JSON, raising ParseError on any failure."""
        return parse_snapshot(data)


def _excerpt(data: bytes | str, limit: int = 80) -> str:
    text = data.decode(errors="replace") if isinstance(data, bytes) else data
    return text if len(text) <= limit else text[:limit] + "..."


def parse_snapshot(data: bytes | str) -> OrderBookSnapshot:
    """
    Decode one wire frame into an OrderBookSnapshot.

    Args:
        data: Raw text or bytes of a single frame.

    Returns:
        Validated snapshot.

    Raises:
        ParseError: If the frame is not JSON, not an object, or fails
            schema validation (missing fields, non-numeric or non-finite
            prices/sizes, malformed level pairs).
    """
    try:
        raw: Any = orjson.loads(data)
    except orjson.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON: {e}", excerpt=_excerpt(data)) from e

    if not isinstance(raw, dict):
        raise ParseError(
            f"Expected JSON object, got {type(raw).__name__}",
            excerpt=_excerpt(data),
        )

    try:
        return OrderBookSnapshot.model_validate(raw)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"][:1]) for err in e.errors()})
        raise ParseError(
            f"Invalid snapshot ({e.error_count()} errors in {', '.join(fields)})",
            excerpt=_excerpt(data),
        ) from e
