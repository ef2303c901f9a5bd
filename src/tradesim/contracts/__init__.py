"""Data contracts shared between the feed, the models and the orchestrator."""

from tradesim.contracts.events import (
    MAX_LEVEL_EXPONENT,
    OrderBookSnapshot,
    ParseError,
    PriceLevel,
    Side,
    parse_snapshot,
)
from tradesim.contracts.simulation import (
    MAX_QUANTITY,
    SUPPORTED_EXCHANGE,
    FeeTier,
    OrderType,
    SimulationParameters,
    SimulationResult,
    TimeSeriesPoint,
)

__all__ = [
    "MAX_LEVEL_EXPONENT",
    "MAX_QUANTITY",
    "SUPPORTED_EXCHANGE",
    "FeeTier",
    "OrderBookSnapshot",
    "OrderType",
    "ParseError",
    "PriceLevel",
    "Side",
    "SimulationParameters",
    "SimulationResult",
    "TimeSeriesPoint",
    "parse_snapshot",
]
