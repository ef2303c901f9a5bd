"""Cost model for transaction-cost estimation.

Implements net_cost = slippage + fees + market impact for a single order.
"""

from tradesim.cost_model.engine import (
    CostEstimate,
    CostModelConfig,
    CostModelEngine,
)
from tradesim.cost_model.fees import (
    BASE_FEE_TIER,
    FEE_RATES,
    compute_fees,
    get_fee_rate,
)

__all__ = [
    "BASE_FEE_TIER",
    "FEE_RATES",
    "CostEstimate",
    "CostModelConfig",
    "CostModelEngine",
    "compute_fees",
    "get_fee_rate",
]
