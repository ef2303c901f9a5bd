"""Exchange fee table keyed by fee tier."""

from __future__ import annotations

from decimal import Decimal
from types import MappingProxyType

from tradesim.contracts.simulation import FeeTier

# Taker fee rate as a fraction of notional (0.0010 = 0.10%).
FEE_RATES: MappingProxyType[FeeTier, Decimal] = MappingProxyType(
    {
        FeeTier.VIP_0: Decimal("0.0010"),
        FeeTier.VIP_1: Decimal("0.0008"),
        FeeTier.VIP_2: Decimal("0.0006"),
        FeeTier.VIP_3: Decimal("0.0004"),
        FeeTier.VIP_4: Decimal("0.0002"),
        FeeTier.VIP_5: Decimal("0.0000"),
    }
)

BASE_FEE_TIER = FeeTier.VIP_0


def get_fee_rate(tier: FeeTier | str) -> Decimal:
    """
    Look up the fee rate for a tier.

    Args:
        tier: FeeTier member or its label (e.g., "VIP 2").

    Returns:
        Fee rate as a fraction. Unrecognized labels use the base tier rate.
    """
    if not isinstance(tier, FeeTier):
        tier = FeeTier.from_label(tier)
    return FEE_RATES[tier]


def compute_fees(quantity: Decimal, tier: FeeTier | str) -> Decimal:
    """Fees in quote currency for an order of `quantity` quote units."""
    return quantity * get_fee_rate(tier)
