"""Platform fee calculation.

The platform keeps a fixed percentage (``settings.platform_fee_percent``,
10% by default) of every escrow. The fee is computed once, when the escrow
transaction is created, in integer minor units:

    platform_fee = floor(amount * rate)
    net_amount   = amount - platform_fee

It is never recomputed; a release carries the escrow's fee and net over
verbatim.
"""

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal

from gigescrow.config import settings


@dataclass(frozen=True)
class FeeBreakdown:
    """Fee split for an amount in minor units."""
    amount: int
    platform_fee: int
    net_amount: int
    rate: Decimal

    def to_dict(self) -> dict:
        return {
            "amount": self.amount,
            "platform_fee": self.platform_fee,
            "net_amount": self.net_amount,
            "rate_percent": str(self.rate * 100),
        }


def calculate_platform_fee(amount: int, rate: Decimal | None = None) -> FeeBreakdown:
    """Split ``amount`` (minor units) into platform fee and talent net.

    Decimal arithmetic so the floor is exact for any integer amount.
    """
    if rate is None:
        rate = settings.platform_fee_percent
    fee = int((Decimal(amount) * rate).to_integral_value(rounding=ROUND_FLOOR))
    return FeeBreakdown(amount=amount, platform_fee=fee, net_amount=amount - fee, rate=rate)


def get_fee_schedule() -> dict:
    """Return the current fee schedule for display to employers and talent."""
    pct = settings.platform_fee_percent * 100
    example = calculate_platform_fee(10_000)
    return {
        "platform_fee_percent": str(pct),
        "charged_at": "Escrow funding (deducted before release to talent)",
        "rounding": "Fee is rounded down to the nearest minor unit",
        "supported_currencies": sorted(settings.normalized_currencies),
        "example": (
            f"On an escrow of 10000 minor units the platform keeps {example.platform_fee} "
            f"and the talent receives {example.net_amount}"
        ),
    }
