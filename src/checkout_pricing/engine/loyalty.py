"""Loyalty Discount Stage - one cart-level VIP discount."""
from typing import Optional

from ..money import format_rate, to_money
from .models import AdjustmentKind, AdjustmentRecord, CartSnapshot, TierResolution

STAGE_NAME = "loyalty_discount"
LOYALTY_RECORD_NAME = "loyalty-discount"


class LoyaltyDiscountStage:
    """
    Discount of `rate` on subtotal + shipping.

    The caller folds dynamic-pricing discounts into the snapshot subtotal
    first. Always emitted under LOYALTY_RECORD_NAME, so a cart holds at most
    one loyalty record; when nothing is returned the pipeline's replace-all
    clears any earlier one.
    """

    name = STAGE_NAME

    def apply(self, snapshot: CartSnapshot, resolution: TierResolution) -> Optional[AdjustmentRecord]:
        if not resolution.is_eligible or resolution.discount_rate <= 0:
            return None

        base = snapshot.subtotal + snapshot.shipping_total
        if base <= 0:
            return None

        amount = to_money(base * resolution.discount_rate)
        if amount <= 0:
            return None

        tier = (resolution.tier_name or "").title()
        label = f"VIP {tier} Discount ({format_rate(resolution.discount_rate)})".replace("  ", " ")
        return AdjustmentRecord(
            name=LOYALTY_RECORD_NAME,
            kind=AdjustmentKind.DISCOUNT,
            amount=-amount,
            taxable=True,
            stage=STAGE_NAME,
            label=label,
        )
