"""
Surcharge Stage - payment-method fee on the discounted order.

The surcharge base excludes the loyalty discount, so this stage must run
after LoyaltyDiscountStage:

    base = subtotal + shipping - loyalty discount
    545.00 + 26.26 - 50.00 = 521.26  ->  3% = 15.64  (not 17.14)
"""
import logging
from decimal import Decimal
from typing import Optional

from ..config.tables import PricingConfig
from ..money import ZERO, to_money
from .models import AdjustmentKind, AdjustmentRecord, CartSnapshot

logger = logging.getLogger(__name__)

STAGE_NAME = "payment_surcharge"
SURCHARGE_RECORD_NAME = "payment-surcharge"


class SurchargeStage:
    """Payment-method surcharge, clamped to the configured limits."""

    name = STAGE_NAME

    def __init__(self, config: PricingConfig):
        self.config = config

    @staticmethod
    def surcharge_base(snapshot: CartSnapshot, loyalty_record: Optional[AdjustmentRecord]) -> Decimal:
        """Subtotal + shipping, less the loyalty discount when there is one."""
        base = snapshot.subtotal + snapshot.shipping_total
        if loyalty_record is not None:
            # Loyalty amounts are negative
            base += loyalty_record.amount
        return base

    def apply(
        self,
        snapshot: CartSnapshot,
        loyalty_record: Optional[AdjustmentRecord],
    ) -> Optional[AdjustmentRecord]:
        method = self.config.surcharge_for(snapshot.payment_method)
        if method is None:
            logger.debug("No surcharge: payment method is %s", snapshot.payment_method or "none")
            return None
        if method.rate <= 0:
            return None

        base = self.surcharge_base(snapshot, loyalty_record)
        if base <= 0:
            return None

        amount = self.clamp(to_money(base * method.rate))
        if amount <= 0:
            return None

        return AdjustmentRecord(
            name=SURCHARGE_RECORD_NAME,
            kind=AdjustmentKind.SURCHARGE,
            amount=amount,
            taxable=True,
            stage=STAGE_NAME,
            label=method.label,
        )

    def clamp(self, amount: Decimal) -> Decimal:
        """Below the minimum is zero (not the minimum); above the maximum is the maximum."""
        limits = self.config.surcharge_limits
        if amount < limits.minimum:
            return ZERO
        if limits.maximum is not None and amount > limits.maximum:
            return limits.maximum
        return amount
