"""
Dynamic Pricing Stage - per-line quantity/bulk discounts.

Emits at most one discount record per line identity, named
`dynamic-pricing:<identity>` so repeated runs overwrite instead of stacking.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from ..config.tables import PricingConfig
from ..money import ZERO, format_money, to_decimal, to_money
from .models import AdjustmentKind, AdjustmentRecord, CartSnapshot, PipelineResult
from .rule_matcher import QuantityRuleMatcher

logger = logging.getLogger(__name__)

STAGE_NAME = "dynamic_pricing"
RECORD_PREFIX = "dynamic-pricing:"


def record_name(identity: str) -> str:
    return f"{RECORD_PREFIX}{identity}"


@dataclass
class PricePreview:
    """What a quantity would cost, without touching any cart."""
    product_id: str
    quantity: int
    base_unit_price: Decimal
    unit_price: Decimal
    rule_id: Optional[str] = None
    rule_label: Optional[str] = None
    next_min_qty: Optional[int] = None
    next_message: Optional[str] = None

    @property
    def rule_applied(self) -> bool:
        return self.rule_id is not None


class DynamicPricingStage:
    """Quantity-based line discounts."""

    name = STAGE_NAME

    def __init__(self, config: PricingConfig):
        self.matcher = QuantityRuleMatcher(config)

    def apply(
        self,
        snapshot: CartSnapshot,
        roles: tuple[str, ...] = (),
        result: Optional[PipelineResult] = None,
    ) -> list[AdjustmentRecord]:
        """
        Compute line discounts for the snapshot.

        Lines sharing an identity are merged into a single record. Lines
        without a matching rule, or whose rule takes nothing off, get no record.
        """
        reductions: dict[str, Decimal] = {}
        labels: dict[str, str] = {}

        for item in snapshot.items:
            if item.quantity <= 0:
                continue
            matched = self.matcher.find_matching_rule(item.product_id, item.quantity, roles)
            if matched is None:
                continue

            reduction, traces = self.matcher.apply_rule_to_line(matched.rule, item.unit_price, item.quantity)
            if result is not None:
                for message in traces:
                    result.add_trace("Dynamic Pricing", f"{item.identity}: {message}")
            if reduction <= 0:
                continue

            key = item.identity
            reductions[key] = reductions.get(key, ZERO) + reduction
            labels.setdefault(key, matched.rule.label or f"Bulk Discount ({item.product_id})")
            logger.debug(
                "Line %s matched %s (%s): -%s",
                key, matched.rule_id, matched.match_reason, reduction,
            )

        return [
            AdjustmentRecord(
                name=record_name(key),
                kind=AdjustmentKind.DISCOUNT,
                amount=-reduction,
                taxable=True,
                stage=STAGE_NAME,
                label=labels[key],
            )
            for key, reduction in reductions.items()
        ]

    def preview(
        self,
        product_id: str,
        unit_price,
        quantity: int,
        roles: tuple[str, ...] = (),
    ) -> PricePreview:
        """Effective unit price at `quantity` plus a hint about the next breakpoint."""
        base = to_decimal(unit_price)
        preview = PricePreview(
            product_id=str(product_id),
            quantity=quantity,
            base_unit_price=to_money(base),
            unit_price=to_money(base),
        )

        if quantity > 0:
            matched = self.matcher.find_matching_rule(product_id, quantity, roles)
            if matched is not None:
                reduction, _ = self.matcher.apply_rule_to_line(matched.rule, base, quantity)
                preview.unit_price = to_money(base - reduction / quantity)
                preview.rule_id = matched.rule_id
                preview.rule_label = matched.rule.label or None

        upcoming = self.matcher.next_breakpoint(product_id, quantity, roles)
        if upcoming is not None:
            preview.next_min_qty = upcoming.min_qty
            reduction, _ = self.matcher.apply_rule_to_line(upcoming, base, upcoming.min_qty)
            unit_at_break = to_money(base - reduction / upcoming.min_qty)
            preview.next_message = (
                f"Buy {upcoming.min_qty} or more for {format_money(unit_at_break)} each"
            )

        return preview
