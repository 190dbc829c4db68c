"""
Cart Events - entry point fired by the cart/checkout system whenever line
items, quantities or the chosen payment method change.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..engine.models import AdjustmentKind, CustomerProfile, PipelineResult
from ..engine.pipeline import PricingPipeline
from ..exceptions import ReentrancyRejected, ResolutionError
from ..money import ZERO, to_money
from .protocols import CartSource, CustomerSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartTotals:
    """Display view of a cart: base amounts plus the installed adjustments."""
    cart_id: str
    subtotal: Decimal
    shipping_total: Decimal
    discount_total: Decimal
    surcharge_total: Decimal
    ledger_version: int

    @property
    def grand_total(self) -> Decimal:
        return to_money(self.subtotal + self.shipping_total + self.discount_total + self.surcharge_total)


class CartEventHandler:
    """
    Runs the pricing pipeline on cart-change events.

    One event, one run. Events arriving while a run for the same cart is in
    flight are dropped; the cart system schedules a fresh event afterwards.
    """

    def __init__(self, pipeline: PricingPipeline, carts: CartSource, customers: CustomerSource):
        self.pipeline = pipeline
        self.carts = carts
        self.customers = customers

    def on_cart_changed(self, cart_id: str) -> PipelineResult | None:
        """Recompute adjustments for a cart. Returns None when the event was dropped."""
        try:
            snapshot = self.carts.snapshot(cart_id)
        except Exception:
            logger.exception("Could not read cart %s; pricing event dropped", cart_id)
            return None

        profile = self._profile(cart_id)

        try:
            result = self.pipeline.run(snapshot, profile)
        except ReentrancyRejected as e:
            logger.warning("Pricing event for cart %s dropped: %s", cart_id, e.message)
            return None

        for warning in result.warnings:
            logger.warning("Cart %s: %s", cart_id, warning)
        return result

    def on_cart_closed(self, cart_id: str) -> None:
        """Cart abandoned or converted to an order: release its ledger."""
        if self.pipeline.is_running(cart_id):
            logger.warning("Cart %s closed while pricing is running; ledger kept", cart_id)
            return
        self.pipeline.ledgers.discard(cart_id)
        logger.debug("Released adjustment ledger for cart %s", cart_id)

    def totals(self, cart_id: str) -> CartTotals:
        """Current totals as the display layer should render them."""
        snapshot = self.carts.snapshot(cart_id)
        ledger = self.pipeline.ledger_for(cart_id)
        records = ledger.current()
        return CartTotals(
            cart_id=cart_id,
            subtotal=snapshot.subtotal,
            shipping_total=snapshot.shipping_total,
            discount_total=sum((r.amount for r in records if r.kind == AdjustmentKind.DISCOUNT), ZERO),
            surcharge_total=sum((r.amount for r in records if r.kind == AdjustmentKind.SURCHARGE), ZERO),
            ledger_version=ledger.version,
        )

    def _profile(self, cart_id: str) -> CustomerProfile | None:
        try:
            return self.customers.profile_for(cart_id)
        except Exception as e:
            error = ResolutionError(
                code="profile_lookup_failed",
                message=f"Customer lookup failed for cart {cart_id}: {e}",
                context={"cart_id": cart_id},
            )
            logger.warning("%s; pricing as non-VIP", error.message)
            return None
