"""
Pricing Pipeline - recomputes a cart's fee/discount lines on every change.

Stages run in a fixed order:
1. Dynamic pricing (per-line quantity discounts)
2. Tier resolution on the cart total after line discounts
3. Loyalty discount on subtotal + shipping
4. Payment surcharge on subtotal + shipping - loyalty discount
5. Ledger replace-all with whatever the stages produced

A failing stage contributes nothing; the others still run. A run that
starts while another is in flight for the same cart is rejected.
"""
import logging
from contextlib import contextmanager
from typing import Callable, Optional, TypeVar

from ..config.tables import PricingConfig
from ..exceptions import LedgerError, ReentrancyRejected, ResolutionError, StageError
from ..money import format_money, format_rate
from ..policy.tier_resolver import DiscountTierResolver
from .dynamic_pricing import DynamicPricingStage
from .ledger import AdjustmentLedger, LedgerRegistry
from .loyalty import LoyaltyDiscountStage
from .models import CartSnapshot, CustomerProfile, PipelineResult, TierResolution
from .surcharge import SurchargeStage

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PricingPipeline:
    """
    Orchestrates the pricing stages for one cart at a time.

    Usage:
        pipeline = PricingPipeline(load_pricing_config())
        result = pipeline.run(snapshot, profile)
        pipeline.ledgers.ledger_for(snapshot.cart_id).current()
    """

    def __init__(
        self,
        config: Optional[PricingConfig] = None,
        ledgers: Optional[LedgerRegistry] = None,
    ):
        self.config = config or PricingConfig.default()
        self.ledgers = ledgers if ledgers is not None else LedgerRegistry()

        self.dynamic_pricing = DynamicPricingStage(self.config)
        self.resolver = DiscountTierResolver(self.config)
        self.loyalty = LoyaltyDiscountStage()
        self.surcharge = SurchargeStage(self.config)

        self._running: set[str] = set()

    def is_running(self, cart_id: str) -> bool:
        return cart_id in self._running

    @contextmanager
    def _guard(self, cart_id: str):
        if cart_id in self._running:
            raise ReentrancyRejected(
                code="already_running",
                message=f"Pricing already running for cart {cart_id}",
                context={"cart_id": cart_id},
            )
        self._running.add(cart_id)
        try:
            yield
        finally:
            self._running.discard(cart_id)

    def ledger_for(self, cart_id: str) -> AdjustmentLedger:
        return self.ledgers.ledger_for(cart_id)

    def run(self, cart: CartSnapshot, customer: Optional[CustomerProfile]) -> PipelineResult:
        """
        Recompute and install the cart's adjustments.

        Raises ReentrancyRejected when already running for this cart; every
        other failure is logged and recorded on the result.
        """
        with self._guard(cart.cart_id):
            return self._run(cart, customer)

    def _run(self, cart: CartSnapshot, customer: Optional[CustomerProfile]) -> PipelineResult:
        result = PipelineResult(cart_id=cart.cart_id)
        result.add_trace(
            "Cart",
            f"Subtotal {format_money(cart.subtotal)}, shipping {format_money(cart.shipping_total)}",
            cart.payment_method or "no payment method",
        )
        roles = customer.roles if customer is not None else ()

        # 1. Per-line quantity discounts
        dynamic_records = self._run_stage(
            self.dynamic_pricing.name, result, [],
            lambda: self.dynamic_pricing.apply(cart, roles, result),
        )
        for record in dynamic_records:
            result.add_trace("Dynamic Pricing", record.label, format_money(record.amount))

        # 2. Tier, resolved on the cart total after line discounts
        cart_total = cart.subtotal_after(dynamic_records)
        resolution = self._resolve(customer, cart_total, result)
        result.resolution = resolution

        # 3. Loyalty on the folded snapshot
        priced = cart.with_folded_adjustments(dynamic_records)
        loyalty_record = self._run_stage(
            self.loyalty.name, result, None,
            lambda: self.loyalty.apply(priced, resolution),
        )
        if loyalty_record is not None:
            result.add_trace("Loyalty", loyalty_record.label, format_money(loyalty_record.amount))

        # 4. Surcharge, strictly after loyalty
        surcharge_record = self._run_stage(
            self.surcharge.name, result, None,
            lambda: self.surcharge.apply(priced, loyalty_record),
        )
        if surcharge_record is not None:
            result.add_trace("Surcharge", surcharge_record.label, format_money(surcharge_record.amount))
        else:
            result.add_trace("Surcharge", "No surcharge applied")

        result.records = [
            r for r in [*dynamic_records, loyalty_record, surcharge_record] if r is not None
        ]

        # 5. Swap the full set in
        ledger = self.ledgers.ledger_for(cart.cart_id)
        try:
            ledger.replace_all(result.records)
            result.committed = True
        except LedgerError as e:
            logger.error("Ledger rejected adjustments for cart %s: %s", cart.cart_id, e.message)
            result.add_warning(f"Adjustments not installed: {e.message}")

        logger.debug(
            "Cart %s priced: %d adjustments, net %s",
            cart.cart_id, len(result.records), result.net_adjustment,
        )
        return result

    def _resolve(
        self,
        customer: Optional[CustomerProfile],
        cart_total,
        result: PipelineResult,
    ) -> TierResolution:
        try:
            resolution = self.resolver.resolve(customer, cart_total)
        except ResolutionError as e:
            logger.info("Pricing cart %s as non-VIP: %s", result.cart_id, e.message)
            result.add_trace("Tier", "Customer unavailable, pricing as non-VIP")
            return TierResolution.none()
        except Exception as e:
            self._report_stage_failure(StageError("tier_resolution", e), result)
            return TierResolution.none()

        if resolution.is_eligible:
            result.add_trace(
                "Tier",
                f"{resolution.tier_name} ({resolution.source.value}) on {format_money(cart_total)}",
                format_rate(resolution.discount_rate),
            )
        else:
            result.add_trace("Tier", "Not eligible for a loyalty discount")
        return resolution

    def _run_stage(self, stage: str, result: PipelineResult, fallback: T, call: Callable[[], T]) -> T:
        """Run one stage; on any exception drop its contribution and keep going."""
        try:
            return call()
        except Exception as e:
            self._report_stage_failure(StageError(stage, e), result)
            return fallback

    @staticmethod
    def _report_stage_failure(error: StageError, result: PipelineResult) -> None:
        logger.error(
            "Pricing stage %s failed for cart %s; continuing without it",
            error.stage, result.cart_id, exc_info=error.cause,
        )
        result.add_warning(error.message)
        result.add_trace("Stage Failed", error.message)
