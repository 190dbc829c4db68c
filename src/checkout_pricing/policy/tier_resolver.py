"""
Discount Tier Resolver - Resolves a customer's loyalty tier and rate.
"""
import logging
from decimal import Decimal
from typing import Optional

from ..config.tables import MAX_DISCOUNT_RATE, PricingConfig, RateBracket
from ..exceptions import ConfigurationError, ResolutionError
from ..engine.models import CustomerProfile, TierResolution, TierSource
from ..money import ZERO, to_decimal

logger = logging.getLogger(__name__)

MANUAL_TIER = "vip"


class DiscountTierResolver:
    """
    Resolves the loyalty tier for a customer.

    Waterfall precedence:
    1. Manual VIP flag (profile override rate, else configured default)
    2. Automatic qualification on trailing 12-month spend and order count
    3. Fallback: not eligible

    Qualification uses trailing history; the in-tier rate bracket uses the
    current cart total.
    """

    def __init__(self, config: PricingConfig):
        self.config = config

    def resolve(self, profile: Optional[CustomerProfile], cart_total) -> TierResolution:
        """Resolve tier and discount rate. Pure: reads nothing but its arguments."""
        if profile is None:
            raise ResolutionError(
                code="profile_missing",
                message="No customer profile available",
            )

        # 1. Manual VIP
        if profile.manual_vip:
            return TierResolution(
                is_eligible=True,
                tier_name=MANUAL_TIER,
                discount_rate=self._manual_rate(profile),
                source=TierSource.MANUAL,
            )

        # 2. Automatic qualification
        tier = self.qualifying_tier(profile)
        if tier is None:
            return TierResolution.none()

        return TierResolution(
            is_eligible=True,
            tier_name=tier,
            discount_rate=self.bracket_rate(tier, to_decimal(cart_total)),
            source=TierSource.AUTOMATIC,
        )

    def qualifying_tier(self, profile: CustomerProfile) -> Optional[str]:
        """Highest tier whose spend and order thresholds the customer meets."""
        for threshold in self.config.thresholds:
            if (profile.trailing_spend >= threshold.min_spend
                    and profile.trailing_orders >= threshold.min_orders):
                return threshold.tier
        return None

    def bracket_rate(self, tier: str, cart_total: Decimal) -> Decimal:
        """In-tier rate for this cart total; 0 when the cart is below every bracket."""
        bracket = self._select_bracket(self.config.brackets.get(tier, []), cart_total)
        return bracket.rate if bracket is not None else ZERO

    @staticmethod
    def _select_bracket(brackets: list[RateBracket], cart_total: Decimal) -> Optional[RateBracket]:
        # Sorted highest threshold first, higher rate first on ties
        for bracket in brackets:
            if cart_total >= bracket.min_cart_total:
                return bracket
        return None

    def _manual_rate(self, profile: CustomerProfile) -> Decimal:
        rate = profile.manual_rate
        if rate is None:
            return self.config.default_manual_rate
        if ZERO <= rate <= MAX_DISCOUNT_RATE:
            return rate

        error = ConfigurationError(
            code="rate_out_of_range",
            message=(
                f"Manual rate {rate} for customer {profile.customer_id} outside "
                f"[0, {MAX_DISCOUNT_RATE}], using default {self.config.default_manual_rate}"
            ),
            context={"customer_id": profile.customer_id, "rate": str(rate)},
        )
        logger.warning("%s: %s", error.code, error.message)
        return self.config.default_manual_rate
