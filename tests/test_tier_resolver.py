import logging
from decimal import Decimal

import pytest

from checkout_pricing.config.tables import PricingConfig, QualificationThreshold, RateBracket
from checkout_pricing.engine.loyalty import LOYALTY_RECORD_NAME, LoyaltyDiscountStage
from checkout_pricing.engine.models import CartSnapshot, CustomerProfile, TierSource
from checkout_pricing.exceptions import ResolutionError
from checkout_pricing.policy.tier_resolver import MANUAL_TIER, DiscountTierResolver


@pytest.fixture
def resolver():
    return DiscountTierResolver(PricingConfig.default())


def test_manual_vip_uses_profile_override(resolver):
    profile = CustomerProfile('C1', manual_vip=True, manual_rate=Decimal('0.15'))
    resolution = resolver.resolve(profile, Decimal('0'))

    assert resolution.is_eligible
    assert resolution.source == TierSource.MANUAL
    assert resolution.tier_name == MANUAL_TIER
    assert resolution.discount_rate == Decimal('0.15')


def test_manual_vip_without_override_uses_default_rate(resolver):
    profile = CustomerProfile('C1', manual_vip=True)
    resolution = resolver.resolve(profile, Decimal('1.00'))
    assert resolution.is_eligible
    assert resolution.discount_rate == Decimal('0.10')


def test_manual_vip_out_of_range_override_falls_back(resolver, caplog):
    profile = CustomerProfile('C1', manual_vip=True, manual_rate=Decimal('0.9'))

    with caplog.at_level(logging.WARNING):
        resolution = resolver.resolve(profile, Decimal('250'))

    assert resolution.discount_rate == Decimal('0.10')
    assert "rate_out_of_range" in caplog.text


def test_manual_flag_beats_automatic_history(resolver):
    profile = CustomerProfile('C1', manual_vip=True, manual_rate=Decimal('0.02'), trailing_spend=Decimal('5000'))
    resolution = resolver.resolve(profile, Decimal('600'))
    assert resolution.source == TierSource.MANUAL
    assert resolution.discount_rate == Decimal('0.02')


@pytest.mark.parametrize("cart_total, expected_rate", [
    ('500.00', '0.10'),
    ('799.99', '0.10'),
    ('350.00', '0.08'),
    ('100.00', '0.05'),
])
def test_platinum_bracket_selected_by_cart_total(resolver, cart_total, expected_rate):
    profile = CustomerProfile('C1', trailing_spend=Decimal('1200'))
    resolution = resolver.resolve(profile, Decimal(cart_total))

    assert resolution.tier_name == 'platinum'
    assert resolution.source == TierSource.AUTOMATIC
    assert resolution.discount_rate == Decimal(expected_rate)


def test_eligible_but_below_every_bracket_has_zero_rate(resolver):
    profile = CustomerProfile('C1', trailing_spend=Decimal('150'))
    resolution = resolver.resolve(profile, Decimal('60'))
    assert resolution.is_eligible
    assert resolution.tier_name == 'silver'
    assert resolution.discount_rate == Decimal('0')


def test_no_threshold_met_is_not_eligible(resolver):
    profile = CustomerProfile('C1', trailing_spend=Decimal('99.99'), trailing_orders=30)
    resolution = resolver.resolve(profile, Decimal('900'))
    assert not resolution.is_eligible
    assert resolution.source == TierSource.NONE


def test_order_count_threshold_drops_to_lower_tier():
    config = PricingConfig(
        thresholds=[
            QualificationThreshold('gold', Decimal('300'), min_orders=5),
            QualificationThreshold('silver', Decimal('100'), min_orders=1),
        ],
        brackets={
            'gold': [RateBracket(Decimal('0'), Decimal('0.08'))],
            'silver': [RateBracket(Decimal('0'), Decimal('0.05'))],
        },
    )
    resolver = DiscountTierResolver(config)
    profile = CustomerProfile('C1', trailing_spend=Decimal('400'), trailing_orders=2)

    resolution = resolver.resolve(profile, Decimal('50'))

    assert resolution.tier_name == 'silver'
    assert resolution.discount_rate == Decimal('0.05')


def test_bracket_tie_goes_to_higher_rate():
    config = PricingConfig(
        thresholds=[QualificationThreshold('gold', Decimal('0'))],
        brackets={'gold': [
            RateBracket(Decimal('200'), Decimal('0.06')),
            RateBracket(Decimal('200'), Decimal('0.07')),
        ]},
    )
    resolution = DiscountTierResolver(config).resolve(CustomerProfile('C1'), Decimal('250'))
    assert resolution.discount_rate == Decimal('0.07')


def test_missing_profile_raises_resolution_error(resolver):
    with pytest.raises(ResolutionError) as exc:
        resolver.resolve(None, Decimal('100'))
    assert exc.value.code == "profile_missing"


def test_cart_total_500_earns_50_loyalty_discount(resolver):
    """Brackets {500→10%, 300→8%, 100→5%} on a 500.00 cart give a 50.00 discount."""
    profile = CustomerProfile('C1', trailing_spend=Decimal('1200'))
    cart = CartSnapshot('cart-500', subtotal=Decimal('500.00'))

    resolution = resolver.resolve(profile, cart.subtotal)
    record = LoyaltyDiscountStage().apply(cart, resolution)

    assert record is not None
    assert record.name == LOYALTY_RECORD_NAME
    assert record.amount == Decimal('-50.00')
    assert record.label == 'VIP Platinum Discount (10%)'


def test_loyalty_stage_includes_shipping_and_rounds_half_up(resolver):
    profile = CustomerProfile('C1', trailing_spend=Decimal('600'))
    cart = CartSnapshot('cart-x', subtotal=Decimal('100.00'), shipping_total=Decimal('0.50'))

    resolution = resolver.resolve(profile, cart.subtotal)
    record = LoyaltyDiscountStage().apply(cart, resolution)

    # 100.50 * 5% = 5.025 -> 5.03
    assert record.amount == Decimal('-5.03')


def test_loyalty_stage_returns_nothing_when_ineligible():
    cart = CartSnapshot('cart-x', subtotal=Decimal('100.00'))
    from checkout_pricing.engine.models import TierResolution
    assert LoyaltyDiscountStage().apply(cart, TierResolution.none()) is None
