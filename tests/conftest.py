import os
import sys
from decimal import Decimal

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from checkout_pricing.config.tables import PricingConfig, QuantityRule, CREDIT_CARD_METHOD
from checkout_pricing.engine.models import CartSnapshot, CustomerProfile, LineItem
from checkout_pricing.engine.pipeline import PricingPipeline


def make_config(**overrides) -> PricingConfig:
    """Default tables plus a couple of quantity rules for product 80 and SKU-BULK."""
    base = PricingConfig.default()
    fields = dict(
        surcharge_methods=base.surcharge_methods,
        surcharge_limits=base.surcharge_limits,
        thresholds=base.thresholds,
        brackets=base.brackets,
        quantity_rules={
            '80': [
                QuantityRule('VIP-80', '80', 1, 'fixed_amount', Decimal('10'), role='distro10',
                             priority=100, label='VIP Discount'),
                QuantityRule('BULK-80', '80', 5, 'fixed_amount', Decimal('10'), label='Bulk Discount'),
            ],
            'SKU-BULK': [
                QuantityRule('BULK-10', 'SKU-BULK', 10, 'percentage', Decimal('10'), label='10+ Bulk'),
                QuantityRule('BULK-20', 'SKU-BULK', 20, 'percentage', Decimal('20'), label='20+ Bulk'),
            ],
        },
        default_manual_rate=base.default_manual_rate,
    )
    fields.update(overrides)
    return PricingConfig(**fields)


@pytest.fixture(scope="function")
def config():
    return make_config()


@pytest.fixture(scope="function")
def pipeline(config):
    return PricingPipeline(config)


@pytest.fixture
def platinum_customer():
    return CustomerProfile(customer_id='C-PLAT', trailing_spend=Decimal('1200'), trailing_orders=8)


@pytest.fixture
def regular_customer():
    return CustomerProfile(customer_id='C-NEW', trailing_spend=Decimal('40'), trailing_orders=1)


@pytest.fixture
def card_cart():
    """The production regression cart: 545.00 + 26.26 shipping, paying by card."""
    return CartSnapshot.from_items(
        'cart-545',
        [LineItem('SKU-A', 1, Decimal('545.00'))],
        shipping_total=Decimal('26.26'),
        payment_method=CREDIT_CARD_METHOD,
    )
