from decimal import Decimal

import pytest

from checkout_pricing.config.tables import QuantityRule
from checkout_pricing.engine.dynamic_pricing import DynamicPricingStage, record_name
from checkout_pricing.engine.models import AdjustmentKind, CartSnapshot, LineItem

from conftest import make_config


@pytest.fixture
def stage(config):
    return DynamicPricingStage(config)


def cart_of(*items):
    return CartSnapshot.from_items('cart-dp', items)


def test_percentage_rule_on_extended_price(stage):
    records = stage.apply(cart_of(LineItem('SKU-BULK', 12, Decimal('10.00'))))

    assert len(records) == 1
    record = records[0]
    assert record.name == record_name('SKU-BULK')
    assert record.kind == AdjustmentKind.DISCOUNT
    assert record.amount == Decimal('-12.00')
    assert record.label == '10+ Bulk'


def test_highest_breakpoint_wins(stage):
    records = stage.apply(cart_of(LineItem('SKU-BULK', 25, Decimal('10.00'))))
    assert records[0].amount == Decimal('-50.00')


def test_below_every_breakpoint_yields_no_record(stage):
    assert stage.apply(cart_of(LineItem('SKU-BULK', 9, Decimal('10.00')))) == []


def test_product_without_rules_yields_no_record(stage):
    assert stage.apply(cart_of(LineItem('SKU-PLAIN', 100, Decimal('10.00')))) == []


def test_role_restricted_rule(stage):
    """Product 80: $10/unit for distro10 from qty 1, for everyone from qty 5."""
    one = cart_of(LineItem('80', 1, Decimal('99.00')))
    five = cart_of(LineItem('80', 5, Decimal('99.00')))

    assert stage.apply(one) == []
    assert stage.apply(one, roles=('distro10',))[0].amount == Decimal('-10.00')
    assert stage.apply(five)[0].amount == Decimal('-50.00')
    assert stage.apply(five)[0].label == 'Bulk Discount'


def test_fixed_price_rule():
    config = make_config(quantity_rules={
        'SKU-FP': [QuantityRule('FP-3', 'SKU-FP', 3, 'fixed_price', Decimal('8.00'))],
    })
    stage = DynamicPricingStage(config)

    records = stage.apply(cart_of(LineItem('SKU-FP', 4, Decimal('10.00'))))
    assert records[0].amount == Decimal('-8.00')

    # A "fixed price" above the current price never raises it
    assert stage.apply(cart_of(LineItem('SKU-FP', 4, Decimal('7.50')))) == []


def test_reduction_capped_at_line_total():
    config = make_config(quantity_rules={
        'SKU-CHEAP': [QuantityRule('OFF-15', 'SKU-CHEAP', 1, 'fixed_amount', Decimal('15'))],
    })
    records = DynamicPricingStage(config).apply(cart_of(LineItem('SKU-CHEAP', 3, Decimal('10.00'))))
    assert records[0].amount == Decimal('-30.00')


def test_lines_with_same_identity_merge_into_one_record(stage):
    records = stage.apply(cart_of(
        LineItem('SKU-BULK', 10, Decimal('10.00')),
        LineItem('SKU-BULK', 10, Decimal('10.00')),
    ))
    assert [r.name for r in records] == [record_name('SKU-BULK')]
    assert records[0].amount == Decimal('-20.00')


def test_distinct_line_ids_get_distinct_records(stage):
    records = stage.apply(cart_of(
        LineItem('SKU-BULK', 10, Decimal('10.00'), line_id='blue'),
        LineItem('SKU-BULK', 10, Decimal('10.00'), line_id='red'),
    ))
    assert [r.name for r in records] == [record_name('blue'), record_name('red')]


def test_repeated_runs_produce_identical_records(stage):
    cart = cart_of(LineItem('SKU-BULK', 12, Decimal('10.00')), LineItem('80', 6, Decimal('50')))
    assert stage.apply(cart) == stage.apply(cart)


def test_preview_below_breakpoint_shows_next_offer(stage):
    preview = stage.preview('SKU-BULK', Decimal('10.00'), 5)

    assert not preview.rule_applied
    assert preview.unit_price == Decimal('10.00')
    assert preview.next_min_qty == 10
    assert preview.next_message == 'Buy 10 or more for $9.00 each'


def test_preview_inside_breakpoint(stage):
    preview = stage.preview('SKU-BULK', Decimal('10.00'), 12)

    assert preview.rule_id == 'BULK-10'
    assert preview.unit_price == Decimal('9.00')
    assert preview.next_min_qty == 20
    assert preview.next_message == 'Buy 20 or more for $8.00 each'
