"""
Rule Matcher - Matches quantity breakpoints to cart lines.

Used by the dynamic pricing stage to find the bulk/quantity rule that applies
to a line and to work out how much it takes off the line's extended price.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from ..config.tables import PricingConfig, QuantityRule
from ..money import ZERO, format_money, to_money


@dataclass
class MatchedRule:
    """A rule that matched with context."""
    rule: QuantityRule
    match_reason: str

    @property
    def rule_id(self) -> str:
        return self.rule.rule_id


class QuantityRuleMatcher:
    """
    Matches and applies quantity rules to line items.

    Rules for a product are checked by descending quantity breakpoint; the
    first one whose range (and optional customer role) fits wins.
    """

    def __init__(self, config: PricingConfig):
        self.config = config

    @property
    def loaded(self) -> bool:
        return bool(self.config.quantity_rules)

    def find_matching_rule(
        self,
        product_id: str,
        qty: int,
        roles: tuple[str, ...] = (),
    ) -> Optional[MatchedRule]:
        """Return the first matching rule for this product and quantity, if any."""
        for rule in self.config.rules_for(product_id):
            if not rule.matches(qty, roles):
                continue
            reasons = [f"qty>={rule.min_qty}"]
            if rule.max_qty is not None:
                reasons.append(f"qty<={rule.max_qty}")
            if rule.role:
                reasons.append(f"role={rule.role}")
            return MatchedRule(rule=rule, match_reason=", ".join(reasons))
        return None

    def next_breakpoint(
        self,
        product_id: str,
        qty: int,
        roles: tuple[str, ...] = (),
    ) -> Optional[QuantityRule]:
        """The nearest rule that would start applying at a higher quantity."""
        upcoming = [
            rule for rule in self.config.rules_for(product_id)
            if rule.min_qty > qty and (not rule.role or rule.role in roles)
        ]
        if not upcoming:
            return None
        return min(upcoming, key=lambda r: r.min_qty)

    def apply_rule_to_line(
        self,
        rule: QuantityRule,
        unit_price: Decimal,
        qty: int,
    ) -> tuple[Decimal, list[str]]:
        """
        Work out the reduction a rule gives on a line.

        Returns (reduction, trace_messages). The reduction is positive, rounded
        to cents and never more than the line's extended price.
        """
        traces = []
        extended = unit_price * qty

        if rule.rule_type == 'percentage':
            reduction = extended * rule.amount / Decimal('100')
            traces.append(f"Rule {rule.rule_id} applied {rule.amount}% discount on {format_money(extended)}")

        elif rule.rule_type == 'fixed_amount':
            reduction = rule.amount * qty
            traces.append(f"Rule {rule.rule_id} applied {format_money(rule.amount)} off each of {qty}")

        elif rule.rule_type == 'fixed_price':
            reduction = (unit_price - rule.amount) * qty
            traces.append(
                f"Rule {rule.rule_id} set unit price {format_money(unit_price)} → {format_money(rule.amount)}"
            )

        else:
            traces.append(f"Rule {rule.rule_id} has unknown type '{rule.rule_type}', skipped")
            return ZERO, traces

        if reduction < 0:
            traces.append(f"Rule {rule.rule_id} would raise the price, clamped to no reduction")
            reduction = ZERO
        elif reduction > extended:
            traces.append(f"Rule {rule.rule_id} capped at line total {format_money(extended)}")
            reduction = extended

        return to_money(reduction), traces
