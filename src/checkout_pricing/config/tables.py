"""
Pricing tables - surcharge rates, loyalty thresholds, rate brackets and
quantity rules.

Tables are read with pandas from CSV files (or sheets of one Excel workbook)
and every row is validated through a pydantic model. A bad row never aborts
loading: it is skipped or clamped and reported as a ConfigurationError.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Literal, Optional

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import ConfigurationError
from ..money import ZERO, format_rate, to_decimal, to_money
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

SURCHARGES = 'surcharges'
LOYALTY_TIERS = 'loyalty_tiers'
TIER_BRACKETS = 'tier_brackets'
QUANTITY_RULES = 'quantity_rules'
OPTIONS = 'options'

MAX_DISCOUNT_RATE = Decimal('0.5')
MAX_SURCHARGE_RATE = Decimal('1')

CREDIT_CARD_METHOD = 'intuit_payments_credit_card'

RuleType = Literal['percentage', 'fixed_amount', 'fixed_price']


# ---------------------------------------------------------------------------
# Configuration values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SurchargeMethod:
    payment_method: str
    rate: Decimal
    label: str


@dataclass(frozen=True)
class SurchargeLimits:
    """Per-order surcharge clamp; results below `minimum` become zero."""
    minimum: Decimal = ZERO
    maximum: Optional[Decimal] = None


@dataclass(frozen=True)
class QualificationThreshold:
    tier: str
    min_spend: Decimal
    min_orders: int = 0


@dataclass(frozen=True)
class RateBracket:
    min_cart_total: Decimal
    rate: Decimal


@dataclass(frozen=True)
class QuantityRule:
    """A quantity breakpoint for one product."""
    rule_id: str
    product_id: str
    min_qty: int
    rule_type: str
    amount: Decimal
    max_qty: Optional[int] = None
    role: Optional[str] = None
    priority: int = 50
    label: str = ''

    def matches(self, qty: int, roles: tuple[str, ...] = ()) -> bool:
        if qty < self.min_qty:
            return False
        if self.max_qty is not None and qty > self.max_qty:
            return False
        if self.role and self.role not in roles:
            return False
        return True


@dataclass
class PricingConfig:
    """Everything the pipeline stages read. Loaded once, read-only afterwards."""
    surcharge_methods: dict[str, SurchargeMethod] = field(default_factory=dict)
    surcharge_limits: SurchargeLimits = field(default_factory=SurchargeLimits)
    thresholds: list[QualificationThreshold] = field(default_factory=list)
    brackets: dict[str, list[RateBracket]] = field(default_factory=dict)
    quantity_rules: dict[str, list[QuantityRule]] = field(default_factory=dict)
    default_manual_rate: Decimal = Decimal('0.10')
    issues: list[ConfigurationError] = field(default_factory=list)

    def __post_init__(self):
        # Highest threshold first; ties keep declaration order
        self.thresholds = sorted(
            self.thresholds, key=lambda t: (t.min_spend, t.min_orders), reverse=True
        )
        self.brackets = {
            tier: sorted(rows, key=lambda b: (b.min_cart_total, b.rate), reverse=True)
            for tier, rows in self.brackets.items()
        }
        self.quantity_rules = {
            product: sorted(rules, key=lambda r: (-r.min_qty, -r.priority))
            for product, rules in self.quantity_rules.items()
        }

    @classmethod
    def default(cls) -> 'PricingConfig':
        """Built-in tables: 3% credit card surcharge, silver/gold/platinum VIP tiers."""
        brackets = {
            'platinum': [
                RateBracket(Decimal('500'), Decimal('0.10')),
                RateBracket(Decimal('300'), Decimal('0.08')),
                RateBracket(Decimal('100'), Decimal('0.05')),
            ],
            'gold': [
                RateBracket(Decimal('300'), Decimal('0.08')),
                RateBracket(Decimal('100'), Decimal('0.05')),
            ],
            'silver': [
                RateBracket(Decimal('100'), Decimal('0.05')),
            ],
        }
        return cls(
            surcharge_methods={
                CREDIT_CARD_METHOD: SurchargeMethod(
                    payment_method=CREDIT_CARD_METHOD,
                    rate=Decimal('0.03'),
                    label='Credit Card Surcharge (3%)',
                ),
            },
            thresholds=[
                QualificationThreshold('platinum', Decimal('500')),
                QualificationThreshold('gold', Decimal('300')),
                QualificationThreshold('silver', Decimal('100')),
            ],
            brackets=brackets,
        )

    def surcharge_for(self, payment_method: Optional[str]) -> Optional[SurchargeMethod]:
        if not payment_method:
            return None
        return self.surcharge_methods.get(payment_method)

    def rules_for(self, product_id: str) -> list[QuantityRule]:
        return self.quantity_rules.get(str(product_id), [])


# ---------------------------------------------------------------------------
# Row schemas
# ---------------------------------------------------------------------------

class _Row(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra='ignore')


class SurchargeRow(_Row):
    payment_method: str = Field(min_length=1)
    rate: Decimal
    label: Optional[str] = None
    active: bool = True


class TierRow(_Row):
    tier: str = Field(min_length=1)
    min_spend: Decimal = ZERO
    min_orders: int = Field(default=0, ge=0)


class BracketRow(_Row):
    tier: str = Field(min_length=1)
    min_cart_total: Decimal
    rate: Decimal


class QuantityRuleRow(_Row):
    rule_id: Optional[str] = None
    product_id: str = Field(min_length=1)
    min_qty: int = Field(ge=1)
    max_qty: Optional[int] = Field(default=None, ge=1)
    type: RuleType
    amount: Decimal = Field(ge=0)
    role: Optional[str] = None
    priority: int = 50
    label: Optional[str] = None
    active: bool = True


class OptionRow(_Row):
    key: str = Field(min_length=1)
    value: str


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _report(issues: list, code: str, message: str, **context) -> None:
    error = ConfigurationError(code=code, message=message, context=context)
    issues.append(error)
    logger.warning("Pricing config %s: %s", code, message)


def clamp_rate(rate: Decimal, upper: Decimal, where: str, issues: list) -> Decimal:
    """Clamp a rate into [0, upper], reporting the correction."""
    if rate < 0:
        _report(issues, 'rate_out_of_range', f"{where}: rate {rate} below 0, clamped to 0", rate=str(rate))
        return ZERO
    if rate > upper:
        _report(issues, 'rate_out_of_range', f"{where}: rate {rate} above {upper}, clamped", rate=str(rate))
        return upper
    return rate


def _normalize(df: pd.DataFrame) -> pd.DataFrame:
    df = df.fillna('')
    df.columns = [str(c).strip() for c in df.columns]
    for col in df.columns:
        df[col] = df[col].astype(str).str.strip()
    return df


class TableReader:
    """Reads raw tables from the config directory or the rules workbook."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._sheets: Optional[dict[str, pd.DataFrame]] = None

    def read(self, table: str) -> Optional[pd.DataFrame]:
        workbook = self.settings.rules_workbook
        if workbook is not None and workbook.exists():
            if self._sheets is None:
                self._sheets = pd.read_excel(workbook, sheet_name=None, dtype=str)
            sheet = self._sheets.get(table)
            return _normalize(sheet) if sheet is not None else None

        path = self.settings.table_path(table)
        if path.exists():
            return _normalize(pd.read_csv(path, dtype=str))
        return None


def _parse_rows(df: pd.DataFrame, model: type[_Row], table: str, issues: list) -> list:
    rows = []
    # Line numbers are 1-based and skip the header, as a spreadsheet shows them
    for line_num, raw in enumerate(df.to_dict(orient='records'), start=2):
        cleaned = {k: v for k, v in raw.items() if v != ''}
        if not cleaned:
            continue
        try:
            rows.append(model.model_validate(cleaned))
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            _report(issues, 'invalid_row', f"{table} line {line_num}: {problems}", table=table, line=line_num)
    return rows


def _build_surcharges(rows: list[SurchargeRow], issues: list) -> dict[str, SurchargeMethod]:
    methods = {}
    for row in rows:
        if not row.active:
            continue
        rate = clamp_rate(row.rate, MAX_SURCHARGE_RATE, f"surcharge {row.payment_method}", issues)
        label = row.label or f"Payment Surcharge ({format_rate(rate)})"
        methods[row.payment_method] = SurchargeMethod(row.payment_method, rate, label)
    return methods


def _build_brackets(rows: list[BracketRow], issues: list) -> dict[str, list[RateBracket]]:
    brackets: dict[str, list[RateBracket]] = {}
    for row in rows:
        rate = clamp_rate(row.rate, MAX_DISCOUNT_RATE, f"bracket {row.tier}@{row.min_cart_total}", issues)
        brackets.setdefault(row.tier.lower(), []).append(RateBracket(row.min_cart_total, rate))
    return brackets


def _build_quantity_rules(rows: list[QuantityRuleRow], issues: list) -> dict[str, list[QuantityRule]]:
    rules: dict[str, list[QuantityRule]] = {}
    for index, row in enumerate(rows, start=1):
        if not row.active:
            continue
        if row.max_qty is not None and row.max_qty < row.min_qty:
            _report(
                issues, 'invalid_row',
                f"quantity rule for {row.product_id}: max_qty {row.max_qty} < min_qty {row.min_qty}, ignoring max",
                product_id=row.product_id,
            )
            row = row.model_copy(update={'max_qty': None})
        amount = row.amount
        if row.type == 'percentage':
            amount = clamp_rate(amount, Decimal('100'), f"quantity rule for {row.product_id}", issues)
        rule = QuantityRule(
            rule_id=row.rule_id or f"QTY-{row.product_id}-{index}",
            product_id=row.product_id,
            min_qty=row.min_qty,
            max_qty=row.max_qty,
            rule_type=row.type,
            amount=amount,
            role=row.role,
            priority=row.priority,
            label=row.label or '',
        )
        rules.setdefault(row.product_id, []).append(rule)
    return rules


def _money_option(options: dict[str, str], key: str, default, issues: list):
    raw = options.get(key)
    if raw is None or raw == '':
        return default
    try:
        value = to_money(raw)
    except ValueError:
        _report(issues, 'invalid_option', f"option {key}={raw!r} is not a number", key=key)
        return default
    if value < 0:
        _report(issues, 'invalid_option', f"option {key}={raw!r} is negative, using default", key=key)
        return default
    return value


def _build_options(rows: list[OptionRow], base: PricingConfig, issues: list) -> tuple[SurchargeLimits, Decimal]:
    options = {row.key.lower(): row.value for row in rows}

    minimum = _money_option(options, 'surcharge_min', base.surcharge_limits.minimum, issues)
    maximum = _money_option(options, 'surcharge_max', base.surcharge_limits.maximum, issues)
    if maximum is not None and minimum > maximum:
        _report(
            issues, 'invalid_limits',
            f"surcharge_min {minimum} exceeds surcharge_max {maximum}, ignoring minimum",
        )
        minimum = ZERO

    manual_rate = base.default_manual_rate
    raw_rate = options.get('default_manual_rate')
    if raw_rate:
        try:
            manual_rate = clamp_rate(to_decimal(raw_rate), MAX_DISCOUNT_RATE, 'default_manual_rate', issues)
        except ValueError:
            _report(issues, 'invalid_option', f"option default_manual_rate={raw_rate!r} is not a number")

    return SurchargeLimits(minimum, maximum), manual_rate


def load_pricing_config(settings: Optional[Settings] = None) -> PricingConfig:
    """
    Load all pricing tables.

    Each table that is missing or unreadable falls back to the built-in
    default table.
    Problems found along the way are logged and collected in `issues`.
    """
    settings = settings or get_settings()
    reader = TableReader(settings)
    base = PricingConfig.default()
    issues: list[ConfigurationError] = []

    def rows_for(table: str, model: type[_Row]) -> Optional[list]:
        try:
            df = reader.read(table)
        except (pd.errors.EmptyDataError, pd.errors.ParserError, ValueError, OSError) as e:
            _report(issues, 'invalid_table', f"{table}: could not be read ({e}), using defaults", table=table)
            return None
        if df is None:
            logger.debug("Pricing table %s not found, using defaults", table)
            return None
        return _parse_rows(df, model, table, issues)

    surcharge_rows = rows_for(SURCHARGES, SurchargeRow)
    tier_rows = rows_for(LOYALTY_TIERS, TierRow)
    bracket_rows = rows_for(TIER_BRACKETS, BracketRow)
    rule_rows = rows_for(QUANTITY_RULES, QuantityRuleRow)
    option_rows = rows_for(OPTIONS, OptionRow) or []

    limits, manual_rate = _build_options(option_rows, base, issues)

    config = PricingConfig(
        surcharge_methods=(
            _build_surcharges(surcharge_rows, issues) if surcharge_rows is not None else base.surcharge_methods
        ),
        surcharge_limits=limits,
        thresholds=(
            [QualificationThreshold(r.tier.lower(), r.min_spend, r.min_orders) for r in tier_rows]
            if tier_rows is not None else base.thresholds
        ),
        brackets=_build_brackets(bracket_rows, issues) if bracket_rows is not None else base.brackets,
        quantity_rules=_build_quantity_rules(rule_rows, issues) if rule_rows is not None else {},
        default_manual_rate=manual_rate,
        issues=issues,
    )
    logger.info(
        "Loaded pricing config: %d surcharge methods, %d tiers, %d products with quantity rules (%d issues)",
        len(config.surcharge_methods), len(config.thresholds), len(config.quantity_rules), len(issues),
    )
    return config
