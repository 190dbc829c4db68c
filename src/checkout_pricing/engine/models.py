"""
Data models for the cart pricing pipeline.

Uses dataclasses for structured, type-safe data representation. Inputs
(CartSnapshot, CustomerProfile) and outputs (AdjustmentRecord) are frozen;
a snapshot is built fresh for each run and never patched.
"""
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from ..money import ZERO, to_decimal, to_money


class AdjustmentKind(str, Enum):
    DISCOUNT = "discount"
    SURCHARGE = "surcharge"


class TierSource(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    NONE = "none"


@dataclass
class TraceStep:
    """A single step in the pricing trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass(frozen=True)
class LineItem:
    """A single cart line."""
    product_id: str
    quantity: int
    unit_price: Decimal
    line_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price))
        if self.quantity < 0:
            raise ValueError(f"negative quantity for {self.product_id}: {self.quantity}")

    @property
    def identity(self) -> str:
        """Stable key for this line (line_id when set, else product id)."""
        return self.line_id or str(self.product_id)

    @property
    def extended_price(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class AdjustmentRecord:
    """
    A named, signed fee line on the cart.

    Discounts carry negative amounts, surcharges positive ones. `name` is the
    ledger key: a stage re-emits the same name on every run so the new record
    replaces the old one.
    """
    name: str
    kind: AdjustmentKind
    amount: Decimal
    taxable: bool = True
    stage: str = ""
    label: str = ""

    def __post_init__(self):
        if not self.name:
            raise ValueError("adjustment name is required")
        object.__setattr__(self, "amount", to_money(self.amount))
        if self.kind == AdjustmentKind.DISCOUNT and self.amount > 0:
            raise ValueError(f"discount {self.name} must not be positive: {self.amount}")
        if self.kind == AdjustmentKind.SURCHARGE and self.amount < 0:
            raise ValueError(f"surcharge {self.name} must not be negative: {self.amount}")
        if not self.label:
            object.__setattr__(self, "label", self.name)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "amount": str(self.amount),
            "taxable": self.taxable,
            "stage": self.stage,
            "label": self.label,
        }


@dataclass(frozen=True)
class CartSnapshot:
    """Immutable read of cart state at pipeline invocation."""
    cart_id: str
    subtotal: Decimal
    shipping_total: Decimal = ZERO
    items: tuple[LineItem, ...] = ()
    payment_method: Optional[str] = None
    adjustments: tuple[AdjustmentRecord, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "subtotal", to_decimal(self.subtotal))
        object.__setattr__(self, "shipping_total", to_decimal(self.shipping_total))
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "adjustments", tuple(self.adjustments))
        if self.payment_method is not None and not str(self.payment_method).strip():
            object.__setattr__(self, "payment_method", None)

    @classmethod
    def from_items(
        cls,
        cart_id: str,
        items: Iterable[LineItem],
        shipping_total=ZERO,
        payment_method: Optional[str] = None,
        adjustments: Iterable[AdjustmentRecord] = (),
    ) -> "CartSnapshot":
        """Build a snapshot whose subtotal is the sum of extended line prices."""
        items = tuple(items)
        subtotal = sum((item.extended_price for item in items), ZERO)
        return cls(
            cart_id=cart_id,
            subtotal=subtotal,
            shipping_total=shipping_total,
            items=items,
            payment_method=payment_method,
            adjustments=tuple(adjustments),
        )

    def subtotal_after(self, records: Iterable[AdjustmentRecord]) -> Decimal:
        """Subtotal with the given adjustment amounts applied."""
        return self.subtotal + sum((r.amount for r in records), ZERO)

    def with_folded_adjustments(self, records: Iterable[AdjustmentRecord]) -> "CartSnapshot":
        """New snapshot whose subtotal already includes `records`."""
        return replace(self, subtotal=self.subtotal_after(records))


@dataclass(frozen=True)
class CustomerProfile:
    """Customer data read from the identity collaborator."""
    customer_id: str
    manual_vip: bool = False
    manual_rate: Optional[Decimal] = None
    trailing_spend: Decimal = ZERO
    trailing_orders: int = 0
    roles: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "trailing_spend", to_decimal(self.trailing_spend))
        if self.manual_rate is not None:
            object.__setattr__(self, "manual_rate", to_decimal(self.manual_rate))
        object.__setattr__(self, "roles", tuple(self.roles))


@dataclass(frozen=True)
class TierResolution:
    """Loyalty tier and discount rate for one run."""
    is_eligible: bool
    tier_name: Optional[str]
    discount_rate: Decimal
    source: TierSource

    @classmethod
    def none(cls) -> "TierResolution":
        return cls(is_eligible=False, tier_name=None, discount_rate=ZERO, source=TierSource.NONE)


@dataclass
class PipelineResult:
    """Complete result of one pipeline run."""
    cart_id: str
    records: list[AdjustmentRecord] = field(default_factory=list)
    resolution: TierResolution = field(default_factory=TierResolution.none)
    committed: bool = False
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the result-level trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        """Add a result-level warning."""
        self.warnings.append(warning)

    def get_trace_text(self) -> str:
        """Get human-readable result trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"• {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"• {t.step}: {t.description}")
        return "\n".join(lines)

    def names(self) -> list[str]:
        return [r.name for r in self.records]

    def get(self, name: str) -> Optional[AdjustmentRecord]:
        for record in self.records:
            if record.name == name:
                return record
        return None

    @property
    def discount_total(self) -> Decimal:
        return sum((r.amount for r in self.records if r.kind == AdjustmentKind.DISCOUNT), ZERO)

    @property
    def surcharge_total(self) -> Decimal:
        return sum((r.amount for r in self.records if r.kind == AdjustmentKind.SURCHARGE), ZERO)

    @property
    def net_adjustment(self) -> Decimal:
        return self.discount_total + self.surcharge_total

    def to_dict(self) -> dict:
        """Plain dict for the display/checkout collaborator."""
        return {
            "cart_id": self.cart_id,
            "committed": self.committed,
            "tier": self.resolution.tier_name,
            "tier_source": self.resolution.source.value,
            "discount_rate": str(self.resolution.discount_rate),
            "adjustments": [r.to_dict() for r in self.records],
            "discount_total": str(self.discount_total),
            "surcharge_total": str(self.surcharge_total),
            "warnings": list(self.warnings),
        }
