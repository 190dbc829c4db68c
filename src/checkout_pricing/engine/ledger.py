"""
Adjustment Ledger - the authoritative set of fee/discount lines for a cart.

The only mutation is replace_all(): the pipeline builds the complete new set
and swaps it in. Readers always see either the old set or the new one.
"""
import logging
from typing import Iterable

from ..exceptions import LedgerError
from .models import AdjustmentRecord

logger = logging.getLogger(__name__)


class AdjustmentLedger:
    """Current adjustments for one cart, replaced wholesale."""

    def __init__(self, cart_id: str = ""):
        self.cart_id = cart_id
        self._records: tuple[AdjustmentRecord, ...] = ()
        self._version = 0

    @property
    def version(self) -> int:
        """Incremented on every successful replace_all()."""
        return self._version

    def current(self) -> tuple[AdjustmentRecord, ...]:
        """Read-only snapshot of the installed records, in insertion order."""
        return self._records

    def replace_all(self, records: Iterable[AdjustmentRecord]) -> None:
        """
        Atomically swap the full adjustment set.

        Validates everything first; on error raises LedgerError and leaves
        the previous contents installed.
        """
        staged = tuple(records)
        seen = set()
        for record in staged:
            if not isinstance(record, AdjustmentRecord):
                raise LedgerError(
                    code="invalid_record",
                    message=f"Not an AdjustmentRecord: {record!r}",
                    context={"cart_id": self.cart_id},
                )
            if record.name in seen:
                raise LedgerError(
                    code="duplicate_name",
                    message=f"Duplicate adjustment name '{record.name}'",
                    context={"cart_id": self.cart_id, "name": record.name},
                )
            seen.add(record.name)

        self._records = staged
        self._version += 1
        logger.debug(
            "Ledger %s replaced: %d records (version %d)",
            self.cart_id, len(staged), self._version,
        )

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)


class LedgerRegistry:
    """Per-cart ledgers. Released through CartEventHandler.on_cart_closed."""

    def __init__(self):
        self._ledgers: dict[str, AdjustmentLedger] = {}

    def ledger_for(self, cart_id: str) -> AdjustmentLedger:
        """Get the cart's ledger, creating an empty one on first use."""
        ledger = self._ledgers.get(cart_id)
        if ledger is None:
            ledger = AdjustmentLedger(cart_id)
            self._ledgers[cart_id] = ledger
        return ledger

    def discard(self, cart_id: str) -> None:
        """Drop a cart's ledger (cart abandoned or converted to an order)."""
        self._ledgers.pop(cart_id, None)

    def __contains__(self, cart_id: str) -> bool:
        return cart_id in self._ledgers
