"""Engine subpackage - cart pricing models, ledger and stages."""
from .models import (
    AdjustmentKind,
    AdjustmentRecord,
    CartSnapshot,
    CustomerProfile,
    LineItem,
    PipelineResult,
    TierResolution,
    TierSource,
)
from .ledger import AdjustmentLedger, LedgerRegistry

__all__ = [
    'AdjustmentKind', 'AdjustmentRecord', 'CartSnapshot', 'CustomerProfile', 'LineItem',
    'PipelineResult', 'TierResolution', 'TierSource', 'AdjustmentLedger', 'LedgerRegistry',
]
