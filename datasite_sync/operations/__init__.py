"""
DatasiteSync Client - Operations Package

This package contains reconciliation, the delta transfer protocol and the
sync cycle orchestrator.
"""

from .reconcile import (
    ReconcilePlan,
    reconcile,
    reconcile_own_datasite,
    settled_pending,
    diff_states,
    removed_paths,
    union_states
)
from .delta_codec import DeltaCodec, FastRsyncCodec
from .delta_transfer import DeltaTransfer, TransferOutcome
from .sync_operations import SyncOperations, SyncResult

__all__ = [
    'ReconcilePlan',
    'reconcile',
    'reconcile_own_datasite',
    'settled_pending',
    'diff_states',
    'removed_paths',
    'union_states',
    'DeltaCodec',
    'FastRsyncCodec',
    'DeltaTransfer',
    'TransferOutcome',
    'SyncOperations',
    'SyncResult'
]
