"""
DatasiteSync Client - Transfer State Model

States a single file passes through while its content is moved with the
delta protocol, plus a helper that renders them for logs and reports.

Author: DatasiteSync Project
"""

from enum import Enum
from typing import Optional


class TransferState(Enum):
    """
    Per-file transfer states.

    States:
    - UNKNOWN: Nothing computed yet for this file in this cycle
    - SIGNATURE_COMPUTED: Signature of the base content is available
    - DELTA_FETCHED: A diff between base and target content is in hand
    - DELTA_APPLIED: New content is in place (terminal)
    - REJECTED: The server's hash guard refused the delta
    """
    UNKNOWN = "unknown"
    SIGNATURE_COMPUTED = "signature_computed"
    DELTA_FETCHED = "delta_fetched"
    DELTA_APPLIED = "delta_applied"
    REJECTED = "rejected"


def is_terminal(state: TransferState) -> bool:
    return state in (TransferState.DELTA_APPLIED, TransferState.REJECTED)


def get_transfer_message(state: TransferState, path: str) -> Optional[str]:
    """
    Convert a TransferState to a human readable status line.

    Args:
        state: The transfer state
        path: File path the state belongs to

    Returns:
        Message string, None for UNKNOWN
    """
    if state == TransferState.UNKNOWN:
        return None
    elif state == TransferState.SIGNATURE_COMPUTED:
        return f"Computed signature for {path}"
    elif state == TransferState.DELTA_FETCHED:
        return f"Delta ready for {path}"
    elif state == TransferState.DELTA_APPLIED:
        return f"Applied delta to {path}"
    elif state == TransferState.REJECTED:
        return f"Server rejected delta for {path}: content changed concurrently"
    else:
        return f"Unknown transfer state for {path}: {state}"
