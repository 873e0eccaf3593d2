"""
Transfers Module (``workshop_modules.transfers``).

Three-state stock transfer between locations: create debits the source,
complete credits (or creates) the destination record, cancel returns the
stock to the source.
"""

from workshop_modules.transfers.helpers import match_key, validate_transfer_request
from workshop_modules.transfers.models import (
    DestinationPlan,
    TransferItemInfo,
    TransferLine,
    TransferOrderInfo,
    TransferResult,
    TransferStatus,
)
from workshop_modules.transfers.service import TransferEngine
from workshop_modules.transfers.workflows import TRANSFER_WORKFLOW

__all__ = [
    "DestinationPlan",
    "TRANSFER_WORKFLOW",
    "TransferEngine",
    "TransferItemInfo",
    "TransferLine",
    "TransferOrderInfo",
    "TransferResult",
    "TransferStatus",
    "match_key",
    "validate_transfer_request",
]
