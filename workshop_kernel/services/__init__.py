"""Services for the workshop kernel (write side)."""

from workshop_kernel.services.document_numbers import (
    DocumentNumberService,
    format_document_number,
)
from workshop_kernel.services.stock_service import StockService, validate_quantity

__all__ = [
    "DocumentNumberService",
    "StockService",
    "format_document_number",
    "validate_quantity",
]
