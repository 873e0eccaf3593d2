"""
Workshop Modules.

The three operations engines over the workshop kernel:
- Receiving: purchase orders and supplier receipts
- Transfers: stock moves between locations
- Checkout: point-of-sale orders, invoices and payments

Each module contains:
- Domain models (frozen DTOs and enums)
- ORM models
- Workflows (state machines)
- The engine (service.py)
"""

from workshop_modules import checkout, receiving, transfers

__all__ = [
    "checkout",
    "receiving",
    "transfers",
]
