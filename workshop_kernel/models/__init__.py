"""ORM models owned by the workshop kernel."""

from workshop_kernel.models.counter import DocumentCounter
from workshop_kernel.models.inventory import InventoryRecord

__all__ = [
    "DocumentCounter",
    "InventoryRecord",
]
