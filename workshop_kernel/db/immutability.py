"""
ORM-Level Immutability Enforcement.

===============================================================================
WHAT THIS PROTECTS
===============================================================================

Two kinds of record are history, not working state:

  - Receptions (goods-received records against a purchase order) and their
    items.  They form an append-only log; a wrong receipt is corrected by a
    new document, never by editing the old one.
  - Transfer orders that reached a terminal status (COMPLETED or CANCELLED)
    and their items.  The stock they moved has already landed.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements are emitted:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

The error aborts the flush; the surrounding transaction rolls back.

Entity                 | When immutable
-----------------------|-------------------------------------------
Reception              | Always (from creation)
ReceptionItem          | Always (from creation)
TransferOrder          | Once status is COMPLETED or CANCELLED
TransferOrderItem      | When the parent transfer is terminal

The terminal transition itself is allowed: the check looks at the status
the row had BEFORE this flush, taken from attribute history.

Module ORM classes are imported inside the functions; the kernel does not
import ``workshop_modules`` at module level.

===============================================================================
USAGE
===============================================================================

    from workshop_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that must write forbidden rows call
``unregister_immutability_listeners()`` and re-register afterwards.
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm.attributes import get_history

from workshop_kernel.exceptions import ImmutabilityViolationError
from workshop_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

TERMINAL_TRANSFER_STATUSES = frozenset({"completed", "cancelled"})

# Bookkeeping columns that may change on a frozen row
_ALWAYS_MUTABLE = frozenset({"updated_at", "version"})


def _block(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    return [
        attr.key
        for attr in inspect(target).attrs
        if attr.key not in _ALWAYS_MUTABLE and attr.history.has_changes()
    ]


# Receptions: append-only


def _check_reception_update(mapper, connection, target):
    _block("Reception", target.id, "UPDATE", "Receptions cannot be modified")


def _check_reception_delete(mapper, connection, target):
    _block("Reception", target.id, "DELETE", "Receptions cannot be deleted")


def _check_reception_item_update(mapper, connection, target):
    _block("ReceptionItem", target.id, "UPDATE", "Reception items cannot be modified")


def _check_reception_item_delete(mapper, connection, target):
    _block("ReceptionItem", target.id, "DELETE", "Reception items cannot be deleted")


# Transfer orders: frozen once terminal


def _status_before_flush(target) -> str:
    """Status as loaded from the database, ignoring a pending change."""
    history = get_history(target, "status")
    if history.deleted:
        return history.deleted[0]
    return target.status


def _check_transfer_order_update(mapper, connection, target):
    """
    Allow PENDING -> COMPLETED/CANCELLED; block any change after that.
    """
    if _status_before_flush(target) not in TERMINAL_TRANSFER_STATUSES:
        return
    changed = _changed_fields(target)
    if changed:
        _block(
            "TransferOrder",
            target.id,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on {target.status} transfer",
            field=changed[0],
        )


def _check_transfer_order_delete(mapper, connection, target):
    if _status_before_flush(target) in TERMINAL_TRANSFER_STATUSES:
        _block(
            "TransferOrder",
            target.id,
            "DELETE",
            f"Cannot delete {target.status} transfer",
        )


def _parent_transfer_status(connection, transfer_order_id) -> str | None:
    from workshop_modules.transfers.orm import TransferOrderModel

    return connection.execute(
        select(TransferOrderModel.status).where(TransferOrderModel.id == transfer_order_id)
    ).scalar_one_or_none()


def _check_transfer_item_update(mapper, connection, target):
    status = _parent_transfer_status(connection, target.transfer_order_id)
    if status in TERMINAL_TRANSFER_STATUSES:
        _block(
            "TransferOrderItem",
            target.id,
            "UPDATE",
            f"Cannot modify items of a {status} transfer",
        )


def _check_transfer_item_delete(mapper, connection, target):
    status = _parent_transfer_status(connection, target.transfer_order_id)
    if status in TERMINAL_TRANSFER_STATUSES:
        _block(
            "TransferOrderItem",
            target.id,
            "DELETE",
            f"Cannot delete items of a {status} transfer",
        )


def _listeners():
    from workshop_modules.receiving.orm import ReceptionItemModel, ReceptionModel
    from workshop_modules.transfers.orm import TransferOrderItemModel, TransferOrderModel

    return (
        (ReceptionModel, "before_update", _check_reception_update),
        (ReceptionModel, "before_delete", _check_reception_delete),
        (ReceptionItemModel, "before_update", _check_reception_item_update),
        (ReceptionItemModel, "before_delete", _check_reception_item_delete),
        (TransferOrderModel, "before_update", _check_transfer_order_update),
        (TransferOrderModel, "before_delete", _check_transfer_order_delete),
        (TransferOrderItemModel, "before_update", _check_transfer_item_update),
        (TransferOrderItemModel, "before_delete", _check_transfer_item_delete),
    )


def register_immutability_listeners():
    """
    Register every immutability listener.  Safe to call more than once.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove a listener, ignoring one that was never registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove every immutability listener.

    WARNING: tests only.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
