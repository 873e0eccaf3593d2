"""
Typed Exception Hierarchy for the Workshop Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Inventory operations fail for a small number of well-understood reasons:
the document is missing, the document is in the wrong state, the input is
degenerate, stock would go negative, or another writer got there first.
Callers react differently to each (show the item name, ask the user to
retry, reconcile a half-finished checkout), so each reason has its own
class, a machine-readable ``code`` and structured attributes.

Example - WRONG way to handle errors:
    try:
        transfers.create(...)
    except Exception as e:
        if "Insufficient" in str(e):   # FRAGILE
            ...

Example - RIGHT way:
    try:
        transfers.create(...)
    except InsufficientStockError as e:
        show(e.user_message)           # names the item
    except TransactionConflictError:
        show("Please retry")           # transient

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WorkshopKernelError (base)
    |
    +-- NotFoundError
    |   +-- InventoryRecordNotFoundError
    |   +-- PurchaseOrderNotFoundError
    |   +-- TransferOrderNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- OrderNotFoundError
    |
    +-- InvalidStateError
    |
    +-- ValidationError
    |   +-- NoItemsToReceiveError
    |   +-- EmptyCartError
    |   +-- InvalidQuantityError
    |   +-- InvalidPurchaseOrderError
    |   +-- InvalidTransferError
    |   +-- InvalidCheckoutError
    |   +-- UnknownPurchaseOrderItemError
    |   +-- OverReceiptError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |       +-- OutOfStockError
    |
    +-- ConcurrencyError
    |   +-- TransactionConflictError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- SagaError
        +-- CheckoutIncompleteError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised
-------------|------------------------------|----------------------------------------
Not found    | INVENTORY_RECORD_NOT_FOUND   | Stock record id does not exist
             | PURCHASE_ORDER_NOT_FOUND     | PO id does not exist
             | TRANSFER_ORDER_NOT_FOUND     | Transfer id does not exist
             | INVOICE_NOT_FOUND            | Invoice id does not exist
             | ORDER_NOT_FOUND              | Order id does not exist
-------------|------------------------------|----------------------------------------
State        | INVALID_STATE                | Transition from a non-eligible status
-------------|------------------------------|----------------------------------------
Validation   | NO_ITEMS_TO_RECEIVE          | Every receipt line was zero
             | EMPTY_CART                   | Checkout with no lines and no invoice
             | INVALID_QUANTITY             | Zero/negative/non-integer quantity
             | INVALID_PURCHASE_ORDER       | Malformed PO creation request
             | INVALID_TRANSFER             | Same source/destination, bad items
             | INVALID_CHECKOUT             | Bad price, amount, tax rate or shape
             | UNKNOWN_PO_ITEM              | Receipt line not on the PO
             | OVER_RECEIPT                 | Receipt would exceed ordered quantity
-------------|------------------------------|----------------------------------------
Stock        | INSUFFICIENT_STOCK           | Debit would make stock negative
             | OUT_OF_STOCK                 | Checkout line cannot be fulfilled
-------------|------------------------------|----------------------------------------
Concurrency  | TRANSACTION_CONFLICT         | Retries exhausted on write conflicts
-------------|------------------------------|----------------------------------------
Immutability | IMMUTABILITY_VIOLATION       | Reception or terminal transfer modified
-------------|------------------------------|----------------------------------------
Saga         | CHECKOUT_INCOMPLETE          | Orders exist but invoice/link step failed

===============================================================================
PROPAGATION
===============================================================================

ValidationError subclasses are raised before any transaction is opened and
leave no side effects.  StockError subclasses are raised inside a transaction
body and abort that transaction.  TransactionConflictError is only raised
after the runner has exhausted its retries.  CheckoutIncompleteError means
some saga steps committed; the caller recovers with
``CheckoutEngine.relink_orders`` rather than by rollback.
"""


class WorkshopKernelError(Exception):
    """
    Base exception for all workshop kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "WORKSHOP_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(WorkshopKernelError):
    """Base exception for missing documents."""

    code: str = "NOT_FOUND"
    entity_type: str = "document"

    def __init__(self, entity_id: str):
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class InventoryRecordNotFoundError(NotFoundError):
    code: str = "INVENTORY_RECORD_NOT_FOUND"
    entity_type: str = "Inventory record"


class PurchaseOrderNotFoundError(NotFoundError):
    code: str = "PURCHASE_ORDER_NOT_FOUND"
    entity_type: str = "Purchase order"


class TransferOrderNotFoundError(NotFoundError):
    code: str = "TRANSFER_ORDER_NOT_FOUND"
    entity_type: str = "Transfer order"


class InvoiceNotFoundError(NotFoundError):
    code: str = "INVOICE_NOT_FOUND"
    entity_type: str = "Invoice"


class OrderNotFoundError(NotFoundError):
    code: str = "ORDER_NOT_FOUND"
    entity_type: str = "Order"


# State exceptions


class InvalidStateError(WorkshopKernelError):
    """A transition was attempted from a status that does not allow it."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        action: str,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id}: "
            f"status is {current_status}"
        )


# Validation exceptions


class ValidationError(WorkshopKernelError):
    """Base exception for degenerate or malformed input."""

    code: str = "VALIDATION_ERROR"


class NoItemsToReceiveError(ValidationError):
    """Every receipt line had a zero quantity."""

    code: str = "NO_ITEMS_TO_RECEIVE"

    def __init__(self, purchase_order_id: str):
        self.purchase_order_id = str(purchase_order_id)
        super().__init__(
            f"No items to receive for purchase order {purchase_order_id}"
        )


class EmptyCartError(ValidationError):
    """Checkout was called with no cart lines and no invoice to pay."""

    code: str = "EMPTY_CART"

    def __init__(self):
        super().__init__("Cart is empty: add items before checking out")


class InvalidQuantityError(ValidationError):
    code: str = "INVALID_QUANTITY"

    def __init__(self, item_name: str, quantity: object):
        self.item_name = item_name
        self.quantity = quantity
        super().__init__(f"Invalid quantity {quantity!r} for {item_name}")


class InvalidPurchaseOrderError(ValidationError):
    code: str = "INVALID_PURCHASE_ORDER"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid purchase order: {reason}")


class InvalidTransferError(ValidationError):
    code: str = "INVALID_TRANSFER"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid transfer: {reason}")


class InvalidCheckoutError(ValidationError):
    code: str = "INVALID_CHECKOUT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid checkout: {reason}")


class UnknownPurchaseOrderItemError(ValidationError):
    """A receipt line names an inventory item that is not on the PO."""

    code: str = "UNKNOWN_PO_ITEM"

    def __init__(self, purchase_order_id: str, inventory_item_id: str, name: str):
        self.purchase_order_id = str(purchase_order_id)
        self.inventory_item_id = str(inventory_item_id)
        self.item_name = name
        super().__init__(
            f"Item {name} ({inventory_item_id}) is not on purchase order "
            f"{purchase_order_id}"
        )


class OverReceiptError(ValidationError):
    """Receiving would push received quantity above the ordered quantity."""

    code: str = "OVER_RECEIPT"

    def __init__(
        self,
        purchase_order_id: str,
        item_name: str,
        ordered: int,
        already_received: int,
        receiving: int,
    ):
        self.purchase_order_id = str(purchase_order_id)
        self.item_name = item_name
        self.ordered = ordered
        self.already_received = already_received
        self.receiving = receiving
        super().__init__(
            f"Cannot receive {receiving} of {item_name}: ordered {ordered}, "
            f"already received {already_received}"
        )


# Stock exceptions


class StockError(WorkshopKernelError):
    """Base exception for violations of the non-negative stock invariant."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """A debit would make an inventory record's stock negative."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: str,
        item_name: str,
        requested: int,
        available: int,
    ):
        self.item_id = str(item_id)
        self.item_name = item_name
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {item_name}: requested {requested}, "
            f"available {available}"
        )

    @property
    def user_message(self) -> str:
        return f'Insufficient stock for "{self.item_name}".'


class OutOfStockError(InsufficientStockError):
    """
    A checkout line could not be fulfilled.

    ``committed_debits`` lists ``(item_id, quantity)`` pairs already taken
    by earlier lines of the same checkout; those debits are not reversed.
    """

    code: str = "OUT_OF_STOCK"

    def __init__(
        self,
        item_id: str,
        item_name: str,
        requested: int,
        available: int,
        committed_debits: tuple[tuple[str, int], ...] = (),
    ):
        super().__init__(item_id, item_name, requested, available)
        self.committed_debits = committed_debits

    @property
    def user_message(self) -> str:
        return f'"{self.item_name}" is out of stock.'


# Concurrency exceptions


class ConcurrencyError(WorkshopKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class TransactionConflictError(ConcurrencyError):
    """Optimistic transaction kept conflicting until retries ran out."""

    code: str = "TRANSACTION_CONFLICT"
    retryable: bool = True

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Transaction for {operation} conflicted {attempts} time(s); "
            "please retry"
        )


# Immutability exceptions


class ImmutabilityError(WorkshopKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Saga exceptions


class SagaError(WorkshopKernelError):
    """Base exception for multi-step sequences that stopped part way."""

    code: str = "SAGA_ERROR"


class CheckoutIncompleteError(SagaError):
    """
    Checkout stopped after orders were created.

    ``stage`` is ``"invoice"`` when the invoice could not be written and
    ``"link"`` when the order back-links could not be patched.  Orders remain
    valid standalone records; ``CheckoutEngine.relink_orders`` completes the
    link step once ``invoice_id`` is known.
    """

    code: str = "CHECKOUT_INCOMPLETE"

    def __init__(
        self,
        stage: str,
        order_ids: tuple[str, ...],
        invoice_id: str | None = None,
    ):
        self.stage = stage
        self.order_ids = tuple(str(o) for o in order_ids)
        self.invoice_id = str(invoice_id) if invoice_id else None
        super().__init__(
            f"Checkout incomplete at {stage} step: "
            f"{len(self.order_ids)} order(s) created, invoice {self.invoice_id}"
        )
