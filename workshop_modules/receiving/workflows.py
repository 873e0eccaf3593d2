"""
Receiving Workflows.

Purchase-order lifecycle.  ``receive`` moves an order forward; the
destination status is derived from item state, never chosen by the caller.
"""

from workshop_kernel.domain.workflow import Guard, Transition, Workflow
from workshop_kernel.logging_config import get_logger
from workshop_modules.receiving.models import PurchaseOrderStatus

logger = get_logger("modules.receiving.workflows")

_DRAFT = PurchaseOrderStatus.DRAFT.value
_ORDERED = PurchaseOrderStatus.ORDERED.value
_PARTIAL = PurchaseOrderStatus.PARTIALLY_RECEIVED.value
_RECEIVED = PurchaseOrderStatus.RECEIVED.value
_CANCELLED = PurchaseOrderStatus.CANCELLED.value

ALL_ITEMS_COMPLETE = Guard(
    name="all_items_complete",
    description="Every item's received quantity equals its ordered quantity",
)

NO_RECEPTIONS = Guard(
    name="no_receptions",
    description="Nothing has been received against the order yet",
)

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Purchase order ordering and receiving",
    initial_state=_ORDERED,
    states=(_DRAFT, _ORDERED, _PARTIAL, _RECEIVED, _CANCELLED),
    transitions=(
        Transition(_DRAFT, _ORDERED, action="mark_ordered"),
        Transition(_DRAFT, _CANCELLED, action="cancel", guard=NO_RECEPTIONS),
        Transition(_ORDERED, _CANCELLED, action="cancel", guard=NO_RECEPTIONS),
        Transition(_ORDERED, _PARTIAL, action="receive"),
        Transition(_ORDERED, _RECEIVED, action="receive", guard=ALL_ITEMS_COMPLETE),
        Transition(_PARTIAL, _PARTIAL, action="receive"),
        Transition(_PARTIAL, _RECEIVED, action="receive", guard=ALL_ITEMS_COMPLETE),
    ),
    terminal_states=(_RECEIVED, _CANCELLED),
)

logger.info(
    "purchase_order_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
    },
)
