"""
Checkout Workflows.

Invoice payment lifecycle.  ``pay`` credits a payment; the resulting status
is derived from ``(total, deposit)``, never chosen by the caller.  A fully
paid invoice accepts no further payments.
"""

from workshop_kernel.domain.workflow import Guard, Transition, Workflow
from workshop_kernel.logging_config import get_logger
from workshop_modules.checkout.models import InvoiceStatus

logger = get_logger("modules.checkout.workflows")

_PENDING = InvoiceStatus.PENDING.value
_PARTIAL = InvoiceStatus.PARTIALLY_PAID.value
_PAID = InvoiceStatus.PAID.value

NOTHING_DUE = Guard(
    name="nothing_due",
    description="Deposit covers the invoice total",
)

INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Customer invoice payment",
    initial_state=_PENDING,
    states=(_PENDING, _PARTIAL, _PAID),
    transitions=(
        Transition(_PENDING, _PARTIAL, action="pay"),
        Transition(_PENDING, _PAID, action="pay", guard=NOTHING_DUE),
        Transition(_PARTIAL, _PARTIAL, action="pay"),
        Transition(_PARTIAL, _PAID, action="pay", guard=NOTHING_DUE),
    ),
    terminal_states=(_PAID,),
)

logger.info(
    "invoice_workflow_registered",
    extra={
        "workflow_name": INVOICE_WORKFLOW.name,
        "state_count": len(INVOICE_WORKFLOW.states),
        "transition_count": len(INVOICE_WORKFLOW.transitions),
    },
)
