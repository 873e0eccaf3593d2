"""
Transfer Workflows.

PENDING --complete--> COMPLETED
PENDING --cancel----> CANCELLED

Both end states are terminal.
"""

from workshop_kernel.domain.workflow import Transition, Workflow
from workshop_kernel.logging_config import get_logger
from workshop_modules.transfers.models import TransferStatus

logger = get_logger("modules.transfers.workflows")

_PENDING = TransferStatus.PENDING.value
_COMPLETED = TransferStatus.COMPLETED.value
_CANCELLED = TransferStatus.CANCELLED.value

TRANSFER_WORKFLOW = Workflow(
    name="transfer_order",
    description="Stock transfer between locations",
    initial_state=_PENDING,
    states=(_PENDING, _COMPLETED, _CANCELLED),
    transitions=(
        Transition(_PENDING, _COMPLETED, action="complete"),
        Transition(_PENDING, _CANCELLED, action="cancel"),
    ),
    terminal_states=(_COMPLETED, _CANCELLED),
)

logger.info(
    "transfer_workflow_registered",
    extra={
        "workflow_name": TRANSFER_WORKFLOW.name,
        "state_count": len(TRANSFER_WORKFLOW.states),
        "transition_count": len(TRANSFER_WORKFLOW.transitions),
        "initial_state": TRANSFER_WORKFLOW.initial_state,
    },
)
