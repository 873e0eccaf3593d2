"""
Workflow primitives shared by the operations modules.

Each module declares its state machine as a frozen ``Workflow`` of
``Transition`` objects; services ask the workflow whether an action is
allowed before mutating a document, and raise InvalidStateError if not.
"""

from dataclasses import dataclass

from workshop_kernel.exceptions import InvalidStateError


@dataclass(frozen=True)
class Guard:
    """A condition for a transition."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def allowed_actions(self, state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == state)

    def find(self, state: str, action: str) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state == state and transition.action == action:
                return transition
        return None

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def require(
        self,
        state: str,
        action: str,
        *,
        entity_type: str,
        entity_id: str,
    ) -> Transition:
        """Return the transition for ``action`` from ``state`` or raise InvalidStateError."""
        transition = self.find(state, action)
        if transition is None:
            raise InvalidStateError(
                entity_type=entity_type,
                entity_id=entity_id,
                current_status=state,
                action=action,
            )
        return transition
