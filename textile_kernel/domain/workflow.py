"""
Canonical workflow types (``textile_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines.  Work orders, purchase
orders and vendor returns declare their lifecycles with these types in
``textile_modules.<module>.workflows`` so that every status change goes
through the same lookup.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* A status change that is not a declared transition raises
  ``InvalidTransitionError`` before any write.
"""

from __future__ import annotations

from dataclasses import dataclass

from textile_kernel.exceptions import InvalidTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must hold before a transition fires.

    Descriptive only; the owning service evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition.  ``moves_stock`` marks inventory-posting steps."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    moves_stock: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} references unknown state"
                )

    def find(self, from_state: str, action: str, to_state: str | None = None) -> Transition | None:
        """Return the matching transition, or None."""
        for t in self.transitions:
            if t.from_state != from_state or t.action != action:
                continue
            if to_state is None or t.to_state == to_state:
                return t
        return None

    def allows(self, from_state: str, action: str) -> bool:
        return self.find(from_state, action) is not None

    def require(
        self,
        document_type: str,
        document_id: object,
        from_state: str,
        action: str,
        to_state: str | None = None,
    ) -> Transition:
        """Return the transition or raise InvalidTransitionError."""
        transition = self.find(from_state, action, to_state)
        if transition is None:
            raise InvalidTransitionError(document_type, document_id, from_state, action)
        return transition
