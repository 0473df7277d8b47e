"""
Canonical workflow types (``worksheet_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for role-gated state machines.  A ``Workflow`` is a
static table: states, role-gated ``Transition`` edges, and the ordered
side effects each state declares on entry.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* Every transition names at least one role.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the lifecycle service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid, role-gated state transition.

    Contract: frozen.  ``allowed_roles`` lists the roles permitted to
    *enter* ``to_state`` through this edge.
    """
    from_state: str
    to_state: str
    action: str
    allowed_roles: frozenset[str]
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a record lifecycle.

    Contract: frozen; validated at construction.
    Guarantees: ``initial_state`` is a member of ``states``;
    ``terminal_states`` have no outgoing transitions; ``entry_effects``
    keys are members of ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()
    entry_effects: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state} -> "
                    f"{t.to_state} references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} "
                    "cannot have outgoing transitions"
                )
            if not t.allowed_roles:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state} -> "
                    f"{t.to_state} has no allowed roles"
                )
            key = (t.from_state, t.to_state)
            if key in seen:
                raise ValueError(
                    f"Workflow {self.name}: duplicate transition "
                    f"{t.from_state} -> {t.to_state}"
                )
            seen.add(key)
        for state in self.entry_effects:
            if state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: entry effects declared for "
                    f"undeclared state {state!r}"
                )

    def transitions_from(self, state: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.from_state == state)

    def find(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None
