"""
Table-driven state machines.

Each workflow declares a static map of ``(current_state, action)`` to a
``Transition``. Anything not in the map is rejected with
``InvalidStateError``; a transition whose roles do not include the actor's
role is rejected with ``PermissionDeniedError``; the optional guard raises
``PreconditionFailedError`` (or a subclass) when it is not satisfied.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from fieldtrack.core.errors import InvalidStateError, PermissionDeniedError
from fieldtrack.workflow.states import Role

Guard = Callable[[dict], None]


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation. Checked against stored references."""

    user_id: str
    role: Role

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id="system", role=Role.SYSTEM)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass(frozen=True)
class Transition:
    target: Enum
    roles: frozenset
    guard: Optional[Guard] = None
    description: str = ""


@dataclass
class StateMachine:
    name: str
    states: type
    table: dict = field(default_factory=dict)

    def _coerce(self, current: Any) -> Enum:
        try:
            return self.states(current)
        except ValueError:
            raise InvalidStateError(f"Unknown {self.name} status '{current}'")

    def resolve(self, current: Any, action: Enum, role: Role, context: Optional[dict] = None) -> Transition:
        state = self._coerce(current)
        transition = self.table.get((state, action))
        if transition is None:
            raise InvalidStateError(
                f"Cannot {action.value} a {self.name} in status {state.value}"
            )
        if role not in transition.roles:
            raise PermissionDeniedError(
                f"Role '{role.value}' may not {action.value} a {self.name}"
            )
        if transition.guard is not None:
            transition.guard(context or {})
        return transition

    def actions_from(self, current: Any, role: Optional[Role] = None) -> list:
        state = self._coerce(current)
        return [
            action
            for (source, action), t in self.table.items()
            if source == state and (role is None or role in t.roles)
        ]
