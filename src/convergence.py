"""
Resource Convergence - Decide what to do with one managed sub-resource.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from state import Resource


class ActionType(Enum):
    """Outcome of comparing desired and observed state for one kind."""

    NO_ACTION = "no-action"
    CREATE = "create"
    UPDATE = "update"
    UNMANAGED = "unmanaged"


@dataclass(frozen=True)
class ReconcileAction:
    """A decided action, carrying the resource to apply for CREATE/UPDATE."""

    action_type: ActionType
    resource: Optional[Resource] = None

    @classmethod
    def no_action(cls) -> "ReconcileAction":
        return cls(ActionType.NO_ACTION)

    @classmethod
    def create(cls, resource: Resource) -> "ReconcileAction":
        return cls(ActionType.CREATE, resource)

    @classmethod
    def update(cls, resource: Resource) -> "ReconcileAction":
        return cls(ActionType.UPDATE, resource)

    @classmethod
    def unmanaged(cls) -> "ReconcileAction":
        return cls(ActionType.UNMANAGED)


def decide(
    desired: Optional[Resource], observed: Optional[Resource]
) -> ReconcileAction:
    """
    Decide the action for a single resource kind.

    Existing resources are never modified: when both sides are present the
    result is NO_ACTION. Resources that exist but are no longer desired are
    UNMANAGED and left to owner-reference garbage collection.

    Args:
        desired: The desired manifest, or None if not declared.
        observed: The live resource, or None if it does not exist.

    Returns:
        The ReconcileAction to execute.
    """
    if desired is None:
        if observed is None:
            return ReconcileAction.no_action()
        return ReconcileAction.unmanaged()

    if observed is None:
        return ReconcileAction.create(desired)

    # TODO: compare desired and observed specs and return update() on drift.
    return ReconcileAction.no_action()
