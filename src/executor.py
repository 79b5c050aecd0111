"""
Action Executor - Apply a decided action against the platform client.
"""

import logging

from convergence import ActionType, ReconcileAction
from kube.base import PlatformClient
from state import ClusterKey, ResourceKind, resource_identity

logger = logging.getLogger(__name__)


class ReconcileError(Exception):
    """A platform call failed while reconciling a sub-resource."""

    operation = "reconcile"

    def __init__(self, kind: ResourceKind, cause: Exception):
        self.kind = kind
        self.cause = cause
        super().__init__(f"Failed to {self.operation} {kind.value}: {cause}")


class CreateFailed(ReconcileError):
    """Creating a sub-resource failed."""

    operation = "create"


class UpdateFailed(ReconcileError):
    """Updating a sub-resource failed."""

    operation = "update"


class ActionExecutor:
    """
    Executes ReconcileActions for one cluster.

    Each CREATE or UPDATE results in exactly one platform call; failures are
    wrapped and raised without retrying.
    """

    def __init__(self, client: PlatformClient, cluster_key: ClusterKey):
        self.client = client
        self.cluster_key = cluster_key

    def _log(self, level: int, kind: ResourceKind, phase: str, message: str):
        logger.log(
            level,
            f"[{self.cluster_key}] [{kind.value}] {message}",
            extra={
                "cluster": str(self.cluster_key),
                "component": kind.value,
                "phase": phase,
            },
        )

    async def execute(self, action: ReconcileAction, kind: ResourceKind) -> None:
        """
        Execute an action for a resource kind.

        Args:
            action: The decided action.
            kind: The resource kind the action applies to.

        Raises:
            CreateFailed: If the create call fails.
            UpdateFailed: If the update call fails.
        """
        if action.action_type == ActionType.NO_ACTION:
            self._log(logging.INFO, kind, "no-action", "Nothing to do")
            return

        if action.action_type == ActionType.UNMANAGED:
            self._log(
                logging.INFO, kind, "unmanaged", "Not desired, leaving to owner GC"
            )
            return

        if action.action_type == ActionType.CREATE:
            await self._create(action, kind)
        elif action.action_type == ActionType.UPDATE:
            await self._update(action, kind)
        else:
            raise ValueError(f"Unknown action type: {action.action_type}")

    async def _create(self, action: ReconcileAction, kind: ResourceKind) -> None:
        identity = resource_identity(action.resource)
        self._log(logging.INFO, kind, "creating", f"Creating {identity}")
        try:
            await self.client.create(action.resource)
        except Exception as e:
            self._log(
                logging.ERROR, kind, "failed", f"Failed to create {identity}: {e}"
            )
            raise CreateFailed(kind, e) from e
        self._log(logging.INFO, kind, "created", f"Created {identity}")

    async def _update(self, action: ReconcileAction, kind: ResourceKind) -> None:
        identity = resource_identity(action.resource)
        self._log(logging.INFO, kind, "updating", f"Updating {identity}")
        try:
            await self.client.update(action.resource)
        except Exception as e:
            self._log(
                logging.ERROR, kind, "failed", f"Failed to update {identity}: {e}"
            )
            raise UpdateFailed(kind, e) from e
        self._log(logging.INFO, kind, "updated", f"Updated {identity}")
