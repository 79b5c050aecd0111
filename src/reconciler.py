"""
Cluster Reconciler - Converge a cluster's observed state towards its desired state.

A pass walks the managed resource kinds in dependency order: the JobManager
must exist before its service, TaskManagers register against the service,
and the job is only submitted once the rest of the cluster is in place.

Callers must not run two passes for the same cluster concurrently; the
scheduler in controller.py serializes passes per cluster key.
"""

import logging
from dataclasses import dataclass
from operator import attrgetter
from typing import Callable, Optional, Tuple, Union

from convergence import decide
from executor import ActionExecutor
from kube.base import PlatformClient
from state import (
    ClusterKey,
    DesiredClusterState,
    ObservedClusterState,
    Resource,
    ResourceKind,
)

logger = logging.getLogger(__name__)

State = Union[DesiredClusterState, ObservedClusterState]


@dataclass(frozen=True)
class ManagedResource:
    """A managed kind and how to read it from either state object."""

    kind: ResourceKind
    accessor: Callable[[State], Optional[Resource]]


# Fixed reconcile order
MANAGED_RESOURCES: Tuple[ManagedResource, ...] = (
    ManagedResource(ResourceKind.CONTROL_PLANE, attrgetter("control_plane")),
    ManagedResource(ResourceKind.ENDPOINT, attrgetter("endpoint")),
    ManagedResource(ResourceKind.WORKER_POOL, attrgetter("worker_pool")),
    ManagedResource(ResourceKind.JOB, attrgetter("job")),
)


class ClusterReconciler:
    """Runs reconcile passes against a platform client."""

    def __init__(self, client: PlatformClient):
        self.client = client

    async def reconcile(
        self, observed: ObservedClusterState, desired: DesiredClusterState
    ) -> None:
        """
        Compare desired and observed state and act on the differences.

        Stops at the first failure; sub-resources created earlier in the pass
        are kept, and the next pass sees them as already existing.

        Args:
            observed: Live state read for this pass.
            desired: Desired state built for this pass.

        Raises:
            ReconcileError: The first create or update that failed.
        """
        # Child resources are reclaimed by owner-reference garbage collection.
        if observed.cluster is None:
            logger.info("The cluster has been deleted, no action to take")
            return

        cluster_key = ClusterKey.from_resource(observed.cluster)
        executor = ActionExecutor(self.client, cluster_key)

        for managed in MANAGED_RESOURCES:
            action = decide(managed.accessor(desired), managed.accessor(observed))
            await executor.execute(action, managed.kind)

        logger.debug(f"Reconcile pass for {cluster_key} finished")
