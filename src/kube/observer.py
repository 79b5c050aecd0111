"""
Observed State Provider - Read the live state of a cluster and its children.
"""

import logging

from kube.base import PlatformClient
from kube.builder import job_name, jobmanager_name, taskmanager_name
from state import CLUSTER_API_VERSION, CLUSTER_KIND, ClusterKey, ObservedClusterState

logger = logging.getLogger(__name__)


class ClusterObserver:
    """Reads a FlinkSessionCluster and its managed sub-resources."""

    def __init__(self, client: PlatformClient):
        self.client = client

    async def observe(self, key: ClusterKey) -> ObservedClusterState:
        """
        Read the observed state for a cluster.

        If the cluster resource itself is gone, the children are not read
        and the returned state has ``cluster`` set to None.

        Raises:
            KubernetesAPIError: For any read error other than not found.
        """
        observed = ObservedClusterState()

        observed.cluster = await self.client.get(
            CLUSTER_API_VERSION, CLUSTER_KIND, key.namespace, key.name
        )
        if observed.cluster is None:
            logger.info(f"Cluster {key} not found")
            return observed

        observed.control_plane = await self.client.get(
            "apps/v1", "Deployment", key.namespace, jobmanager_name(key.name)
        )
        observed.endpoint = await self.client.get(
            "v1", "Service", key.namespace, jobmanager_name(key.name)
        )
        observed.worker_pool = await self.client.get(
            "apps/v1", "Deployment", key.namespace, taskmanager_name(key.name)
        )
        observed.job = await self.client.get(
            "batch/v1", "Job", key.namespace, job_name(key.name)
        )

        logger.debug(
            f"Observed {key}: "
            f"control-plane={observed.control_plane is not None}, "
            f"endpoint={observed.endpoint is not None}, "
            f"worker-pool={observed.worker_pool is not None}, "
            f"job={observed.job is not None}"
        )
        return observed
