"""
Cluster State - Desired and observed state of a Flink session cluster.

Both state objects have one field per managed sub-resource kind. They are
built fresh for every reconcile pass and discarded afterwards.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional

# Kubernetes manifests are handled as plain dicts
Resource = Dict[str, Any]

CLUSTER_API_GROUP = "flinkoperator.k8s.io"
CLUSTER_API_VERSION = f"{CLUSTER_API_GROUP}/v1alpha1"
CLUSTER_KIND = "FlinkSessionCluster"
CLUSTER_PLURAL = "flinksessionclusters"


class ResourceKind(Enum):
    """Managed sub-resource kinds of a cluster."""

    CONTROL_PLANE = "control-plane"
    ENDPOINT = "endpoint"
    WORKER_POOL = "worker-pool"
    JOB = "job"


class ClusterKey(NamedTuple):
    """Identity of a FlinkSessionCluster resource."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_resource(cls, resource: Resource) -> "ClusterKey":
        metadata = resource.get("metadata") or {}
        return cls(
            metadata.get("namespace") or "default",
            metadata.get("name") or "<unnamed>",
        )


@dataclass
class DesiredClusterState:
    """Desired sub-resources derived from the cluster spec."""

    control_plane: Optional[Resource] = None
    endpoint: Optional[Resource] = None
    worker_pool: Optional[Resource] = None
    job: Optional[Resource] = None


@dataclass
class ObservedClusterState:
    """
    Live sub-resources read from the platform.

    ``cluster`` is None when the FlinkSessionCluster itself has been deleted,
    which is distinct from any individual sub-resource being absent.
    """

    cluster: Optional[Resource] = None
    control_plane: Optional[Resource] = None
    endpoint: Optional[Resource] = None
    worker_pool: Optional[Resource] = None
    job: Optional[Resource] = None


def resource_identity(resource: Resource) -> str:
    """Return ``namespace/name`` for a manifest."""
    metadata = resource.get("metadata", {})
    return f"{metadata.get('namespace', 'default')}/{metadata.get('name', '<unnamed>')}"
