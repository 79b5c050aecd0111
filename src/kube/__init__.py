"""
Kubernetes integration for the operator.

Provides the platform client, the observed-state reader, the desired-state
builder and the cluster watcher.
"""

from kube.base import KubernetesAPIError, PlatformClient
from kube.client import KubernetesClient

__all__ = ["KubernetesAPIError", "PlatformClient", "KubernetesClient"]
