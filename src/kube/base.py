"""
Platform Client Base - Abstract interface for the managing platform.

The reconciler only ever creates and updates resources; reads, lists and
watches are used by the observer, the scheduler and the watcher.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

from state import Resource


class KubernetesAPIError(Exception):
    """Error response returned by the Kubernetes API server."""

    def __init__(self, status: int, reason: str = "", message: str = ""):
        self.status = status
        self.reason = reason
        self.message = message
        super().__init__(f"{status} {reason}: {message}".strip())

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    @property
    def is_conflict(self) -> bool:
        return self.status == 409

    @property
    def is_gone(self) -> bool:
        return self.status == 410


class PlatformClient(ABC):
    """Abstract base class for platform API clients."""

    @abstractmethod
    async def create(self, resource: Resource) -> Resource:
        """
        Create a resource.

        The target collection is derived from the manifest's apiVersion,
        kind and metadata.namespace.

        Args:
            resource: The manifest to create.

        Returns:
            The created object as returned by the server.

        Raises:
            KubernetesAPIError: If the server rejects the request.
        """
        pass

    @abstractmethod
    async def update(self, resource: Resource) -> Resource:
        """
        Replace an existing resource.

        Args:
            resource: The full manifest, including metadata.resourceVersion.

        Returns:
            The updated object as returned by the server.

        Raises:
            KubernetesAPIError: If the server rejects the request.
        """
        pass

    @abstractmethod
    async def get(
        self, api_version: str, kind: str, namespace: str, name: str
    ) -> Optional[Resource]:
        """
        Read a single resource.

        Returns:
            The resource, or None if it does not exist.

        Raises:
            KubernetesAPIError: For any error other than not found.
        """
        pass

    @abstractmethod
    async def list(
        self, api_version: str, kind: str, namespace: Optional[str] = None
    ) -> List[Resource]:
        """List resources of a kind, in one namespace or cluster-wide."""
        pass

    @abstractmethod
    def watch(
        self,
        api_version: str,
        kind: str,
        namespace: Optional[str] = None,
        resource_version: Optional[str] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Stream watch events of a kind.

        Yields:
            Raw watch events: ``{"type": ..., "object": {...}}``.
        """
        pass
