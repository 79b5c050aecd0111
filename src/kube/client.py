"""
Kubernetes Client - PlatformClient implementation on kubernetes_asyncio.

Child resources go through the typed Apps, Core and Batch APIs and the
FlinkSessionCluster custom resource through CustomObjectsApi. Everything
crossing the PlatformClient seam is a plain manifest dict.
"""

import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from kubernetes_asyncio import client, watch
from kubernetes_asyncio import config as kube_config
from kubernetes_asyncio.client.exceptions import ApiException

from config import KubernetesConfig
from kube.base import KubernetesAPIError, PlatformClient
from state import (
    CLUSTER_API_GROUP,
    CLUSTER_API_VERSION,
    CLUSTER_KIND,
    CLUSTER_PLURAL,
    Resource,
)

logger = logging.getLogger(__name__)

CLUSTER_VERSION = CLUSTER_API_VERSION.split("/", 1)[1]

# (apiVersion, kind) -> (typed API attribute, method suffix)
TYPED_RESOURCES: Dict[Tuple[str, str], Tuple[str, str]] = {
    ("apps/v1", "Deployment"): ("apps_v1", "deployment"),
    ("v1", "Service"): ("core_v1", "service"),
    ("batch/v1", "Job"): ("batch_v1", "job"),
}


def api_error(e: ApiException) -> KubernetesAPIError:
    """Convert an ApiException into a KubernetesAPIError."""
    message = ""
    if e.body:
        try:
            message = json.loads(e.body).get("message", "")
        except (ValueError, AttributeError):
            message = str(e.body)
    return KubernetesAPIError(e.status or 500, e.reason or "", message)


class KubernetesClient(PlatformClient):
    """
    Async Kubernetes API client for the kinds the operator manages.

    Owns a kubernetes_asyncio ApiClient; call ``close()`` when done.
    """

    def __init__(
        self,
        api_client: client.ApiClient,
        request_timeout: int = 30,
        watch_timeout: int = 300,
    ):
        self.api_client = api_client
        self.request_timeout = request_timeout
        self.watch_timeout = watch_timeout
        self.apps_v1 = client.AppsV1Api(api_client)
        self.core_v1 = client.CoreV1Api(api_client)
        self.batch_v1 = client.BatchV1Api(api_client)
        self.custom_objects = client.CustomObjectsApi(api_client)

    @classmethod
    async def from_config(cls, config: KubernetesConfig) -> "KubernetesClient":
        """
        Load credentials and build a client.

        The in-cluster service account is tried first, then the kubeconfig
        file (``config.kubeconfig`` or the default location).

        Raises:
            ConfigException: If neither source is usable.
        """
        configuration = client.Configuration()
        try:
            kube_config.load_incluster_config(client_configuration=configuration)
            logger.info("Loaded in-cluster Kubernetes configuration")
        except kube_config.ConfigException:
            await kube_config.load_kube_config(
                config_file=config.kubeconfig,
                context=config.context,
                client_configuration=configuration,
            )
            logger.info("Loaded Kubernetes configuration from kubeconfig")

        return cls(
            client.ApiClient(configuration),
            request_timeout=config.request_timeout,
            watch_timeout=config.watch_timeout,
        )

    async def close(self) -> None:
        await self.api_client.close()

    @property
    def host(self) -> str:
        return self.api_client.configuration.host

    def _typed(self, api_version: str, kind: str) -> Tuple[Any, str]:
        """
        Return the typed API object and method suffix for a kind.

        Raises:
            ValueError: If the kind is not one the operator manages.
        """
        entry = TYPED_RESOURCES.get((api_version, kind))
        if entry is None:
            raise ValueError(f"Unsupported resource type: {api_version}/{kind}")
        attribute, suffix = entry
        return getattr(self, attribute), suffix

    @staticmethod
    def _is_cluster(api_version: str, kind: str) -> bool:
        return api_version == CLUSTER_API_VERSION and kind == CLUSTER_KIND

    def _to_dict(self, obj: Any) -> Resource:
        return self.api_client.sanitize_for_serialization(obj)

    async def create(self, resource: Resource) -> Resource:
        api_version, kind = resource["apiVersion"], resource["kind"]
        namespace = resource.get("metadata", {}).get("namespace", "default")
        logger.debug(f"Creating {kind} in {namespace}")
        try:
            if self._is_cluster(api_version, kind):
                return await self.custom_objects.create_namespaced_custom_object(
                    CLUSTER_API_GROUP,
                    CLUSTER_VERSION,
                    namespace,
                    CLUSTER_PLURAL,
                    resource,
                    _request_timeout=self.request_timeout,
                )
            api, suffix = self._typed(api_version, kind)
            created = await getattr(api, f"create_namespaced_{suffix}")(
                namespace, resource, _request_timeout=self.request_timeout
            )
        except ApiException as e:
            raise api_error(e) from e
        return self._to_dict(created)

    async def update(self, resource: Resource) -> Resource:
        api_version, kind = resource["apiVersion"], resource["kind"]
        metadata = resource.get("metadata", {})
        namespace = metadata.get("namespace", "default")
        name = metadata["name"]
        logger.debug(f"Replacing {kind} {namespace}/{name}")
        try:
            if self._is_cluster(api_version, kind):
                return await self.custom_objects.replace_namespaced_custom_object(
                    CLUSTER_API_GROUP,
                    CLUSTER_VERSION,
                    namespace,
                    CLUSTER_PLURAL,
                    name,
                    resource,
                    _request_timeout=self.request_timeout,
                )
            api, suffix = self._typed(api_version, kind)
            replaced = await getattr(api, f"replace_namespaced_{suffix}")(
                name, namespace, resource, _request_timeout=self.request_timeout
            )
        except ApiException as e:
            raise api_error(e) from e
        return self._to_dict(replaced)

    async def get(
        self, api_version: str, kind: str, namespace: str, name: str
    ) -> Optional[Resource]:
        try:
            if self._is_cluster(api_version, kind):
                return await self.custom_objects.get_namespaced_custom_object(
                    CLUSTER_API_GROUP,
                    CLUSTER_VERSION,
                    namespace,
                    CLUSTER_PLURAL,
                    name,
                    _request_timeout=self.request_timeout,
                )
            api, suffix = self._typed(api_version, kind)
            found = await getattr(api, f"read_namespaced_{suffix}")(
                name, namespace, _request_timeout=self.request_timeout
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise api_error(e) from e
        return self._to_dict(found)

    def _list_call(
        self, api_version: str, kind: str, namespace: Optional[str]
    ) -> Tuple[Callable, tuple]:
        """The list function and positional args for a kind and scope."""
        if self._is_cluster(api_version, kind):
            if namespace:
                return self.custom_objects.list_namespaced_custom_object, (
                    CLUSTER_API_GROUP,
                    CLUSTER_VERSION,
                    namespace,
                    CLUSTER_PLURAL,
                )
            return self.custom_objects.list_cluster_custom_object, (
                CLUSTER_API_GROUP,
                CLUSTER_VERSION,
                CLUSTER_PLURAL,
            )

        api, suffix = self._typed(api_version, kind)
        if namespace:
            return getattr(api, f"list_namespaced_{suffix}"), (namespace,)
        return getattr(api, f"list_{suffix}_for_all_namespaces"), ()

    async def list(
        self, api_version: str, kind: str, namespace: Optional[str] = None
    ) -> List[Resource]:
        func, args = self._list_call(api_version, kind, namespace)
        try:
            result = await func(*args, _request_timeout=self.request_timeout)
        except ApiException as e:
            raise api_error(e) from e

        items = self._to_dict(result).get("items", [])
        # List responses omit apiVersion/kind on items
        for item in items:
            item.setdefault("apiVersion", api_version)
            item.setdefault("kind", kind)
        return items

    async def watch(
        self,
        api_version: str,
        kind: str,
        namespace: Optional[str] = None,
        resource_version: Optional[str] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Stream raw watch events until the server ends the watch.

        The server closes the stream after ``watch_timeout`` seconds and the
        client gives up reading shortly after that.
        """
        func, args = self._list_call(api_version, kind, namespace)
        kwargs: Dict[str, Any] = {
            "allow_watch_bookmarks": True,
            "timeout_seconds": self.watch_timeout,
            "_request_timeout": self.watch_timeout + self.request_timeout,
        }
        if resource_version:
            kwargs["resource_version"] = resource_version

        try:
            async with watch.Watch().stream(func, *args, **kwargs) as stream:
                async for event in stream:
                    raw = event.get("raw_object", event.get("object"))
                    if event["type"] == "ERROR":
                        raise KubernetesAPIError(
                            raw.get("code", 500),
                            raw.get("reason", ""),
                            raw.get("message", ""),
                        )
                    yield {"type": event["type"], "object": raw}
        except ApiException as e:
            raise api_error(e) from e
