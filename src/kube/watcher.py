"""
Cluster Watcher - Turn the FlinkSessionCluster watch stream into bus events.
"""

import asyncio
import logging
from typing import Optional

from events import ClusterEvent, EventBus, EventType
from kube.base import KubernetesAPIError, PlatformClient
from state import CLUSTER_API_VERSION, CLUSTER_KIND

logger = logging.getLogger(__name__)


class ClusterWatcher:
    """
    Watches FlinkSessionCluster resources and publishes change events.

    The watch is resumed from the last seen resourceVersion after the
    server closes it, and restarted from scratch when that version has
    expired (410 Gone).
    """

    def __init__(
        self,
        client: PlatformClient,
        event_bus: EventBus,
        namespace: Optional[str] = None,
        retry_delay: float = 5.0,
    ):
        self.client = client
        self.event_bus = event_bus
        self.namespace = namespace
        self.retry_delay = retry_delay
        self.resource_version: Optional[str] = None
        self.running = False

    async def start(self) -> None:
        """Watch until stopped."""
        logger.info(f"Starting cluster watcher (namespace={self.namespace or '*'})")
        self.running = True

        while self.running:
            try:
                await self.watch_once()
            except KubernetesAPIError as e:
                if e.is_gone:
                    logger.info("Watch resourceVersion expired, restarting watch")
                    self.resource_version = None
                    continue
                logger.error(f"Watch failed: {e}")
                await asyncio.sleep(self.retry_delay)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in cluster watcher: {e}", exc_info=True)
                await asyncio.sleep(self.retry_delay)

    async def stop(self) -> None:
        logger.info("Stopping cluster watcher")
        self.running = False

    async def watch_once(self) -> None:
        """Consume one watch stream until the server closes it."""
        async for raw_event in self.client.watch(
            CLUSTER_API_VERSION,
            CLUSTER_KIND,
            namespace=self.namespace,
            resource_version=self.resource_version,
        ):
            if not self.running:
                return
            await self.handle_event(raw_event)

    async def handle_event(self, raw_event: dict) -> None:
        """Record the resourceVersion and publish a ClusterEvent."""
        resource = raw_event.get("object", {})
        version = resource.get("metadata", {}).get("resourceVersion")
        if version:
            self.resource_version = version

        event_type = raw_event.get("type")
        if event_type == "BOOKMARK":
            return

        try:
            bus_event_type = EventType(event_type)
        except ValueError:
            logger.warning(f"Ignoring unknown watch event type: {event_type}")
            return

        event = ClusterEvent.from_resource(bus_event_type, resource)
        logger.debug(f"Cluster {event.key} {event_type}")
        await self.event_bus.publish(event)
