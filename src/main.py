"""
Main entry point for the Flink Session Cluster Operator.

Wires the Kubernetes client, the cluster watcher and the reconcile
scheduler together and runs them until a shutdown signal arrives.
"""

import asyncio
import logging
import signal
from typing import List, Optional

from config import Config, get_config
from controller import ReconcileScheduler
from events import EventBus
from kube.client import KubernetesClient
from kube.watcher import ClusterWatcher

logger = logging.getLogger(__name__)


def configure_logging(config: Config) -> None:
    logging.basicConfig(level=config.logging.level, format=config.logging.format)


class Application:
    """Main application that orchestrates the scheduler and the watcher."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self.client: Optional[KubernetesClient] = None
        self.event_bus: Optional[EventBus] = None
        self.scheduler: Optional[ReconcileScheduler] = None
        self.watcher: Optional[ClusterWatcher] = None
        self.running = False
        self._tasks: List[asyncio.Task] = []

    async def initialize(self):
        """Initialize all components."""
        logger.info("Initializing Flink Session Cluster Operator")

        self.client = await KubernetesClient.from_config(self.config.kubernetes)
        self.event_bus = EventBus()
        namespace = self.config.kubernetes.namespace

        self.scheduler = ReconcileScheduler(
            client=self.client,
            config=self.config.controller,
            event_bus=self.event_bus,
            namespace=namespace,
        )

        if self.config.controller.watch_enabled:
            self.watcher = ClusterWatcher(
                client=self.client,
                event_bus=self.event_bus,
                namespace=namespace,
            )
        else:
            logger.info("Watch disabled, relying on periodic resync")

        logger.info(
            f"All components initialized (host={self.client.host}, "
            f"namespace={namespace})"
        )

    async def start(self):
        """Start the application."""
        if self.scheduler is None:
            await self.initialize()

        self.running = True
        logger.info("Starting Flink Session Cluster Operator")

        self._tasks = [asyncio.create_task(self.scheduler.start())]
        if self.watcher:
            self._tasks.append(asyncio.create_task(self.watcher.start()))

        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            logger.info("Application tasks cancelled")

    async def stop(self):
        """Stop the application gracefully."""
        if not self.running:
            return
        logger.info("Stopping Flink Session Cluster Operator")
        self.running = False

        if self.watcher:
            await self.watcher.stop()

        if self.scheduler:
            await self.scheduler.stop()

        # The watcher may be blocked on an open watch stream
        for task in self._tasks:
            if not task.done():
                task.cancel()
        self._tasks.clear()

        if self.client:
            await self.client.close()

        logger.info("Flink Session Cluster Operator stopped")


async def main():
    """Main entry point."""
    config = get_config()
    configure_logging(config)
    app = Application(config)

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        await app.stop()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
