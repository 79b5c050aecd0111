"""
Operator Controller - Event-driven scheduling of cluster reconcile passes.

Similar to Kubernetes controllers: change events and a periodic resync feed
a de-duplicating work queue, passes for different clusters run concurrently,
passes for the same cluster never overlap, and failed passes are retried
with exponential backoff.
"""

import asyncio
import logging
import random
import time
from typing import Dict, List, Optional, Set

from config import ControllerConfig
from events import CHANGE_EVENTS, ClusterEvent, EventBus, EventType
from kube.base import PlatformClient
from kube.builder import build_desired_state
from kube.observer import ClusterObserver
from reconciler import ClusterReconciler
from state import (
    CLUSTER_API_VERSION,
    CLUSTER_KIND,
    ClusterKey,
    DesiredClusterState,
    ObservedClusterState,
)

logger = logging.getLogger(__name__)

# Exponent cap for the backoff calculation
MAX_BACKOFF_EXPONENT = 10


class ReconcileScheduler:
    """
    Schedules reconcile passes per cluster key.

    Keys enter the queue from watch events, the periodic resync, manual
    triggers and backoff timers. A key is queued at most once at a time,
    and a per-key lock keeps passes for the same cluster serialized.
    """

    def __init__(
        self,
        client: PlatformClient,
        config: Optional[ControllerConfig] = None,
        event_bus: Optional[EventBus] = None,
        namespace: Optional[str] = None,
        observer: Optional[ClusterObserver] = None,
        reconciler: Optional[ClusterReconciler] = None,
    ):
        self.client = client
        self.config = config or ControllerConfig()
        self.namespace = namespace
        self.observer = observer or ClusterObserver(client)
        self.reconciler = reconciler or ClusterReconciler(client)
        self.semaphore = asyncio.Semaphore(self.config.max_concurrent_reconciles)
        self.running = False
        self._event_bus = event_bus

        self._queue: asyncio.Queue = asyncio.Queue()
        self._queued: Set[ClusterKey] = set()
        self._locks: Dict[ClusterKey, asyncio.Lock] = {}
        self._lock_users: Dict[ClusterKey, int] = {}
        self._retries: Dict[ClusterKey, int] = {}
        self._requeue_handles: Dict[ClusterKey, asyncio.TimerHandle] = {}

        self._loop_tasks: List[asyncio.Task] = []
        self._reconcile_tasks: Set[asyncio.Task] = set()
        self._subscriber_id: Optional[str] = None

    async def start(self):
        """Start the dispatch, resync and event loops."""
        logger.info("Starting reconcile scheduler")
        self.running = True

        self._loop_tasks = [
            asyncio.create_task(self._dispatch_loop()),
            asyncio.create_task(self._resync_loop()),
        ]
        if self._event_bus:
            self._subscriber_id, subscription = await self._event_bus.subscribe(
                lambda event: event.event_type in CHANGE_EVENTS
            )
            self._loop_tasks.append(asyncio.create_task(self._event_loop(subscription)))

        try:
            await asyncio.gather(*self._loop_tasks)
        except asyncio.CancelledError:
            if self.running:
                raise
            logger.info("Reconcile scheduler loops stopped")

    async def stop(self):
        """Stop scheduling and wait for in-flight passes to finish."""
        logger.info("Stopping reconcile scheduler")
        self.running = False

        for handle in self._requeue_handles.values():
            handle.cancel()
        self._requeue_handles.clear()

        if self._event_bus and self._subscriber_id:
            await self._event_bus.unsubscribe(self._subscriber_id)
            self._subscriber_id = None

        for task in self._loop_tasks:
            if not task.done():
                task.cancel()
        self._loop_tasks.clear()

        if self._reconcile_tasks:
            await asyncio.gather(*self._reconcile_tasks, return_exceptions=True)

    def enqueue(self, key: ClusterKey) -> bool:
        """
        Queue a cluster for reconciliation.

        Returns:
            False if the key was already waiting in the queue.
        """
        if key in self._queued:
            return False
        self._queued.add(key)
        self._queue.put_nowait(key)
        return True

    def trigger_reconciliation(self, key: ClusterKey) -> None:
        """Manually trigger reconciliation for a specific cluster."""
        logger.info(f"Manually triggering reconciliation for {key}")
        self.enqueue(key)

    def backoff_delay(self, retries: int) -> float:
        """
        Delay before the next attempt after ``retries`` earlier failures.

        Doubles from the base delay, capped at the max delay, with
        ±jitter_factor random jitter.
        """
        delay = min(
            self.config.backoff_base_delay
            * (2 ** min(retries, MAX_BACKOFF_EXPONENT)),
            self.config.backoff_max_delay,
        )
        jitter = random.uniform(
            -self.config.backoff_jitter_factor, self.config.backoff_jitter_factor
        )
        return delay * (1 + jitter)

    def retry_count(self, key: ClusterKey) -> int:
        return self._retries.get(key, 0)

    def _acquire_lock_ref(self, key: ClusterKey) -> asyncio.Lock:
        """Return the key's lock, registering the caller as a user."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        return lock

    def _release_lock_ref(self, key: ClusterKey) -> None:
        """Drop the key's lock once no pass holds or waits on it."""
        users = self._lock_users.get(key, 1) - 1
        if users > 0:
            self._lock_users[key] = users
            return
        self._lock_users.pop(key, None)
        self._locks.pop(key, None)

    async def _dispatch_loop(self):
        """Pull keys off the queue and start a pass for each."""
        while self.running:
            key = await self._queue.get()
            self._queued.discard(key)
            task = asyncio.create_task(self._reconcile_key(key))
            self._reconcile_tasks.add(task)
            task.add_done_callback(self._reconcile_tasks.discard)

    async def _resync_loop(self):
        """Periodically queue every cluster as a safety net for missed events."""
        while self.running:
            try:
                clusters = await self.client.list(
                    CLUSTER_API_VERSION, CLUSTER_KIND, self.namespace
                )
                for cluster in clusters:
                    self.enqueue(ClusterKey.from_resource(cluster))
                logger.info(f"Resync queued {len(clusters)} clusters")
            except Exception as e:
                logger.error(f"Error in resync loop: {e}", exc_info=True)

            await asyncio.sleep(self.config.resync_interval)

    async def _event_loop(self, subscription):
        """Queue clusters named by change events."""
        async for event in subscription:
            logger.debug(f"Cluster event: {event.event_type.value} {event.key}")
            self.enqueue(event.key)

    def _schedule_requeue(self, key: ClusterKey, delay: float) -> None:
        existing = self._requeue_handles.pop(key, None)
        if existing is not None:
            existing.cancel()
        loop = asyncio.get_running_loop()
        self._requeue_handles[key] = loop.call_later(delay, self._requeue, key)

    def _requeue(self, key: ClusterKey) -> None:
        self._requeue_handles.pop(key, None)
        if self.running:
            self.enqueue(key)

    async def _reconcile_key(self, key: ClusterKey) -> bool:
        """
        Run one pass for a key, handling retries.

        Returns:
            True if the pass succeeded.
        """
        lock = self._acquire_lock_ref(key)
        try:
            async with lock:
                async with self.semaphore:
                    return await self._run_pass(key)
        finally:
            self._release_lock_ref(key)

    async def _run_pass(self, key: ClusterKey) -> bool:
        start_time = time.monotonic()
        try:
            observed = await self.reconcile_cluster(key)
        except Exception as e:
            retries = self._retries.get(key, 0)
            self._retries[key] = retries + 1
            delay = self.backoff_delay(retries)
            logger.error(
                f"Failed to reconcile {key} "
                f"(attempt {retries + 1}, retrying in {delay:.1f}s): {e}",
                exc_info=True,
            )
            self._schedule_requeue(key, delay)
            return False

        self._retries.pop(key, None)
        duration = time.monotonic() - start_time
        logger.info(f"Successfully reconciled {key} in {duration:.2f}s")

        if self._event_bus and observed.cluster is not None:
            await self._event_bus.publish(
                ClusterEvent.from_resource(EventType.RECONCILED, observed.cluster)
            )
        return True

    async def reconcile_cluster(self, key: ClusterKey) -> ObservedClusterState:
        """
        Observe, build the desired state and reconcile one cluster.

        Returns:
            The observed state the pass ran against.

        Raises:
            KubernetesAPIError: If reading the observed state fails.
            InvalidClusterSpec: If the cluster spec is invalid.
            ReconcileError: If a create or update fails.
        """
        observed = await self.observer.observe(key)
        if observed.cluster is None:
            desired = DesiredClusterState()
        else:
            desired = build_desired_state(observed.cluster)

        await self.reconciler.reconcile(observed, desired)
        return observed
