"""Unit tests for kube/watcher.py - Cluster watch stream handling."""

import asyncio

import pytest
from unittest.mock import MagicMock

from events import EventBus, EventType
from kube.base import KubernetesAPIError
from kube.watcher import ClusterWatcher
from state import ClusterKey


@pytest.mark.asyncio
class TestClusterWatcher:
    """Tests for ClusterWatcher."""

    @pytest.fixture
    def bus(self):
        return EventBus()

    @pytest.fixture
    def watcher(self, mock_client, bus):
        return ClusterWatcher(mock_client, bus, namespace="default", retry_delay=0)

    async def test_handle_event_publishes(self, watcher, bus, sample_cluster):
        _, sub = await bus.subscribe()

        await watcher.handle_event({"type": "MODIFIED", "object": sample_cluster})

        event = await asyncio.wait_for(sub.__anext__(), timeout=1.0)
        assert event.event_type == EventType.MODIFIED
        assert event.key == ClusterKey("default", "flinksessioncluster-sample")
        assert watcher.resource_version == "100"

    async def test_bookmark_only_updates_version(self, watcher, bus):
        _, sub = await bus.subscribe()

        await watcher.handle_event(
            {"type": "BOOKMARK", "object": {"metadata": {"resourceVersion": "250"}}}
        )

        assert watcher.resource_version == "250"
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(sub.__anext__(), timeout=0.05)

    async def test_unknown_type_ignored(self, watcher, bus, sample_cluster):
        _, sub = await bus.subscribe()

        await watcher.handle_event({"type": "SOMETHING", "object": sample_cluster})

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(sub.__anext__(), timeout=0.05)

    async def test_gone_resets_resource_version(
        self, watcher, mock_client, sample_cluster
    ):
        calls = []

        async def watch(api_version, kind, namespace=None, resource_version=None):
            calls.append(resource_version)
            if len(calls) == 1:
                raise KubernetesAPIError(410, "Expired", "too old resource version")
            watcher.running = False
            yield {"type": "ADDED", "object": sample_cluster}

        mock_client.watch = MagicMock(side_effect=watch)
        watcher.resource_version = "5"

        await asyncio.wait_for(watcher.start(), timeout=1.0)

        assert calls == ["5", None]

    async def test_resumes_from_last_version(self, watcher, mock_client, sample_cluster):
        calls = []

        async def watch(api_version, kind, namespace=None, resource_version=None):
            calls.append(resource_version)
            if len(calls) == 2:
                watcher.running = False
                return
            yield {"type": "ADDED", "object": sample_cluster}

        mock_client.watch = MagicMock(side_effect=watch)

        await asyncio.wait_for(watcher.start(), timeout=1.0)

        assert calls == [None, "100"]

    async def test_other_errors_retry(self, watcher, mock_client):
        calls = []

        async def watch(api_version, kind, namespace=None, resource_version=None):
            calls.append(resource_version)
            if len(calls) == 1:
                raise RuntimeError("connection reset")
            watcher.running = False
            return
            yield

        mock_client.watch = MagicMock(side_effect=watch)

        await asyncio.wait_for(watcher.start(), timeout=1.0)

        assert len(calls) == 2

    async def test_stop(self, watcher):
        watcher.running = True
        await watcher.stop()
        assert watcher.running is False
