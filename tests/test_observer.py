"""Unit tests for kube/observer.py - Observed state reads."""

import pytest
from unittest.mock import AsyncMock

from kube.base import KubernetesAPIError
from kube.observer import ClusterObserver
from state import ClusterKey

KEY = ClusterKey("default", "flinksessioncluster-sample")


@pytest.mark.asyncio
class TestClusterObserver:
    """Tests for ClusterObserver.observe."""

    async def test_cluster_missing(self, mock_client):
        observed = await ClusterObserver(mock_client).observe(KEY)

        assert observed.cluster is None
        assert observed.control_plane is None
        # Children are not read once the cluster is known to be gone
        mock_client.get.assert_awaited_once_with(
            "flinkoperator.k8s.io/v1alpha1",
            "FlinkSessionCluster",
            "default",
            "flinksessioncluster-sample",
        )

    async def test_reads_all_children(self, mock_client, sample_cluster, jm_deployment):
        async def get(api_version, kind, namespace, name):
            if kind == "FlinkSessionCluster":
                return sample_cluster
            if kind == "Deployment" and name.endswith("-jobmanager"):
                return jm_deployment
            return None

        mock_client.get = AsyncMock(side_effect=get)

        observed = await ClusterObserver(mock_client).observe(KEY)

        assert observed.cluster is sample_cluster
        assert observed.control_plane is jm_deployment
        assert observed.endpoint is None
        assert observed.worker_pool is None
        assert observed.job is None
        requested = [call.args for call in mock_client.get.await_args_list]
        assert requested[1:] == [
            ("apps/v1", "Deployment", "default", "flinksessioncluster-sample-jobmanager"),
            ("v1", "Service", "default", "flinksessioncluster-sample-jobmanager"),
            ("apps/v1", "Deployment", "default", "flinksessioncluster-sample-taskmanager"),
            ("batch/v1", "Job", "default", "flinksessioncluster-sample-job"),
        ]

    async def test_read_error_propagates(self, mock_client, sample_cluster):
        mock_client.get = AsyncMock(
            side_effect=[sample_cluster, KubernetesAPIError(403, "Forbidden", "")]
        )

        with pytest.raises(KubernetesAPIError):
            await ClusterObserver(mock_client).observe(KEY)
