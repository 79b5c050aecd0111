"""Pytest configuration and fixtures."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from state import DesiredClusterState, ObservedClusterState


@pytest.fixture
def sample_cluster():
    """Sample FlinkSessionCluster resource."""
    return {
        "apiVersion": "flinkoperator.k8s.io/v1alpha1",
        "kind": "FlinkSessionCluster",
        "metadata": {
            "name": "flinksessioncluster-sample",
            "namespace": "default",
            "uid": "1234-abcd",
            "resourceVersion": "100",
        },
        "spec": {
            "image": "flink:1.8.1",
            "jobManager": {"ports": {"ui": 8081}},
            "taskManager": {"replicas": 2},
            "job": {
                "jarFile": "./examples/streaming/WordCount.jar",
                "className": "org.apache.flink.streaming.examples.wordcount.WordCount",
                "args": ["--input", "./README.txt"],
                "parallelism": 2,
            },
        },
    }


def _manifest(api_version, kind, name):
    return {
        "apiVersion": api_version,
        "kind": kind,
        "metadata": {"name": name, "namespace": "default"},
    }


@pytest.fixture
def jm_deployment():
    return _manifest("apps/v1", "Deployment", "flinksessioncluster-sample-jobmanager")


@pytest.fixture
def jm_service():
    return _manifest("v1", "Service", "flinksessioncluster-sample-jobmanager")


@pytest.fixture
def tm_deployment():
    return _manifest("apps/v1", "Deployment", "flinksessioncluster-sample-taskmanager")


@pytest.fixture
def job():
    return _manifest("batch/v1", "Job", "flinksessioncluster-sample-job")


@pytest.fixture
def desired_state(jm_deployment, jm_service, tm_deployment, job):
    """Desired state with all four sub-resources declared."""
    return DesiredClusterState(
        control_plane=jm_deployment,
        endpoint=jm_service,
        worker_pool=tm_deployment,
        job=job,
    )


@pytest.fixture
def empty_observed_state(sample_cluster):
    """Observed state of an existing cluster with no sub-resources."""
    return ObservedClusterState(cluster=sample_cluster)


@pytest.fixture
def mock_client():
    """Create a mock platform client."""
    client = MagicMock()
    client.create = AsyncMock(side_effect=lambda resource: resource)
    client.update = AsyncMock(side_effect=lambda resource: resource)
    client.get = AsyncMock(return_value=None)
    client.list = AsyncMock(return_value=[])
    client.close = AsyncMock()
    return client
