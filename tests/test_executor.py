"""Unit tests for executor.py - Applying actions against the platform."""

import logging

import pytest
from unittest.mock import AsyncMock

from convergence import ReconcileAction
from executor import ActionExecutor, CreateFailed, ReconcileError, UpdateFailed
from kube.base import KubernetesAPIError
from state import ClusterKey, ResourceKind

CLUSTER_KEY = ClusterKey("default", "flinksessioncluster-sample")


class TestReconcileError:
    """Tests for the error taxonomy."""

    def test_create_failed_attributes(self):
        cause = KubernetesAPIError(409, "AlreadyExists", "exists")
        error = CreateFailed(ResourceKind.ENDPOINT, cause)
        assert isinstance(error, ReconcileError)
        assert error.kind == ResourceKind.ENDPOINT
        assert error.cause is cause
        assert "create endpoint" in str(error)

    def test_update_failed_message(self):
        error = UpdateFailed(ResourceKind.JOB, RuntimeError("boom"))
        assert str(error) == "Failed to update job: boom"


@pytest.mark.asyncio
class TestActionExecutor:
    """Tests for ActionExecutor.execute."""

    @pytest.fixture
    def executor(self, mock_client):
        return ActionExecutor(mock_client, CLUSTER_KEY)

    async def test_no_action_makes_no_calls(self, executor, mock_client, caplog):
        with caplog.at_level(logging.INFO, logger="executor"):
            await executor.execute(
                ReconcileAction.no_action(), ResourceKind.CONTROL_PLANE
            )

        mock_client.create.assert_not_called()
        mock_client.update.assert_not_called()
        record = caplog.records[-1]
        assert record.component == "control-plane"
        assert record.phase == "no-action"
        assert "Nothing to do" in record.getMessage()
        assert "exists" not in record.getMessage()

    async def test_unmanaged_makes_no_calls(self, executor, mock_client, caplog):
        with caplog.at_level(logging.INFO, logger="executor"):
            await executor.execute(ReconcileAction.unmanaged(), ResourceKind.JOB)

        mock_client.create.assert_not_called()
        mock_client.update.assert_not_called()
        assert caplog.records[-1].phase == "unmanaged"

    async def test_create_calls_client_once(
        self, executor, mock_client, jm_deployment, caplog
    ):
        with caplog.at_level(logging.INFO, logger="executor"):
            await executor.execute(
                ReconcileAction.create(jm_deployment), ResourceKind.CONTROL_PLANE
            )

        mock_client.create.assert_awaited_once_with(jm_deployment)
        mock_client.update.assert_not_called()
        phases = [r.phase for r in caplog.records]
        assert phases == ["creating", "created"]
        assert "default/flinksessioncluster-sample-jobmanager" in caplog.text

    async def test_create_failure_wraps_error(
        self, executor, mock_client, jm_service, caplog
    ):
        cause = KubernetesAPIError(403, "Forbidden", "services is forbidden")
        mock_client.create = AsyncMock(side_effect=cause)

        with caplog.at_level(logging.INFO, logger="executor"):
            with pytest.raises(CreateFailed) as exc_info:
                await executor.execute(
                    ReconcileAction.create(jm_service), ResourceKind.ENDPOINT
                )

        assert exc_info.value.kind == ResourceKind.ENDPOINT
        assert exc_info.value.cause is cause
        assert exc_info.value.__cause__ is cause
        mock_client.create.assert_awaited_once()
        failed = [r for r in caplog.records if r.phase == "failed"]
        assert len(failed) == 1
        assert failed[0].levelno == logging.ERROR
        assert failed[0].component == "endpoint"

    async def test_update_calls_client(self, executor, mock_client, tm_deployment):
        await executor.execute(
            ReconcileAction.update(tm_deployment), ResourceKind.WORKER_POOL
        )

        mock_client.update.assert_awaited_once_with(tm_deployment)
        mock_client.create.assert_not_called()

    async def test_update_failure_wraps_error(self, executor, mock_client, job):
        cause = KubernetesAPIError(409, "Conflict", "object has been modified")
        mock_client.update = AsyncMock(side_effect=cause)

        with pytest.raises(UpdateFailed) as exc_info:
            await executor.execute(ReconcileAction.update(job), ResourceKind.JOB)

        assert exc_info.value.kind == ResourceKind.JOB
        assert exc_info.value.cause is cause

    async def test_create_does_not_retry(self, executor, mock_client, job):
        mock_client.create = AsyncMock(side_effect=RuntimeError("timeout"))

        with pytest.raises(CreateFailed):
            await executor.execute(ReconcileAction.create(job), ResourceKind.JOB)

        assert mock_client.create.await_count == 1
