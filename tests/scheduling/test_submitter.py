"""Tests for the in-process WorkflowRegistry submitter."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from cronspine.core.errors import NotFoundError, ValidationError
from cronspine.core.models.scheduler import WorkflowType
from cronspine.core.scheduling.protocol import WorkflowSubmitter
from cronspine.core.scheduling.submitter import WorkflowRegistry


class TestWorkflowRegistry:
    def test_satisfies_protocol(self):
        assert isinstance(WorkflowRegistry(), WorkflowSubmitter)

    def test_submit_calls_executor_with_job_id(self):
        registry = WorkflowRegistry()
        executor = MagicMock()
        registry.register(WorkflowType.SCREENSHOT, executor)

        with capture_logs() as logs:
            job_id = registry.submit(WorkflowType.SCREENSHOT)

        executor.assert_called_once_with(job_id)
        assert len(job_id) == 32
        assert logs[-1]["event"] == "workflow_submitted"
        assert logs[-1]["job_id"] == job_id

    def test_job_ids_are_unique(self):
        registry = WorkflowRegistry()
        registry.register("report", MagicMock())
        assert registry.submit(WorkflowType.REPORT) != registry.submit(WorkflowType.REPORT)

    def test_register_accepts_strings(self):
        registry = WorkflowRegistry()
        registry.register("Screenshot", MagicMock())
        assert registry.registered() == [WorkflowType.SCREENSHOT]

    def test_duplicate_register_rejected(self):
        registry = WorkflowRegistry()
        registry.register(WorkflowType.REPORT, MagicMock())
        with pytest.raises(ValidationError):
            registry.register(WorkflowType.REPORT, MagicMock())

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            WorkflowRegistry().register("fax", MagicMock())

    def test_submit_unregistered_raises_not_found(self):
        registry = WorkflowRegistry()
        registry.register(WorkflowType.SCREENSHOT, MagicMock())

        with pytest.raises(NotFoundError) as exc_info:
            registry.submit(WorkflowType.REPORT)
        assert exc_info.value.context.workflow_type == "report"

    def test_executor_error_propagates(self):
        registry = WorkflowRegistry()
        registry.register(WorkflowType.SCREENSHOT, MagicMock(side_effect=RuntimeError("down")))
        with pytest.raises(RuntimeError):
            registry.submit(WorkflowType.SCREENSHOT)

    def test_registered_sorted(self):
        registry = WorkflowRegistry()
        registry.register(WorkflowType.SCREENSHOT, MagicMock())
        registry.register(WorkflowType.REPORT, MagicMock())
        assert registry.registered() == [WorkflowType.REPORT, WorkflowType.SCREENSHOT]
