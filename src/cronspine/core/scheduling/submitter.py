"""Registry-backed workflow submitter.

``WorkflowRegistry`` maps each ``WorkflowType`` to an executor callable and
implements the ``WorkflowSubmitter`` protocol. Executors run synchronously
in the calling thread, which for fired triggers is an engine worker thread.

Example:
    >>> registry = WorkflowRegistry()
    >>> registry.register(WorkflowType.SCREENSHOT, capture_all_pages)
    >>> job_id = registry.submit(WorkflowType.SCREENSHOT)
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from uuid import uuid4

from cronspine.core.errors import NotFoundError, ValidationError
from cronspine.core.logging import get_logger
from cronspine.core.models.scheduler import WorkflowType, parse_workflow_type

logger = get_logger(__name__)

WorkflowExecutor = Callable[[str], object]
"""Called with the job id allocated for this submission."""


class WorkflowRegistry:
    """Maps workflow types to executors."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._executors: dict[WorkflowType, WorkflowExecutor] = {}

    def register(
        self, workflow_type: WorkflowType | str, executor: WorkflowExecutor
    ) -> None:
        wf = parse_workflow_type(workflow_type)
        with self._lock:
            if wf in self._executors:
                raise ValidationError(
                    f"workflow type already registered: {wf.value}"
                ).with_context(workflow_type=wf.value)
            self._executors[wf] = executor
        logger.debug("workflow_registered", workflow_type=wf.value)

    def registered(self) -> list[WorkflowType]:
        with self._lock:
            return sorted(self._executors, key=lambda t: t.value)

    def submit(self, workflow_type: WorkflowType) -> str:
        """Run the executor for *workflow_type* and return the new job id.

        Raises:
            NotFoundError: no executor registered for the type
        """
        wf = parse_workflow_type(workflow_type)
        with self._lock:
            executor = self._executors.get(wf)
        if executor is None:
            raise NotFoundError(
                f"no executor registered for workflow type {wf.value!r}"
            ).with_context(workflow_type=wf.value)

        job_id = uuid4().hex
        logger.info("workflow_submitted", workflow_type=wf.value, job_id=job_id)
        executor(job_id)
        return job_id


__all__ = ["WorkflowExecutor", "WorkflowRegistry"]
