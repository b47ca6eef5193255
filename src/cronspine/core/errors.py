"""
Structured error types for cronspine.

Every failure the scheduling core can surface is a ``CronspineError``
subclass carrying a category, a retry hint, structured context, and the
chained cause. Callers branch on the *type* (``ScheduleNotFoundError`` vs
``PersistenceError``) rather than on message text.

Manifesto:
    A schedule lives in two places at once: a durable row and a live timer
    registration. When something goes wrong the caller needs to know *which*
    side failed and whether the two sides are still in agreement.

    - **Typed NotFound:** a missing row and a missing live handle are two
      distinct conditions, both subclasses of ``NotFoundError``
    - **Explicit escalation:** ``InconsistencyError`` means a compensating
      rollback itself failed and an operator has to look at that schedule
    - **Rich context:** ``schedule_id``, ``handle_id``, ``workflow_type``
      travel with the error into the logs

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       CronspineError                            │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                 │
        │  NotFoundError          ValidationError      PersistenceError   │
        │  (NOT_FOUND)            (VALIDATION)         (PERSISTENCE)      │
        │       │                                                         │
        │  ScheduleNotFoundError                                          │
        │  HandleNotFoundError                                            │
        │                                                                 │
        │  EngineError            InconsistencyError   ConfigError        │
        │  (ENGINE)               (INCONSISTENCY)      (CONFIG)           │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> err = ScheduleNotFoundError("schedule not found").with_context(
    ...     schedule_id="7d0c..."
    ... )
    >>> err.category
    <ErrorCategory.NOT_FOUND: 'NOT_FOUND'>
    >>> err.to_dict()["context"]["schedule_id"]
    '7d0c...'

Guardrails:
    ❌ DON'T: Raise bare ``Exception`` / ``KeyError`` from the store or engine
    ✅ DO: Raise the matching ``CronspineError`` subclass

    ❌ DON'T: Swallow the driver exception when wrapping it
    ✅ DO: Pass it as ``cause=`` so the traceback keeps the root cause

Tags:
    error-handling, exception-hierarchy, not-found, saga, rollback,
    cronspine, observability

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Attributes:
        NOT_FOUND: Row absent from the store, or handle absent from live state
        VALIDATION: Malformed cron spec, unknown workflow type, bad identifier
        PERSISTENCE: Schedule store I/O failure
        ENGINE: Timer engine registration failure
        INCONSISTENCY: A compensating rollback failed; manual repair needed
        CONFIG: Invalid settings
        INTERNAL: Bugs, unexpected state
    """

    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    PERSISTENCE = "PERSISTENCE"
    ENGINE = "ENGINE"
    INCONSISTENCY = "INCONSISTENCY"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that are set end up in ``to_dict()``; anything that does not
    fit a typed field goes in ``metadata``.

    Attributes:
        schedule_id: Durable schedule identifier
        handle_id: Timer engine handle identifier
        workflow_type: Workflow the schedule submits
        operation: Saga or store operation that failed (``create``, ``sync``...)
        spec: Cron expression involved
        metadata: Additional key-value pairs
    """

    schedule_id: str | None = None
    handle_id: str | None = None
    workflow_type: str | None = None
    operation: str | None = None
    spec: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["schedule_id", "handle_id", "workflow_type", "operation", "spec"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value

        if self.metadata:
            result.update(self.metadata)

        return result


class CronspineError(Exception):
    """
    Base exception for all cronspine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so raising
    sites only have to supply a message and, where useful, context.

    Examples:
        >>> error = CronspineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False

        Chaining the driver error:

        >>> try:
        ...     raise OSError("disk full")
        ... except OSError as e:
        ...     error = PersistenceError("failed to create schedule", cause=e)
        >>> error.cause
        OSError('disk full')
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CronspineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ScheduleNotFoundError("schedule not found").with_context(
                schedule_id=str(schedule_id),
            )
        """
        for key, value in kwargs.items():
            if value is None:
                continue
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, str(value))
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }

        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict

        if self.cause is not None:
            result["cause"] = str(self.cause)

        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# NOT FOUND
# =============================================================================


class NotFoundError(CronspineError):
    """A single entity lookup found nothing.

    ``list`` style reads never raise this; they return an empty list.
    """

    default_category = ErrorCategory.NOT_FOUND


class ScheduleNotFoundError(NotFoundError):
    """No non-deleted row exists for the schedule ID."""

    pass


class HandleNotFoundError(NotFoundError):
    """No live timer handle is registered for the schedule ID."""

    pass


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(CronspineError):
    """Input rejected before any side effect happened."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


# =============================================================================
# PERSISTENCE / ENGINE
# =============================================================================


class PersistenceError(CronspineError):
    """Schedule store I/O failure.

    Marked retryable: the store rejected or lost the statement, the input
    itself was fine.
    """

    default_category = ErrorCategory.PERSISTENCE
    default_retryable = True


class EngineError(CronspineError):
    """Timer engine refused or failed a registration change."""

    default_category = ErrorCategory.ENGINE


# =============================================================================
# INCONSISTENCY
# =============================================================================


class InconsistencyError(CronspineError):
    """
    A compensating rollback failed.

    The store and the timer engine may now disagree about the schedule.
    Nothing retries automatically; the schedule named in the context needs
    operator attention. ``original`` holds the error that triggered the
    rollback, ``cause`` the rollback failure.
    """

    default_category = ErrorCategory.INCONSISTENCY

    def __init__(
        self,
        message: str,
        *,
        original: BaseException | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.original = original

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.original is not None:
            result["original_error"] = str(self.original)
        return result


# =============================================================================
# CONFIG
# =============================================================================


class ConfigError(CronspineError):
    """Invalid configuration."""

    default_category = ErrorCategory.CONFIG


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CronspineError",
    "NotFoundError",
    "ScheduleNotFoundError",
    "HandleNotFoundError",
    "ValidationError",
    "PersistenceError",
    "EngineError",
    "InconsistencyError",
    "ConfigError",
]
