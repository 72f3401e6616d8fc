"""Exception hierarchy for labflow."""

from __future__ import annotations

from typing import Any, Optional


class LabflowError(Exception):
    """Base exception for all labflow errors.

    Attributes:
        error_code: Machine-readable error identifier.
        context: Arbitrary key-value pairs describing the failure.
    """

    def __init__(self, message: str, error_code: str = "LABFLOW_ERROR", **context: Any) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.context = context


class OrchestrationError(LabflowError):
    """The step audit trail could not be written; fatal for the run."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, error_code="ORCHESTRATION_ERROR", **context)


class StepNotFoundError(LabflowError):
    def __init__(self, step_id: str) -> None:
        super().__init__(f"Workflow step {step_id} not found", error_code="STEP_NOT_FOUND", step_id=step_id)
        self.step_id = step_id


class StepAlreadyCompletedError(LabflowError):
    """A second completion was attempted for a step in a terminal state."""

    def __init__(self, step_id: str, status: str) -> None:
        super().__init__(
            f"Workflow step {step_id} is already {status}",
            error_code="STEP_ALREADY_COMPLETED",
            step_id=step_id,
            status=status,
        )
        self.step_id = step_id
        self.status = status


class RateLimitExceededError(LabflowError):
    def __init__(self, identifier: str, rule: str, limit: int, retry_after_ms: int) -> None:
        seconds = max(1, -(-retry_after_ms // 1000))
        super().__init__(
            f"Rate limit exceeded for {rule}. Try again in {seconds} seconds.",
            error_code="RATE_LIMIT_EXCEEDED",
            identifier=identifier,
            rule=rule,
            limit=limit,
            retry_after_ms=retry_after_ms,
        )
        self.identifier = identifier
        self.rule = rule
        self.limit = limit
        self.retry_after_ms = retry_after_ms


class ProviderError(LabflowError):
    """An external provider rejected or failed a request."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(
            f"{provider}: {message}",
            error_code="PROVIDER_ERROR",
            provider=provider,
            status_code=status_code,
        )
        self.provider = provider
        self.status_code = status_code


class MeetingNotFoundError(LabflowError):
    def __init__(self, meeting_id: str) -> None:
        super().__init__("Meeting not found", error_code="MEETING_NOT_FOUND", meeting_id=meeting_id)
        self.meeting_id = meeting_id


class CircuitOpenError(LabflowError):
    """Calls to a provider are suspended after repeated failures."""

    def __init__(self, provider: str, retry_after_ms: int) -> None:
        super().__init__(
            f"{provider}: circuit breaker is open",
            error_code="CIRCUIT_OPEN",
            provider=provider,
            retry_after_ms=retry_after_ms,
        )
        self.provider = provider
        self.retry_after_ms = retry_after_ms
