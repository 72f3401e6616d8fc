"""labflow: durable meeting-to-email workflow orchestration for research labs."""

from .contracts import (
    AudioPayload,
    BulkDispatchReport,
    StepResult,
    StepStatus,
    StepType,
    WorkflowOutcome,
    WorkflowRun,
)
from .coordinator import WorkflowCoordinator, build_coordinator
from .dispatch import BulkDispatcher
from .persistence import WorkflowStep, get_repository
from .ratelimit import RateLimiter
from .recorder import StepRecorder
from .utils.retry import RetryExecutor

__version__ = "0.1.0"
__all__ = [
    "AudioPayload",
    "BulkDispatchReport",
    "BulkDispatcher",
    "RateLimiter",
    "RetryExecutor",
    "StepRecorder",
    "StepResult",
    "StepStatus",
    "StepType",
    "WorkflowCoordinator",
    "WorkflowOutcome",
    "WorkflowRun",
    "WorkflowStep",
    "build_coordinator",
    "get_repository",
]
