"""Sequencing of the transcription -> extraction -> rendering -> delivery pipeline."""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from .config import LabflowConfig, RateLimitRule, load_config
from .constants import DEFAULT_MEETING_TYPE
from .contracts import (
    AudioPayload,
    DeliveryOutput,
    ExtractionContext,
    ExtractionOutput,
    RenderedEmail,
    RenderingOutput,
    StepResult,
    StepType,
    TranscriptionOutput,
    WorkflowOutcome,
    WorkflowRun,
)
from .dispatch import BulkDispatcher
from .errors import ProviderError
from .persistence import StepRepository, WorkflowStep, get_repository
from .providers import (
    AgentExtractionProvider,
    DeliveryProvider,
    ExtractionProvider,
    HtmlSummaryRenderer,
    InMemoryMeetingStore,
    MeetingStore,
    OpenAITranscriptionProvider,
    RenderingProvider,
    ResendDeliveryProvider,
    TranscriptionProvider,
)
from .ratelimit import RateLimiter
from .recorder import StepRecorder
from .utils.circuit import CircuitBreakerRegistry
from .utils.retry import RetryExecutor, is_transient

logger = logging.getLogger(__name__)

# Rate-limit rule consulted before each stage starts; rendering is unmetered
STAGE_RATE_LIMITS: Dict[StepType, str] = {
    StepType.TRANSCRIPTION: "transcription",
    StepType.EXTRACTION: "processing",
    StepType.DELIVERY: "email",
}


class WorkflowCoordinator:
    """Runs the four pipeline stages for one meeting and records every step.

    Stage methods never raise for provider failures: the failure is recorded
    and returned as an unsuccessful :class:`StepResult`. Errors writing the
    step log (:class:`~labflow.errors.OrchestrationError`) and rate-limit
    denials (:class:`~labflow.errors.RateLimitExceededError`) do propagate.
    """

    def __init__(
        self,
        transcriber: TranscriptionProvider,
        extractor: ExtractionProvider,
        renderer: RenderingProvider,
        deliverer: DeliveryProvider,
        recorder: Optional[StepRecorder] = None,
        retry: Optional[RetryExecutor] = None,
        dispatcher: Optional[BulkDispatcher] = None,
        rate_limiter: Optional[RateLimiter] = None,
        rate_limits: Optional[Dict[str, RateLimitRule]] = None,
        individual_delivery: bool = False,
        circuit_breakers: Optional[CircuitBreakerRegistry] = None,
    ) -> None:
        self._transcriber = transcriber
        self._extractor = extractor
        self._renderer = renderer
        self._deliverer = deliverer
        self._recorder = recorder or StepRecorder()
        self._retry = retry or RetryExecutor()
        self._dispatcher = dispatcher or BulkDispatcher()
        self._rate_limiter = rate_limiter
        self._rate_limits = rate_limits or {}
        self._individual_delivery = individual_delivery
        self._circuit_breakers = circuit_breakers

    @property
    def recorder(self) -> StepRecorder:
        return self._recorder

    @property
    def rate_limiter(self) -> Optional[RateLimiter]:
        return self._rate_limiter

    def circuit_status(self) -> Dict[str, Dict[str, Any]]:
        """Breaker state per provider, empty when circuit breaking is off."""
        return self._circuit_breakers.status() if self._circuit_breakers is not None else {}

    # ------------------------------------------------------------------
    # Run lifecycle
    def start_workflow(self, initiator_id: str, scope_id: Optional[str] = None) -> WorkflowRun:
        """Allocate a new run; nothing is persisted until its first step."""
        run = WorkflowRun(initiator_id=initiator_id, scope_id=scope_id)
        logger.info(f"Started workflow {run.id} for initiator={initiator_id} scope={scope_id}")
        return run

    async def list_workflow_steps(self, workflow_id: str) -> list[WorkflowStep]:
        return await self._recorder.list_steps(workflow_id)

    def _check_rate_limit(self, run: WorkflowRun, step_type: StepType) -> None:
        if self._rate_limiter is None:
            return
        rule_name = STAGE_RATE_LIMITS.get(step_type)
        rule = self._rate_limits.get(rule_name) if rule_name else None
        if rule is not None:
            self._rate_limiter.enforce(f"ai:{run.initiator_id}", rule)

    def _guarded(self, provider: Any, call: Callable[[], Awaitable[Any]]) -> Callable[[], Awaitable[Any]]:
        """Route ``call`` through the breaker of ``provider`` when breaking is on."""
        if self._circuit_breakers is None:
            return call
        breaker = self._circuit_breakers.get(getattr(provider, "name", type(provider).__name__))
        return lambda: breaker.call(call)

    async def _run_stage(
        self,
        run: WorkflowRun,
        step_type: StepType,
        step_name: str,
        input_summary: Dict[str, Any],
        operation: Callable[[], Awaitable[Any]],
        related_entity_id: Optional[str] = None,
    ) -> StepResult:
        """Record, execute and record again.

        ``operation`` is responsible for its own retry wrapping so that input
        validation fails once instead of exhausting the attempt budget.
        """
        self._check_rate_limit(run, step_type)

        started = time.perf_counter()
        step_id = await self._recorder.start_step(
            run.id,
            step_type,
            step_name,
            input_summary,
            initiator_id=run.initiator_id,
            scope_id=run.scope_id,
            related_entity_id=related_entity_id,
        )
        try:
            output = await operation()
        except Exception as exc:
            result = StepResult(
                step_id=step_id,
                success=False,
                error_message=str(exc) or type(exc).__name__,
                processing_time_ms=int((time.perf_counter() - started) * 1000),
            )
            logger.error(f"{step_name} failed for workflow {run.id}: {result.error_message}")
        else:
            result = StepResult(
                step_id=step_id,
                success=True,
                output_data=output,
                processing_time_ms=int((time.perf_counter() - started) * 1000),
            )
        await self._recorder.complete_step(step_id, result)
        return result

    # ------------------------------------------------------------------
    # Stages
    async def run_transcription(self, run: WorkflowRun, audio: AudioPayload) -> StepResult:
        async def operation() -> TranscriptionOutput:
            transcript = await self._retry.execute(
                self._guarded(
                    self._transcriber,
                    lambda: self._transcriber.transcribe(audio.data, audio.content_type, audio.filename),
                )
            )
            return TranscriptionOutput(transcript=transcript)

        return await self._run_stage(
            run, StepType.TRANSCRIPTION, "Audio Transcription", audio.summary(), operation
        )

    async def run_extraction(
        self,
        run: WorkflowRun,
        transcription: TranscriptionOutput,
        meeting_type: str = DEFAULT_MEETING_TYPE,
        attendees: Sequence[str] = (),
    ) -> StepResult:
        if not isinstance(transcription, TranscriptionOutput):
            raise TypeError("run_extraction expects the output of run_transcription")
        context = ExtractionContext(
            meeting_type=meeting_type,
            attendees=list(attendees),
            scope_id=run.scope_id,
            initiator_id=run.initiator_id,
        )

        async def operation() -> ExtractionOutput:
            extracted = await self._retry.execute(
                self._guarded(
                    self._extractor, lambda: self._extractor.extract(transcription.transcript, context)
                )
            )
            return ExtractionOutput(meeting_id=extracted.meeting_id, action_items=extracted.action_items)

        summary = {
            "transcript_length": len(transcription.transcript),
            "meeting_type": meeting_type,
            "attendees_count": len(context.attendees),
        }
        return await self._run_stage(
            run, StepType.EXTRACTION, "AI Meeting Analysis", summary, operation
        )

    async def run_rendering(
        self, run: WorkflowRun, extraction: ExtractionOutput, lab_name: str
    ) -> StepResult:
        if not isinstance(extraction, ExtractionOutput):
            raise TypeError("run_rendering expects the output of run_extraction")

        async def operation() -> RenderingOutput:
            rendered = await self._retry.execute(
                self._guarded(
                    self._renderer, lambda: self._renderer.render(extraction.meeting_id, lab_name)
                )
            )
            return RenderingOutput(
                meeting_id=extraction.meeting_id,
                subject=f"{lab_name} Meeting Summary",
                html=rendered.html,
                text=rendered.text,
                action_items_count=rendered.action_items_count,
            )

        return await self._run_stage(
            run,
            StepType.RENDERING,
            "Email HTML Generation",
            {"meeting_id": extraction.meeting_id, "lab_name": lab_name},
            operation,
            related_entity_id=extraction.meeting_id,
        )

    async def run_delivery(
        self,
        run: WorkflowRun,
        rendering: RenderingOutput,
        recipients: Sequence[str],
        individual: Optional[bool] = None,
    ) -> StepResult:
        """Send the rendered summary.

        With ``individual`` each recipient gets a separate message through the
        bulk dispatcher; the step then fails only if every recipient failed.
        """
        if not isinstance(rendering, RenderingOutput):
            raise TypeError("run_delivery expects the output of run_rendering")
        recipients = list(recipients)
        individual = self._individual_delivery if individual is None else individual

        async def operation() -> DeliveryOutput:
            if not recipients:
                raise ProviderError("delivery", "no recipients given", status_code=422)
            return await self._deliver(rendering, recipients, individual)

        summary = {
            "meeting_id": rendering.meeting_id,
            "recipients": recipients,
            "recipient_count": len(recipients),
            "individual": individual,
        }
        return await self._run_stage(
            run,
            StepType.DELIVERY,
            "Email Delivery",
            summary,
            operation,
            related_entity_id=rendering.meeting_id,
        )

    async def _deliver(
        self, rendering: RenderingOutput, recipients: list[str], individual: bool
    ) -> DeliveryOutput:
        content = RenderedEmail(
            html=rendering.html, text=rendering.text, action_items_count=rendering.action_items_count
        )
        tags = {"category": "meeting_summary", "meeting_id": rendering.meeting_id}

        if not individual:
            message_id = await self._retry.execute(
                self._guarded(
                    self._deliverer,
                    lambda: self._deliverer.send(content, recipients, rendering.subject, tags),
                )
            )
            return DeliveryOutput(
                meeting_id=rendering.meeting_id, recipients=recipients, message_ids=[message_id]
            )

        async def send_one(artifact: RenderedEmail, recipient: str) -> str:
            return await self._retry.execute(
                self._guarded(
                    self._deliverer,
                    lambda: self._deliverer.send(artifact, [recipient], rendering.subject, tags),
                )
            )

        report = await self._dispatcher.dispatch(content, recipients, send_one)
        if report.all_failed:
            raise ProviderError(
                "delivery",
                f"delivery failed for all {report.total} recipients: {report.failed[0].error}",
            )
        return DeliveryOutput(
            meeting_id=rendering.meeting_id,
            recipients=[s.target for s in report.succeeded],
            message_ids=[s.artifact_id for s in report.succeeded],
            failed_recipients=[f.target for f in report.failed],
        )

    # caller-facing names used by the surrounding application
    run_ai_analysis = run_extraction
    run_email_generation = run_rendering
    run_email_delivery = run_delivery

    # ------------------------------------------------------------------
    async def run_complete_workflow(
        self,
        audio: AudioPayload,
        recipients: Sequence[str],
        initiator_id: str,
        lab_name: str,
        scope_id: Optional[str] = None,
        meeting_type: str = DEFAULT_MEETING_TYPE,
        attendees: Sequence[str] = (),
        individual: Optional[bool] = None,
    ) -> WorkflowOutcome:
        """Run all four stages, stopping at the first failed one."""
        run = self.start_workflow(initiator_id, scope_id)
        outcome: Dict[str, Any] = {"workflow_id": run.id}

        def aborted(stage: StepType) -> WorkflowOutcome:
            logger.warning(f"Workflow {run.id} aborted at {stage.value}")
            return WorkflowOutcome(status="aborted", failed_stage=stage, **outcome)

        outcome["transcription"] = transcription = await self.run_transcription(run, audio)
        if not transcription.success:
            return aborted(StepType.TRANSCRIPTION)

        outcome["extraction"] = extraction = await self.run_extraction(
            run, transcription.output_data, meeting_type=meeting_type, attendees=attendees
        )
        if not extraction.success:
            return aborted(StepType.EXTRACTION)

        outcome["rendering"] = rendering = await self.run_rendering(
            run, extraction.output_data, lab_name
        )
        if not rendering.success:
            return aborted(StepType.RENDERING)

        outcome["delivery"] = delivery = await self.run_delivery(
            run, rendering.output_data, recipients, individual=individual
        )
        if not delivery.success:
            return aborted(StepType.DELIVERY)

        logger.info(f"Workflow {run.id} succeeded")
        return WorkflowOutcome(status="succeeded", **outcome)


def build_coordinator(
    config: Optional[LabflowConfig] = None,
    repository: Optional[StepRepository] = None,
    meeting_store: Optional[MeetingStore] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> WorkflowCoordinator:
    """Assemble a coordinator wired to the configured providers.

    A fresh :class:`RateLimiter` is created when none is shared in; the caller
    owns its sweeper (see :meth:`RateLimiter.start_sweeper`).
    """
    config = config or load_config()
    store = meeting_store or InMemoryMeetingStore()
    retry = RetryExecutor(
        max_attempts=config.retry.max_attempts,
        base_delay_ms=config.retry.base_delay_ms,
        is_retryable=is_transient if config.retry.classify_errors else None,
    )
    breakers = None
    if config.circuit_breaker.enabled:
        breakers = CircuitBreakerRegistry(
            config.circuit_breaker.failure_threshold, config.circuit_breaker.reset_timeout_ms
        )
    return WorkflowCoordinator(
        transcriber=OpenAITranscriptionProvider(config.openai),
        extractor=AgentExtractionProvider(store, model=config.openai.extraction_model),
        renderer=HtmlSummaryRenderer(store),
        deliverer=ResendDeliveryProvider(config.resend),
        recorder=StepRecorder(repository or get_repository(config=config)),
        retry=retry,
        dispatcher=BulkDispatcher(config.bulk.batch_size, config.bulk.batch_pause_ms),
        rate_limiter=rate_limiter or RateLimiter(),
        rate_limits=config.rate_limits,
        individual_delivery=config.delivery.individual,
        circuit_breakers=breakers,
    )
