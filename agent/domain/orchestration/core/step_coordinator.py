from typing import Dict, Any, AsyncIterator, Callable, List, Optional
from contextlib import aclosing
import time
import structlog

from application.api.schema.events import BaseEvent
from domain.context.context_compactor import ContextCompactor
from domain.context.prompt_assembler import PromptAssembler
from domain.models.errors import WorkflowError
from domain.models.workflow_state import (
    ExecutionContext, StepPhase, ToolCallRecord, WorkflowStep
)
from domain.streaming.stream_decoder import GenerationOptions, GenerationProvider, StreamDecoder
from domain.streaming.stream_events import TextFragment, ToolInvocationRequest
from domain.streaming.streaming_handler import StreamingHandler
from domain.streaming.tool_dispatch import ToolDispatchLoop
from domain.streaming.turn_recorder import TurnRecorder
from domain.tool.tool_executor import ToolExecutor
from domain.tool.tool_registry import ToolRegistry
from domain.tool.tool_validator import ToolParameterValidator
from infrastructure.observability.logging import agent_logger, metrics
from infrastructure.project.git_service import GitService
from infrastructure.project.project_scanner import ProjectContextProvider

logger = structlog.get_logger(__name__)

PREPARING_MESSAGE = "Generating response..."


class _StepRun:
    """Phase bookkeeping of a single step execution"""

    def __init__(self, step_id: str):
        self.step_id = step_id
        self.phase = StepPhase.IDLE

    def transition(self, to_phase: StepPhase, reason: Optional[str] = None):
        agent_logger.log_phase_transition(
            step_id=self.step_id,
            from_phase=self.phase.value,
            to_phase=to_phase.value,
            reason=reason
        )
        self.phase = to_phase


class StepCoordinator:
    """Runs one workflow step and publishes its progress as wire events

    The coordinator never mutates the step's recorded history except for the
    summarization fallback. The finished turn travels on the done event and
    the caller appends it to the execution context.
    """

    def __init__(
        self,
        provider: GenerationProvider,
        tool_executor_factory: Callable[[str], ToolExecutor],
        options: GenerationOptions,
        assembler: Optional[PromptAssembler] = None,
        registry: Optional[ToolRegistry] = None,
        project_provider: Optional[ProjectContextProvider] = None,
        git_service: Optional[GitService] = None,
        streaming_handler: Optional[StreamingHandler] = None,
        tools_enabled: bool = True
    ):
        self.provider = provider
        self.tool_executor_factory = tool_executor_factory
        self.options = options
        self.assembler = assembler or PromptAssembler()
        self.registry = registry or ToolRegistry()
        self.validator = ToolParameterValidator(self.registry)
        self.project_provider = project_provider or ProjectContextProvider()
        self.git_service = git_service or GitService()
        self.streaming = streaming_handler or StreamingHandler()
        self.tools_enabled = tools_enabled
        self.decoder = StreamDecoder(provider)

    @property
    def compactor(self) -> ContextCompactor:
        return self.assembler.compactor

    async def run_step(
        self,
        step: WorkflowStep,
        context: ExecutionContext,
        continuation: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> AsyncIterator[BaseEvent]:
        """Execute a step, yielding task_info, preparing, chunks and tool calls, then done or error"""

        run = _StepRun(step.id)
        started = time.perf_counter()
        logger.info("Starting step", session_id=session_id, step_id=step.id, step_name=step.name)

        run.transition(StepPhase.PREPARING)
        yield self.streaming.task_info(step, context)

        try:
            prompt = await self._prepare(step, context, continuation, compact=True)
        except Exception as e:
            yield self._fail(run, e)
            return

        yield self.streaming.preparing(PREPARING_MESSAGE)

        run.transition(StepPhase.STREAMING)
        recorder = TurnRecorder(prompt, user_input=self.assembler.new_request(step, context, continuation))
        failure: Optional[Exception] = None

        items = self.tool_dispatch(context).run(
            self.decoder.decode(
                prompt,
                self.options,
                tools=self.registry.provider_schemas() if self.tools_enabled else None,
                system=self.assembler.system_prompt(context) if self.tools_enabled else None
            ),
            step_id=step.id
        )
        try:
            async with aclosing(items):
                async for item in items:
                    if isinstance(item, TextFragment):
                        recorder.append_text(item.text)
                        yield self.streaming.chunk(item.text)
                    elif isinstance(item, ToolInvocationRequest):
                        run.transition(StepPhase.TOOL_PENDING, reason=item.name)
                    elif isinstance(item, ToolCallRecord):
                        recorder.append_tool_call(item)
                        yield self.streaming.tool_call(item)
                        run.transition(StepPhase.STREAMING)
        except Exception as e:
            failure = e

        if failure is not None:
            yield self._fail(run, failure)
            return

        run.transition(StepPhase.FINALIZING)
        turn = recorder.build()
        duration_ms = (time.perf_counter() - started) * 1000
        metrics.record_latency("step_execution", duration_ms, tags={"step_id": step.id})

        run.transition(StepPhase.DONE)
        logger.info(
            "Step finished",
            session_id=session_id,
            step_id=step.id,
            response_length=len(turn.response),
            tool_calls=len(turn.tool_calls),
            duration_ms=round(duration_ms, 1)
        )
        yield self.streaming.done(turn)

    async def render_prompt(
        self,
        step: WorkflowStep,
        context: ExecutionContext,
        continuation: Optional[str] = None
    ) -> str:
        """Prompt the step would be sent, without summarizing or generating"""
        return await self._prepare(step, context, continuation, compact=False)

    def tool_dispatch(self, context: ExecutionContext) -> ToolDispatchLoop:
        return ToolDispatchLoop(self.tool_executor_factory(context.project_path), self.validator)

    async def _prepare(
        self,
        step: WorkflowStep,
        context: ExecutionContext,
        continuation: Optional[str],
        compact: bool
    ) -> str:
        if context.project_context is None:
            context.project_context = await self.project_provider.get(context.project_path)

        if compact:
            await self.compactor.compact_step(context.get_output(step.id), self.provider)

        git_diff = None
        if self.assembler.references(step, "git_diff"):
            git_diff = await self.git_service.get_diff(context.project_path)

        file_contents: Dict[str, Any] = {}
        if self.assembler.references(step, "codebase_files"):
            related: List[str] = self.assembler.related_files(context)
            file_contents = await self.project_provider.read_files(context.project_path, related)

        return self.assembler.assemble(
            step,
            context,
            continuation=continuation,
            git_diff=git_diff,
            file_contents=file_contents
        )

    def _fail(self, run: _StepRun, error: Exception) -> BaseEvent:
        if isinstance(error, WorkflowError):
            logger.error("Step failed", step_id=run.step_id, phase=run.phase.value, error=str(error))
        else:
            logger.error(
                "Step failed unexpectedly",
                step_id=run.step_id,
                phase=run.phase.value,
                error=str(error),
                exc_info=True
            )
        metrics.increment_counter("step_errors", tags={"step_id": run.step_id})
        run.transition(StepPhase.ERROR, reason=error.__class__.__name__)
        return self.streaming.error(str(error) or error.__class__.__name__)
