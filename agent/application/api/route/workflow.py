from typing import Annotated, Dict, Any, Optional, Tuple
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
import structlog

from application.api.dependencies import get_project_provider, get_runtime_memory, get_step_coordinator
from application.api.schema.events import DoneEvent
from application.api.schema.requests import (
    CreateSessionRequest, CreateSessionResponse, ExecuteStepRequest,
    RenderPromptRequest, RenderPromptResponse, ScanProjectRequest
)
from domain.context.prompt_assembler import CONTINUATION_INPUT
from domain.context.memory.runtime_memory import RuntimeMemory
from domain.models.workflow_state import ExecutionContext, WorkflowStep
from domain.orchestration.core.step_coordinator import StepCoordinator
from infrastructure.project.project_scanner import ProjectContextProvider

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1")


async def _load_session(memory: RuntimeMemory, session_id: str) -> ExecutionContext:
    context = await memory.get_session(session_id)
    if context is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return context


def _load_step(context: ExecutionContext, step_id: str) -> WorkflowStep:
    step = context.workflow.get_step(step_id)
    if step is None:
        raise HTTPException(status_code=404, detail=f"Unknown step: {step_id}")
    return step


def _split_continuation(inputs: Dict[str, Any], continuation: Optional[str]) -> Tuple[Dict[str, Any], Optional[str]]:
    """Separate this turn's continuation text from the inputs kept on the run"""

    inputs = dict(inputs)
    from_inputs = inputs.pop(CONTINUATION_INPUT, None)
    if continuation is None and from_inputs is not None:
        continuation = str(from_inputs)
    return inputs, continuation


@router.post("/project/scan")
async def scan_project(
    request: ScanProjectRequest,
    project_provider: Annotated[ProjectContextProvider, Depends(get_project_provider)]
) -> Dict[str, Any]:
    project = await project_provider.get(request.project_path)
    return project.model_dump(by_alias=True)


@router.post("/workflow/sessions")
async def create_session(
    request: CreateSessionRequest,
    memory: Annotated[RuntimeMemory, Depends(get_runtime_memory)]
) -> Dict[str, Any]:
    inputs, _ = _split_continuation(request.inputs, None)
    context = ExecutionContext(
        workflow=request.workflow,
        project_path=request.project_path,
        inputs=inputs
    )
    session_id = await memory.create_session(context)
    logger.info("Created session", session_id=session_id, workflow_id=request.workflow.id)

    return CreateSessionResponse(
        session_id=session_id,
        step_ids=[step.id for step in request.workflow.steps]
    ).model_dump(by_alias=True)


@router.get("/workflow/sessions/{session_id}")
async def get_session(
    session_id: str,
    memory: Annotated[RuntimeMemory, Depends(get_runtime_memory)]
) -> Dict[str, Any]:
    context = await _load_session(memory, session_id)
    return context.model_dump(mode="json", by_alias=True)


@router.post("/workflow/sessions/{session_id}/steps/{step_id}/execute")
async def execute_step(
    session_id: str,
    step_id: str,
    request: ExecuteStepRequest,
    memory: Annotated[RuntimeMemory, Depends(get_runtime_memory)],
    coordinator: Annotated[StepCoordinator, Depends(get_step_coordinator)]
) -> StreamingResponse:
    """Stream the step's events as NDJSON"""

    context = await _load_session(memory, session_id)
    step = _load_step(context, step_id)

    output = context.get_output(step_id)
    if output is not None and output.completed:
        raise HTTPException(status_code=409, detail=f"Step {step_id} is already completed")

    inputs, continuation = _split_continuation(request.inputs, request.continuation)
    context.inputs.update(inputs)

    async def events():
        with structlog.contextvars.bound_contextvars(session_id=session_id, step_id=step_id):
            async for event in coordinator.run_step(
                step, context, continuation=continuation, session_id=session_id
            ):
                if isinstance(event, DoneEvent):
                    context.record_turn(step, event.data)
                yield event

    return StreamingResponse(
        coordinator.streaming.stream_lines(events(), session_id=session_id),
        media_type="application/x-ndjson"
    )


@router.post("/workflow/sessions/{session_id}/steps/{step_id}/complete")
async def complete_step(
    session_id: str,
    step_id: str,
    memory: Annotated[RuntimeMemory, Depends(get_runtime_memory)]
) -> Dict[str, Any]:
    context = await _load_session(memory, session_id)
    step = _load_step(context, step_id)

    output = context.ensure_output(step)
    output.mark_completed()
    logger.info("Step completed", session_id=session_id, step_id=step_id, turns=len(output.conversations))
    return output.model_dump(mode="json", by_alias=True)


@router.post("/workflow/render-prompt")
async def render_prompt(
    request: RenderPromptRequest,
    coordinator: Annotated[StepCoordinator, Depends(get_step_coordinator)]
) -> Dict[str, Any]:
    context = request.context
    context.inputs, continuation = _split_continuation(context.inputs, request.continuation)
    prompt = await coordinator.render_prompt(request.step, context, continuation)
    return RenderPromptResponse(prompt=prompt, length=len(prompt)).model_dump(by_alias=True)
