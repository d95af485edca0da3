from typing import Dict, Any, List, Optional
from pydantic import Field

from domain.models.workflow_state import ExecutionContext, WireModel, WorkflowDescriptor, WorkflowStep


class ScanProjectRequest(WireModel):
    project_path: str


class CreateSessionRequest(WireModel):
    """Start a workflow run against a project"""
    workflow: WorkflowDescriptor
    project_path: str
    inputs: Dict[str, Any] = Field(default_factory=dict)


class CreateSessionResponse(WireModel):
    session_id: str
    step_ids: List[str] = Field(default_factory=list)


class ExecuteStepRequest(WireModel):
    """Inputs merged into the run before the step executes"""
    inputs: Dict[str, Any] = Field(default_factory=dict)
    continuation: Optional[str] = None


class RenderPromptRequest(WireModel):
    step: WorkflowStep
    context: ExecutionContext
    continuation: Optional[str] = None


class RenderPromptResponse(WireModel):
    prompt: str
    length: int
