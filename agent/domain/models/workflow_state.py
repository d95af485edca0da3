from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from enum import Enum
import time


# userInput of the synthetic turn that replaces a summarized step history
SUMMARY_SENTINEL = "[auto-summary]"


def now_ms() -> int:
    return int(time.time() * 1000)


class WireModel(BaseModel):
    """Base model serialized with camelCase keys on the wire"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StepPhase(str, Enum):
    """Step execution phase"""
    IDLE = "idle"
    PREPARING = "preparing"
    STREAMING = "streaming"
    TOOL_PENDING = "tool_pending"
    FINALIZING = "finalizing"
    DONE = "done"
    ERROR = "error"


class HistoryState(str, Enum):
    """Whether a step still holds its fine-grained turns"""
    DETAILED = "detailed"
    SUMMARIZED = "summarized"


class ToolCallRecord(WireModel):
    """Outcome of one tool invocation requested by the model"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    tool: str
    params: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with either result or error, never both"""
        data: Dict[str, Any] = {"tool": self.tool, "params": self.params}
        if self.error is not None:
            data["error"] = self.error
        else:
            data["result"] = self.result
        return data


class ConversationTurn(WireModel):
    """One request/response exchange within a step"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    prompt: str
    response: str
    timestamp: int = Field(default_factory=now_ms)
    user_input: Optional[str] = None
    tool_calls: List[ToolCallRecord] = Field(default_factory=list)

    @property
    def is_summary(self) -> bool:
        return self.user_input == SUMMARY_SENTINEL

    def to_wire(self) -> Dict[str, Any]:
        return {
            "prompt": self.prompt,
            "response": self.response,
            "timestamp": self.timestamp,
            "userInput": self.user_input,
            "toolCalls": [call.to_wire() for call in self.tool_calls],
        }


class StepOutput(WireModel):
    """Accumulated conversation of a single workflow step"""
    step_id: str
    step_name: str
    conversations: List[ConversationTurn] = Field(default_factory=list)
    completed: bool = False
    history_state: HistoryState = Field(default=HistoryState.DETAILED)

    @property
    def has_summary(self) -> bool:
        return any(turn.is_summary for turn in self.conversations)

    @property
    def last_response(self) -> str:
        return self.conversations[-1].response if self.conversations else ""

    def append_turn(self, turn: ConversationTurn):
        """Append a finished turn"""
        if self.completed:
            raise ValueError(f"Step {self.step_id} is already completed")
        self.conversations.append(turn)

    def mark_completed(self):
        """Mark the step completed; there is no way back"""
        self.completed = True

    def replace_with_summary(self, summary_turn: ConversationTurn):
        """Discard the detailed turns in favour of a single summary turn"""
        if self.history_state == HistoryState.SUMMARIZED:
            raise ValueError(f"Step {self.step_id} history was already summarized")
        if not summary_turn.is_summary:
            raise ValueError("Summary turn must carry the summary sentinel")
        self.conversations = [summary_turn]
        self.history_state = HistoryState.SUMMARIZED


class WorkflowStep(WireModel):
    """A named unit of work with its own prompt template"""
    id: str = Field(description="Step identifier, unique within the workflow")
    name: str
    prompt: str = Field(description="Prompt template with {{placeholders}}")
    description: Optional[str] = None


class WorkflowDescriptor(WireModel):
    """Workflow definition the run was started from"""
    id: str
    name: str
    description: Optional[str] = None
    steps: List[WorkflowStep] = Field(default_factory=list)

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


class ProjectContext(WireModel):
    """Static metadata describing the target project"""
    project_path: str
    tech_stack: List[str] = Field(default_factory=list)
    package_manager: str = "unknown"
    test_framework: Optional[str] = None
    e2e_framework: Optional[str] = None
    scripts: Dict[str, str] = Field(default_factory=dict)
    important_files: List[str] = Field(default_factory=list)


class ExecutionContext(WireModel):
    """Everything a workflow run accumulates, owned by the caller"""
    workflow: WorkflowDescriptor
    project_path: str
    inputs: Dict[str, Any] = Field(default_factory=dict)
    outputs: List[StepOutput] = Field(default_factory=list)
    project_context: Optional[ProjectContext] = None

    def get_output(self, step_id: str) -> Optional[StepOutput]:
        for output in self.outputs:
            if output.step_id == step_id:
                return output
        return None

    def completed_outputs(self, exclude_step_id: Optional[str] = None) -> List[StepOutput]:
        """Completed steps in execution order, oldest first"""
        return [
            output for output in self.outputs
            if output.completed and output.step_id != exclude_step_id
        ]

    def ensure_output(self, step: WorkflowStep) -> StepOutput:
        """Get the step's output, creating it on first execution"""
        output = self.get_output(step.id)
        if output is None:
            output = StepOutput(step_id=step.id, step_name=step.name)
            self.outputs.append(output)
        return output

    def record_turn(self, step: WorkflowStep, turn: ConversationTurn) -> StepOutput:
        output = self.ensure_output(step)
        output.append_turn(turn)
        return output
