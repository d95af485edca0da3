"""Shared fakes for the workflow agent tests."""

from typing import Any, Dict, List, Optional, Sequence

import pytest

from domain.models.errors import TransportError, UnknownToolError
from domain.models.workflow_state import (
    ConversationTurn,
    ExecutionContext,
    ProjectContext,
    StepOutput,
    WorkflowDescriptor,
    WorkflowStep,
)
from domain.streaming.stream_decoder import GenerationOptions
from domain.streaming.stream_events import StreamEvent


class FakeProvider:
    """Scripted generation provider."""

    def __init__(
        self,
        events: Optional[List[StreamEvent]] = None,
        fail_after: Optional[int] = None,
        summary: str = "summary text",
        summary_error: Optional[Exception] = None,
    ) -> None:
        self.events = events or []
        self.fail_after = fail_after
        self.summary = summary
        self.summary_error = summary_error
        self.stream_calls: List[Dict[str, Any]] = []
        self.complete_calls: List[Dict[str, Any]] = []
        self.delivered = 0
        self.closed = False

    async def stream(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        system: Optional[str] = None,
    ):
        self.stream_calls.append(
            {"prompt": prompt, "model": model, "tools": tools, "system": system}
        )
        try:
            for event in self.events:
                if self.fail_after is not None and self.delivered >= self.fail_after:
                    raise TransportError("connection reset")
                self.delivered += 1
                yield event
        finally:
            self.closed = True

    async def complete(self, prompt: str, max_tokens: int) -> str:
        self.complete_calls.append({"prompt": prompt, "max_tokens": max_tokens})
        if self.summary_error is not None:
            raise self.summary_error
        return self.summary


class FakeExecutor:
    """Tool executor that records calls and returns canned results."""

    def __init__(self, results: Optional[Dict[str, Any]] = None, errors: Optional[Dict[str, Exception]] = None) -> None:
        self.results = results or {}
        self.errors = errors or {}
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, name: str, params: Dict[str, Any]) -> Any:
        self.calls.append({"name": name, "params": params})
        if name in self.errors:
            raise self.errors[name]
        if name not in self.results:
            raise UnknownToolError(name)
        return self.results[name]


def make_turn(response: str, user_input: Optional[str] = None, prompt: str = "p") -> ConversationTurn:
    return ConversationTurn(prompt=prompt, response=response, user_input=user_input, timestamp=1)


def make_output(step_id: str, turns: List[ConversationTurn], completed: bool = False, name: str = "") -> StepOutput:
    return StepOutput(
        step_id=step_id,
        step_name=name or step_id.title(),
        conversations=turns,
        completed=completed,
    )


@pytest.fixture
def options() -> GenerationOptions:
    return GenerationOptions(model="test-model", max_tokens=256, temperature=0.2)


@pytest.fixture
def step() -> WorkflowStep:
    return WorkflowStep(
        id="implement",
        name="Implement",
        prompt="Implement the feature in {{project_path}}",
        description="Write the code",
    )


@pytest.fixture
def context(step: WorkflowStep) -> ExecutionContext:
    workflow = WorkflowDescriptor(id="feature", name="Feature", steps=[step])
    return ExecutionContext(
        workflow=workflow,
        project_path="/work/demo-app",
        project_context=ProjectContext(
            project_path="/work/demo-app",
            tech_stack=["React", "TypeScript"],
            test_framework="vitest",
        ),
    )
