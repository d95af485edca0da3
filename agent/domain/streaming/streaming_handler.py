from typing import AsyncIterator, Optional
from contextlib import aclosing
from pathlib import PurePath
import structlog

from application.api.schema.events import (
    BaseEvent, ChunkEvent, DoneEvent, ErrorEvent, PreparingEvent,
    TaskInfoData, TaskInfoEvent, ToolCallEvent
)
from domain.models.workflow_state import ConversationTurn, ExecutionContext, ToolCallRecord, WorkflowStep

logger = structlog.get_logger(__name__)

DESCRIPTION_LIMIT = 200


class StreamingHandler:
    """Builds the wire events of a step run and encodes them as NDJSON"""

    def task_info(self, step: WorkflowStep, context: ExecutionContext) -> TaskInfoEvent:
        description = (step.description or "")[:DESCRIPTION_LIMIT]
        project_name = PurePath(context.project_path.rstrip("/\\")).name if context.project_path else ""

        return TaskInfoEvent(
            data=TaskInfoData(
                step_name=step.name,
                description=description,
                project_path=project_name
            )
        )

    def preparing(self, message: str) -> PreparingEvent:
        return PreparingEvent(data=message)

    def chunk(self, text: str) -> ChunkEvent:
        return ChunkEvent(data=text)

    def tool_call(self, record: ToolCallRecord) -> ToolCallEvent:
        return ToolCallEvent(data=record)

    def done(self, turn: ConversationTurn) -> DoneEvent:
        return DoneEvent(data=turn)

    def error(self, message: str) -> ErrorEvent:
        return ErrorEvent(data=message)

    async def stream_lines(
        self,
        events: AsyncIterator[BaseEvent],
        session_id: Optional[str] = None
    ) -> AsyncIterator[str]:
        """Encode events into NDJSON lines, closing the source when abandoned"""

        count = 0
        async with aclosing(events):
            async for event in events:
                count += 1
                yield event.to_line()

        logger.debug("Stream finished", session_id=session_id, events=count)
