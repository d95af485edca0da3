from typing import Dict, Any, Literal
from pydantic import BaseModel
from enum import Enum
import json

from domain.models.workflow_state import ConversationTurn, ToolCallRecord, WireModel


class EventType(str, Enum):
    """Stream event types"""
    TASK_INFO = "task_info"
    PREPARING = "preparing"
    CHUNK = "chunk"
    TOOL_CALL = "tool_call"
    DONE = "done"
    ERROR = "error"


class BaseEvent(BaseModel):
    """Base event model for all stream messages"""
    type: EventType

    def payload(self) -> Any:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "data": self.payload()}

    def to_line(self) -> str:
        """One NDJSON line"""
        return json.dumps(self.to_dict(), ensure_ascii=False) + "\n"


class TaskInfoData(WireModel):
    """Step summary shown before generation starts"""
    step_name: str
    description: str = ""
    project_path: str = ""


class TaskInfoEvent(BaseEvent):
    type: Literal[EventType.TASK_INFO] = EventType.TASK_INFO
    data: TaskInfoData

    def payload(self) -> Any:
        return self.data.model_dump(by_alias=True)


class PreparingEvent(BaseEvent):
    type: Literal[EventType.PREPARING] = EventType.PREPARING
    data: str

    def payload(self) -> Any:
        return self.data


class ChunkEvent(BaseEvent):
    """Text fragment of the response"""
    type: Literal[EventType.CHUNK] = EventType.CHUNK
    data: str

    def payload(self) -> Any:
        return self.data


class ToolCallEvent(BaseEvent):
    type: Literal[EventType.TOOL_CALL] = EventType.TOOL_CALL
    data: ToolCallRecord

    def payload(self) -> Any:
        return self.data.to_wire()


class DoneEvent(BaseEvent):
    """Terminal event carrying the finished turn"""
    type: Literal[EventType.DONE] = EventType.DONE
    data: ConversationTurn

    def payload(self) -> Any:
        return self.data.to_wire()


class ErrorEvent(BaseEvent):
    """Terminal error event"""
    type: Literal[EventType.ERROR] = EventType.ERROR
    data: str

    def payload(self) -> Any:
        return self.data
