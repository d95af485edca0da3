from typing import Dict, Any, Literal, Optional, Union
from pydantic import BaseModel, Field


# Provider events, reconstructed from the raw stream of one generation call

class TextDelta(BaseModel):
    kind: Literal["text_delta"] = "text_delta"
    text: str


class ToolUseStart(BaseModel):
    kind: Literal["tool_use_start"] = "tool_use_start"
    id: str
    name: str
    index: int = Field(default=0, description="Content block index")


class ToolInputDelta(BaseModel):
    kind: Literal["tool_input_delta"] = "tool_input_delta"
    partial_json: str
    index: int = 0


class BlockStop(BaseModel):
    kind: Literal["block_stop"] = "block_stop"
    index: int = 0


class MessageStop(BaseModel):
    kind: Literal["message_stop"] = "message_stop"


StreamEvent = Union[TextDelta, ToolUseStart, ToolInputDelta, BlockStop, MessageStop]


# Decoded items handed to the tool dispatch loop

class TextFragment(BaseModel):
    text: str


class ToolInvocationRequest(BaseModel):
    """A complete tool call whose arguments have been parsed"""
    id: str
    name: str
    raw_arguments: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


DecodedItem = Union[TextFragment, ToolInvocationRequest]
