from typing import Dict, Any, AsyncIterator, List, Optional, Protocol, Sequence
from contextlib import aclosing
from pydantic import BaseModel, Field
import json
import structlog

from domain.streaming.stream_events import (
    BlockStop, DecodedItem, MessageStop, StreamEvent, TextDelta, TextFragment,
    ToolInputDelta, ToolInvocationRequest, ToolUseStart
)

logger = structlog.get_logger(__name__)


class GenerationOptions(BaseModel):
    """Per-request generation parameters"""
    model: str
    max_tokens: int = Field(default=8192, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)


class GenerationProvider(Protocol):
    """LLM provider able to stream one generation request"""

    def stream(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        system: Optional[str] = None
    ) -> AsyncIterator[StreamEvent]:
        ...

    async def complete(self, prompt: str, max_tokens: int) -> str:
        ...


class _PendingTool:
    """Argument buffer of one tool-use block"""

    def __init__(self, tool_id: str, name: str):
        self.tool_id = tool_id
        self.name = name
        self.fragments: List[str] = []

    def to_request(self) -> ToolInvocationRequest:
        raw = "".join(self.fragments)
        request = ToolInvocationRequest(id=self.tool_id, name=self.name, raw_arguments=raw)

        if not raw.strip():
            return request

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            request.error = f"Malformed arguments for tool {self.name}: {e.msg}"
            return request

        if not isinstance(parsed, dict):
            request.error = f"Arguments for tool {self.name} must be a JSON object"
            return request

        request.params = parsed
        return request


class StreamDecoder:
    """Turns a provider event stream into text fragments and tool requests"""

    def __init__(self, provider: GenerationProvider):
        self.provider = provider

    async def decode(
        self,
        prompt: str,
        options: GenerationOptions,
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        system: Optional[str] = None
    ) -> AsyncIterator[DecodedItem]:
        """Lazily decode one generation request

        Tool arguments are buffered per content block and parsed only at a
        boundary: the block's stop event, the next tool block, or the end of
        the message. Tool blocks are assumed to arrive one at a time, as the
        Messages API sends them: a new tool block finalizes any still open,
        and deltas for a finalized block are dropped. Text may interleave
        freely. Closing this iterator closes the provider stream.
        """

        events = self.provider.stream(
            prompt,
            model=options.model,
            max_tokens=options.max_tokens,
            temperature=options.temperature,
            tools=tools,
            system=system
        )
        # Insertion order is arrival order
        pending: Dict[int, _PendingTool] = {}

        async with aclosing(events):
            async for event in events:
                if isinstance(event, TextDelta):
                    if event.text:
                        yield TextFragment(text=event.text)

                elif isinstance(event, ToolUseStart):
                    for request in self._flush(pending):
                        yield request
                    pending[event.index] = _PendingTool(event.id, event.name)

                elif isinstance(event, ToolInputDelta):
                    tool = pending.get(event.index)
                    if tool is None:
                        logger.warning("Tool input for unknown block", index=event.index)
                        continue
                    tool.fragments.append(event.partial_json)

                elif isinstance(event, BlockStop):
                    tool = pending.pop(event.index, None)
                    if tool is not None:
                        yield tool.to_request()

                elif isinstance(event, MessageStop):
                    break

            for request in self._flush(pending):
                yield request

    @staticmethod
    def _flush(pending: Dict[int, _PendingTool]) -> List[ToolInvocationRequest]:
        requests = [tool.to_request() for tool in pending.values()]
        pending.clear()
        return requests
