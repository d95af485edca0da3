from typing import Dict, Any, AsyncIterator, Optional, Sequence
import anthropic
import structlog

from domain.models.errors import ConfigurationError, TransportError
from domain.streaming.stream_events import (
    BlockStop, MessageStop, StreamEvent, TextDelta, ToolInputDelta, ToolUseStart
)
from infrastructure.config.settings import AgentSettings

logger = structlog.get_logger(__name__)


def map_raw_event(raw: Any) -> Optional[StreamEvent]:
    """Translate one Messages API stream event, None for kinds we ignore"""

    kind = getattr(raw, "type", None)
    index = getattr(raw, "index", 0) or 0

    if kind == "content_block_start":
        block = getattr(raw, "content_block", None)
        if getattr(block, "type", None) == "tool_use":
            return ToolUseStart(id=block.id, name=block.name, index=index)
        return None

    if kind == "content_block_delta":
        delta = getattr(raw, "delta", None)
        delta_type = getattr(delta, "type", None)
        if delta_type == "text_delta":
            return TextDelta(text=delta.text)
        if delta_type == "input_json_delta":
            return ToolInputDelta(index=index, partial_json=delta.partial_json)
        return None

    if kind == "content_block_stop":
        return BlockStop(index=index)

    if kind == "message_stop":
        return MessageStop()

    return None


class AnthropicProvider:
    """Generation provider backed by the Anthropic Messages API"""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        model: str = "claude-sonnet-4-20250514",
        client: Optional[anthropic.AsyncAnthropic] = None
    ):
        if client is None:
            if not api_key:
                raise ConfigurationError(
                    "No provider credential configured; set ANTHROPIC_AUTH_TOKEN or ANTHROPIC_API_KEY"
                )
            client = anthropic.AsyncAnthropic(api_key=api_key, base_url=base_url or None)
        self.client = client
        self.model = model

    @classmethod
    def from_settings(cls, settings: AgentSettings) -> "AnthropicProvider":
        return cls(
            api_key=settings.anthropic_auth_token,
            base_url=settings.anthropic_base_url,
            model=settings.claude_model
        )

    async def stream(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        system: Optional[str] = None
    ) -> AsyncIterator[StreamEvent]:
        """Open one streaming request and yield decoded provider events"""

        params: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
            "stream": True
        }
        if tools:
            params["tools"] = list(tools)
        if system:
            params["system"] = system

        logger.info("Opening provider stream", model=model, prompt_length=len(prompt), tools=len(tools or []))

        try:
            response = await self.client.messages.create(**params)
        except anthropic.APIError as e:
            raise TransportError(f"Provider request failed: {e}", cause=e) from e

        try:
            async for raw in response:
                event = map_raw_event(raw)
                if event is not None:
                    yield event
        except anthropic.APIError as e:
            raise TransportError(f"Provider stream failed: {e}", cause=e) from e
        finally:
            await response.close()

    async def complete(self, prompt: str, max_tokens: int) -> str:
        """Single non-streaming completion, text blocks joined"""

        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}]
            )
        except anthropic.APIError as e:
            raise TransportError(f"Provider request failed: {e}", cause=e) from e

        return "".join(
            block.text for block in message.content
            if getattr(block, "type", None) == "text"
        )
