from typing import AsyncIterator, Optional, Union
from contextlib import aclosing
import time
import structlog

from domain.models.errors import WorkflowError
from domain.models.workflow_state import ToolCallRecord
from domain.streaming.stream_events import DecodedItem, TextFragment, ToolInvocationRequest
from domain.tool.tool_executor import ToolExecutor
from domain.tool.tool_validator import ToolParameterValidator
from infrastructure.observability.logging import agent_logger, metrics

logger = structlog.get_logger(__name__)

DispatchItem = Union[TextFragment, ToolInvocationRequest, ToolCallRecord]


class ToolDispatchLoop:
    """Executes tool requests inline while the decoded stream is consumed

    For every tool request the loop first yields the request itself, then
    executes it and yields the resulting ToolCallRecord. The decoder is not
    read again until the call has finished.
    """

    def __init__(self, executor: ToolExecutor, validator: Optional[ToolParameterValidator] = None):
        self.executor = executor
        self.validator = validator

    async def run(self, items: AsyncIterator[DecodedItem], step_id: str = "") -> AsyncIterator[DispatchItem]:
        async with aclosing(items):
            async for item in items:
                if isinstance(item, ToolInvocationRequest):
                    yield item
                    yield await self.dispatch(item, step_id)
                else:
                    yield item

    async def dispatch(self, request: ToolInvocationRequest, step_id: str = "") -> ToolCallRecord:
        """Run one tool call, capturing any failure on the record"""

        started = time.perf_counter()

        if request.error:
            record = ToolCallRecord(tool=request.name, params=request.params, error=request.error)
        else:
            try:
                if self.validator is not None:
                    self.validator.validate(request.name, request.params)
                result = await self.executor.execute(request.name, request.params)
                record = ToolCallRecord(tool=request.name, params=request.params, result=result)
            except WorkflowError as e:
                record = ToolCallRecord(tool=request.name, params=request.params, error=str(e))
            except Exception as e:
                logger.warning("Tool raised unexpectedly", tool=request.name, error=str(e), exc_info=True)
                record = ToolCallRecord(
                    tool=request.name,
                    params=request.params,
                    error=str(e) or e.__class__.__name__
                )

        duration_ms = (time.perf_counter() - started) * 1000
        agent_logger.log_tool_execution(
            tool_name=request.name,
            step_id=step_id,
            input_data=request.params,
            duration_ms=duration_ms,
            success=record.succeeded,
            error=record.error
        )
        metrics.record_latency("tool_call", duration_ms, tags={"tool": request.name})
        metrics.increment_counter(
            "tool_calls.failed" if record.error else "tool_calls.succeeded",
            tags={"tool": request.name}
        )
        return record
