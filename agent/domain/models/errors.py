from typing import Optional


class WorkflowError(Exception):
    """Base error for workflow step execution"""


class ConfigurationError(WorkflowError):
    """Raised when the service cannot start a step, e.g. no provider credential"""


class TransportError(WorkflowError):
    """Raised when the provider connection fails or the event stream is malformed"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class SummarizationError(TransportError):
    """Raised when the history summarization round trip fails"""


class ToolExecutionError(WorkflowError):
    """Raised by tool executors; always captured into a ToolCallRecord"""


class UnknownToolError(ToolExecutionError):
    """Raised for a tool name the executor does not provide"""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name
