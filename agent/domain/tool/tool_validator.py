from typing import Dict, List, Any
import jsonschema

from domain.models.errors import ToolExecutionError, UnknownToolError
from domain.tool.tool_registry import ToolRegistry


class ToolParameterValidator:
    """Checks model-supplied tool arguments against the declared schemas"""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    def errors(self, tool_name: str, parameters: Dict[str, Any]) -> List[str]:
        tool = self.registry.get_tool_info(tool_name)
        if tool is None:
            raise UnknownToolError(tool_name)

        validator = jsonschema.Draft202012Validator(tool["input_schema"])
        return [
            error.message
            for error in sorted(validator.iter_errors(parameters), key=lambda e: [str(part) for part in e.path])
        ]

    def validate(self, tool_name: str, parameters: Dict[str, Any]) -> None:
        """Raise ToolExecutionError when the parameters do not fit the schema"""

        problems = self.errors(tool_name, parameters)
        if problems:
            raise ToolExecutionError(
                f"Invalid parameters for {tool_name}: {'; '.join(problems)}"
            )
