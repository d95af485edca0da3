from typing import Dict, List, Any, Optional


FILE_OPERATION_TOOLS: List[Dict[str, Any]] = [
    {
        "name": "execute_command",
        "description": "Run a shell command in the project and return stdout, stderr and the exit code. "
                       "Use it for builds, tests and git commands.",
        "input_schema": {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "Shell command to run"},
                "cwd": {"type": "string", "description": "Working directory, defaults to the project root"}
            },
            "required": ["command"],
            "additionalProperties": False
        }
    },
    {
        "name": "read_file",
        "description": "Read the full text content of a file.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path, absolute or relative to the project root"}
            },
            "required": ["path"],
            "additionalProperties": False
        }
    },
    {
        "name": "write_file",
        "description": "Create or overwrite a file with the given content.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path, absolute or relative to the project root"},
                "content": {"type": "string", "description": "Complete new file content"}
            },
            "required": ["path", "content"],
            "additionalProperties": False
        }
    },
    {
        "name": "edit_file",
        "description": "Replace an exact string in a file. Fails when the string is not present.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path, absolute or relative to the project root"},
                "old_string": {"type": "string", "description": "Exact text to replace"},
                "new_string": {"type": "string", "description": "Replacement text"}
            },
            "required": ["path", "old_string", "new_string"],
            "additionalProperties": False
        }
    },
    {
        "name": "list_files",
        "description": "List files in a directory matching a glob pattern.",
        "input_schema": {
            "type": "object",
            "properties": {
                "directory": {"type": "string", "description": "Directory to list"},
                "pattern": {"type": "string", "description": "Glob pattern such as *.py or **/*.ts"}
            },
            "required": ["directory"],
            "additionalProperties": False
        }
    }
]


class ToolRegistry:
    """Registry of the tools offered to the model"""

    def __init__(self, tools: Optional[List[Dict[str, Any]]] = None):
        self.tools: Dict[str, Dict[str, Any]] = {}

        for tool in (FILE_OPERATION_TOOLS if tools is None else tools):
            self.register_tool(tool)

    def register_tool(self, tool_config: Dict[str, Any]):
        """Register a new tool"""

        self.tools[tool_config["name"]] = tool_config

    def get_tool_info(self, name: str) -> Optional[Dict[str, Any]]:
        return self.tools.get(name)

    def provider_schemas(self) -> List[Dict[str, Any]]:
        """Tool declarations in the shape the Messages API expects"""

        return [
            {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "input_schema": tool["input_schema"]
            }
            for tool in self.tools.values()
        ]
