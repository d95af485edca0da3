from typing import Dict, List, Any, Optional, Protocol, Sequence
from pathlib import Path
import asyncio
import structlog

from domain.models.errors import ToolExecutionError, UnknownToolError

logger = structlog.get_logger(__name__)

# Output beyond this is cut before it is returned to the caller
MAX_OUTPUT_CHARS = 100_000


class ToolExecutor(Protocol):
    """Executes one tool call by name"""

    async def execute(self, name: str, params: Dict[str, Any]) -> Any:
        ...


def expand_path(raw: str, base: Optional[Path] = None) -> Path:
    """Resolve ~ and relative paths"""

    path = Path(raw).expanduser()
    if not path.is_absolute() and base is not None:
        path = base / path
    return path.resolve()


class LocalToolExecutor:
    """Runs file and command tools on the local machine

    Paths are confined to the project root plus any extra allowed roots.
    With neither configured, every path is accepted.
    """

    def __init__(
        self,
        project_root: Optional[str] = None,
        allowed_paths: Optional[Sequence[str]] = None,
        command_timeout: float = 120.0
    ):
        self.project_root = expand_path(project_root) if project_root else None
        self.allowed_roots: List[Path] = [expand_path(p) for p in (allowed_paths or [])]
        if self.project_root is not None:
            self.allowed_roots.insert(0, self.project_root)
        self.command_timeout = command_timeout
        self._handlers = {
            "execute_command": self.execute_command,
            "read_file": self.read_file,
            "write_file": self.write_file,
            "edit_file": self.edit_file,
            "list_files": self.list_files,
        }

    async def execute(self, name: str, params: Dict[str, Any]) -> Any:
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownToolError(name)
        return await handler(**params)

    async def execute_command(self, command: str, cwd: Optional[str] = None) -> Dict[str, Any]:
        workdir = self._resolve(cwd) if cwd else self.project_root
        logger.info("Running command", command=command, cwd=str(workdir) if workdir else None)

        process = await asyncio.create_subprocess_shell(
            command,
            cwd=str(workdir) if workdir else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.command_timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ToolExecutionError(f"Command timed out after {self.command_timeout:g}s: {command}")

        return {
            "stdout": stdout.decode("utf-8", errors="replace")[:MAX_OUTPUT_CHARS],
            "stderr": stderr.decode("utf-8", errors="replace")[:MAX_OUTPUT_CHARS],
            "exitCode": process.returncode
        }

    async def read_file(self, path: str) -> Dict[str, Any]:
        target = self._resolve(path)
        if not target.is_file():
            raise ToolExecutionError(f"File not found: {path}")
        content = await asyncio.to_thread(target.read_text, encoding="utf-8")
        return {"path": str(target), "content": content}

    async def write_file(self, path: str, content: str) -> Dict[str, Any]:
        target = self._resolve(path)

        def _write():
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)
        return {"path": str(target), "success": True, "bytesWritten": len(content.encode("utf-8"))}

    async def edit_file(self, path: str, old_string: str, new_string: str) -> Dict[str, Any]:
        target = self._resolve(path)
        if not target.is_file():
            raise ToolExecutionError(f"File not found: {path}")

        content = await asyncio.to_thread(target.read_text, encoding="utf-8")
        if old_string not in content:
            raise ToolExecutionError(f"String to replace not found in {path}")

        updated = content.replace(old_string, new_string, 1)
        await asyncio.to_thread(target.write_text, updated, encoding="utf-8")
        return {"path": str(target), "success": True}

    async def list_files(self, directory: str, pattern: str = "*") -> Dict[str, Any]:
        root = self._resolve(directory)
        if not root.is_dir():
            raise ToolExecutionError(f"Directory not found: {directory}")

        def _glob():
            return sorted(
                str(p.relative_to(root)) for p in root.glob(pattern or "*") if p.is_file()
            )

        files = await asyncio.to_thread(_glob)
        return {"directory": str(root), "files": files}

    def _resolve(self, raw: str) -> Path:
        path = expand_path(raw, self.project_root)
        if self.allowed_roots and not any(path == root or root in path.parents for root in self.allowed_roots):
            raise ToolExecutionError(f"Access denied: {raw} is outside the allowed paths")
        return path
