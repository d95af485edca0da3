from typing import List, Optional, Tuple
import asyncio
import structlog

logger = structlog.get_logger(__name__)


class GitService:
    """Reads working tree changes of a project through the git CLI"""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    async def is_git_repo(self, project_path: str) -> bool:
        code, _, _ = await self._run(project_path, ["rev-parse", "--is-inside-work-tree"])
        return code == 0

    async def get_diff(self, project_path: str, staged: bool = False) -> str:
        """Unified diff of the working tree, empty outside a repository"""

        if not await self.is_git_repo(project_path):
            logger.info("Not a git repository, empty diff", project_path=project_path)
            return ""

        args = ["diff", "--staged"] if staged else ["diff"]
        code, stdout, stderr = await self._run(project_path, args)
        if code != 0:
            logger.warning("git diff failed", project_path=project_path, stderr=stderr.strip())
            return ""
        return stdout

    async def _run(self, cwd: str, args: List[str]) -> Tuple[Optional[int], str, str]:
        try:
            process = await asyncio.create_subprocess_exec(
                "git", *args,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            logger.warning("Could not run git", cwd=cwd, error=str(e))
            return None, "", str(e)

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("git timed out", cwd=cwd, args=args)
            return None, "", "timeout"

        return (
            process.returncode,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace")
        )
