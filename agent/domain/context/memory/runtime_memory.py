from typing import Dict, Optional
import asyncio
import uuid

from domain.models.workflow_state import ExecutionContext


class RuntimeMemory:
    """Holds execution contexts of active sessions in process memory"""

    def __init__(self, max_sessions: int = 256):
        self.sessions: Dict[str, ExecutionContext] = {}
        self.max_sessions = max_sessions
        self._lock = asyncio.Lock()

    async def create_session(self, context: ExecutionContext) -> str:
        """Register a new run and return its session id"""

        session_id = str(uuid.uuid4())
        async with self._lock:
            self.sessions[session_id] = context

            # Drop the oldest sessions beyond the limit
            while len(self.sessions) > self.max_sessions:
                oldest = next(iter(self.sessions))
                self.sessions.pop(oldest)

        return session_id

    async def get_session(self, session_id: str) -> Optional[ExecutionContext]:
        async with self._lock:
            return self.sessions.get(session_id)

