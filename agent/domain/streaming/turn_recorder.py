from typing import List, Optional

from domain.models.workflow_state import ConversationTurn, ToolCallRecord


class TurnRecorder:
    """Accumulates the pieces of one generation into a ConversationTurn"""

    def __init__(self, prompt: str, user_input: Optional[str] = None):
        self.prompt = prompt
        self.user_input = user_input
        self._fragments: List[str] = []
        self.tool_calls: List[ToolCallRecord] = []

    def append_text(self, text: str):
        self._fragments.append(text)

    def append_tool_call(self, record: ToolCallRecord):
        self.tool_calls.append(record)

    @property
    def response(self) -> str:
        return "".join(self._fragments)

    def build(self) -> ConversationTurn:
        return ConversationTurn(
            prompt=self.prompt,
            response=self.response,
            user_input=self.user_input,
            tool_calls=list(self.tool_calls)
        )
