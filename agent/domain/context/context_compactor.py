from typing import List, Optional, Protocol
from pydantic import BaseModel, Field
import math
import structlog

from domain.models.errors import SummarizationError
from domain.models.workflow_state import (
    ConversationTurn, StepOutput, SUMMARY_SENTINEL
)
from infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)

TRUNCATION_MARKER = "\n...[truncated]"
OMISSION_MARKER = "\n\n[... earlier history omitted to fit the context budget ...]"
SUMMARY_HEADING = "## Conversation summary\n\n"


class Summarizer(Protocol):
    """Anything able to run a short non-streaming completion"""

    async def complete(self, prompt: str, max_tokens: int) -> str:
        ...


class CompactionBudget(BaseModel):
    """Character and token budgets applied when rendering history"""
    prior_step_chars: int = Field(default=3000, ge=1)
    prior_total_chars: int = Field(default=20000, ge=1)
    recent_turns: int = Field(default=3, ge=1)
    user_input_chars: int = Field(default=1000, ge=1)
    response_chars: int = Field(default=3000, ge=1)
    summary_min_turns: int = Field(default=5, ge=0)
    summary_token_threshold: int = Field(default=15000, ge=0)
    chars_per_token: int = Field(default=4, ge=1)
    summary_input_chars: int = Field(default=10000, ge=1)
    summary_max_tokens: int = Field(default=2000, ge=1)


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


class ContextCompactor:
    """Reduces unbounded step history to a bounded digest"""

    def __init__(self, budget: Optional[CompactionBudget] = None):
        self.budget = budget or CompactionBudget()

    def digest_prior_steps(self, outputs: List[StepOutput]) -> str:
        """Digest of completed steps, oldest first

        Only the last response of each step is kept. The concatenation is then
        cut to the global ceiling, keeping its prefix.
        """

        sections = []
        for output in outputs:
            if not output.conversations:
                continue
            response = truncate(output.last_response, self.budget.prior_step_chars)
            sections.append(f"## {output.step_name}\n\n{response}")

        digest = "\n\n".join(sections)
        if len(digest) > self.budget.prior_total_chars:
            logger.info(
                "Prior step digest over budget",
                length=len(digest),
                ceiling=self.budget.prior_total_chars
            )
            digest = digest[:self.budget.prior_total_chars] + OMISSION_MARKER
        return digest

    def render_current_history(self, output: Optional[StepOutput]) -> str:
        """Render the active step's recent turns verbatim"""

        if output is None or not output.conversations:
            return ""

        blocks = []
        numbered = list(enumerate(output.conversations, start=1))

        # A summary replaces older turns, so it is always kept
        for _, turn in numbered:
            if turn.is_summary:
                blocks.append(turn.response)

        detailed = [(index, turn) for index, turn in numbered if not turn.is_summary]
        for index, turn in detailed[-self.budget.recent_turns:]:
            blocks.append(self._render_turn(index, turn))

        return "\n\n---\n\n".join(blocks)

    def _render_turn(self, index: int, turn: ConversationTurn) -> str:
        text = f"### Turn {index}\n"
        if turn.user_input and turn.user_input.strip():
            user_input = truncate(turn.user_input, self.budget.user_input_chars)
            text += f"\n**Developer**:\n{user_input}\n"
        response = truncate(turn.response, self.budget.response_chars)
        text += f"\n**Assistant**:\n{response}"
        return text

    def estimate_tokens(self, output: StepOutput) -> int:
        total_chars = sum(
            len(turn.user_input or "") + len(turn.response)
            for turn in output.conversations
        )
        return math.ceil(total_chars / self.budget.chars_per_token)

    def needs_summary(self, output: Optional[StepOutput]) -> bool:
        """Whether the step's history must be summarized before rendering"""

        if output is None or output.has_summary:
            return False
        if len(output.conversations) <= self.budget.summary_min_turns:
            return False
        return self.estimate_tokens(output) > self.budget.summary_token_threshold

    def build_summary_prompt(self, output: StepOutput) -> str:
        transcript = "\n\n---\n\n".join(
            self._transcript_entry(index, turn)
            for index, turn in enumerate(output.conversations, start=1)
            if not turn.is_summary
        )
        # Keep the most recent material when the transcript is too long
        if len(transcript) > self.budget.summary_input_chars:
            transcript = transcript[-self.budget.summary_input_chars:]

        return (
            "Summarize the following conversation. Keep every key decision, "
            "requirement and implementation detail, and stay concise.\n\n"
            f"{transcript}"
        )

    def _transcript_entry(self, index: int, turn: ConversationTurn) -> str:
        text = f"### Turn {index}\n"
        if turn.user_input:
            text += f"Developer: {turn.user_input}\n"
        text += f"Assistant: {turn.response}"
        return text

    async def compact_step(self, output: Optional[StepOutput], summarizer: Summarizer) -> bool:
        """Summarize the step in place when over threshold

        Returns True when the history was replaced.
        """

        if not self.needs_summary(output):
            return False

        turn_count = len(output.conversations)
        estimated_tokens = self.estimate_tokens(output)
        logger.info(
            "Summarizing step history",
            step_id=output.step_id,
            turns=turn_count,
            estimated_tokens=estimated_tokens
        )

        prompt = self.build_summary_prompt(output)
        try:
            summary = await summarizer.complete(prompt, self.budget.summary_max_tokens)
        except SummarizationError:
            raise
        except Exception as e:
            raise SummarizationError(f"Failed to summarize step history: {e}", cause=e) from e

        output.replace_with_summary(
            ConversationTurn(
                prompt=prompt,
                response=SUMMARY_HEADING + summary.strip(),
                user_input=SUMMARY_SENTINEL
            )
        )

        agent_logger.log_context_update(
            step_id=output.step_id,
            context_type="step_history",
            action="summarized",
            details={"turns_replaced": turn_count, "estimated_tokens": estimated_tokens}
        )
        return True
