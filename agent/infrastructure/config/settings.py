from typing import List, Optional
from functools import lru_cache
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from domain.context.context_compactor import CompactionBudget
from domain.streaming.stream_decoder import GenerationOptions


class AgentSettings(BaseSettings):
    """Service configuration loaded from environment variables or .env"""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    # Provider
    anthropic_auth_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("ANTHROPIC_AUTH_TOKEN", "ANTHROPIC_API_KEY")
    )
    anthropic_base_url: Optional[str] = None
    claude_model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 8192
    temperature: float = 0.7
    tools_enabled: bool = True

    # Compaction budgets
    prior_step_chars: int = 3000
    prior_total_chars: int = 20000
    recent_turns: int = 3
    user_input_chars: int = 1000
    response_chars: int = 3000
    summary_min_turns: int = 5
    summary_token_threshold: int = 15000
    chars_per_token: int = 4
    summary_input_chars: int = 10000
    summary_max_tokens: int = 2000

    # Project context cache
    project_cache_ttl_seconds: float = 300.0
    project_cache_max_entries: int = 64

    # Local tools
    command_timeout_seconds: float = 120.0
    allowed_paths: List[str] = Field(default_factory=list)
    related_file_chars: int = 20000

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    def compaction_budget(self) -> CompactionBudget:
        return CompactionBudget(
            prior_step_chars=self.prior_step_chars,
            prior_total_chars=self.prior_total_chars,
            recent_turns=self.recent_turns,
            user_input_chars=self.user_input_chars,
            response_chars=self.response_chars,
            summary_min_turns=self.summary_min_turns,
            summary_token_threshold=self.summary_token_threshold,
            chars_per_token=self.chars_per_token,
            summary_input_chars=self.summary_input_chars,
            summary_max_tokens=self.summary_max_tokens
        )

    def generation_options(self) -> GenerationOptions:
        return GenerationOptions(
            model=self.claude_model,
            max_tokens=self.max_tokens,
            temperature=self.temperature
        )


@lru_cache
def get_settings() -> AgentSettings:
    return AgentSettings()
