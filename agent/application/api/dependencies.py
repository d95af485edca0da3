from typing import Annotated, Optional
from fastapi import Depends

from domain.context.context_compactor import ContextCompactor
from domain.context.memory.cache_memory_store import CacheMemoryStore
from domain.context.memory.runtime_memory import RuntimeMemory
from domain.context.prompt_assembler import PromptAssembler
from domain.orchestration.core.step_coordinator import StepCoordinator
from domain.tool.tool_executor import LocalToolExecutor
from infrastructure.config.settings import AgentSettings, get_settings
from infrastructure.llm.anthropic_provider import AnthropicProvider
from infrastructure.project.git_service import GitService
from infrastructure.project.project_scanner import ProjectContextProvider, ProjectScanner

# Process-wide state shared by all requests
runtime_memory = RuntimeMemory()
_project_provider: Optional[ProjectContextProvider] = None
_coordinator: Optional[StepCoordinator] = None


def get_runtime_memory() -> RuntimeMemory:
    return runtime_memory


def get_project_provider(
    settings: Annotated[AgentSettings, Depends(get_settings)]
) -> ProjectContextProvider:
    global _project_provider
    if _project_provider is None:
        _project_provider = ProjectContextProvider(
            scanner=ProjectScanner(max_file_chars=settings.related_file_chars),
            cache=CacheMemoryStore(
                ttl=settings.project_cache_ttl_seconds,
                max_entries=settings.project_cache_max_entries
            )
        )
    return _project_provider


def get_step_coordinator(
    settings: Annotated[AgentSettings, Depends(get_settings)],
    project_provider: Annotated[ProjectContextProvider, Depends(get_project_provider)]
) -> StepCoordinator:
    """Shared coordinator; raises ConfigurationError without a provider credential"""

    global _coordinator
    if _coordinator is None:
        def executor_for(project_path: str) -> LocalToolExecutor:
            return LocalToolExecutor(
                project_root=project_path,
                allowed_paths=settings.allowed_paths,
                command_timeout=settings.command_timeout_seconds
            )

        _coordinator = StepCoordinator(
            provider=AnthropicProvider.from_settings(settings),
            tool_executor_factory=executor_for,
            options=settings.generation_options(),
            assembler=PromptAssembler(ContextCompactor(settings.compaction_budget())),
            project_provider=project_provider,
            git_service=GitService(),
            tools_enabled=settings.tools_enabled
        )
    return _coordinator
