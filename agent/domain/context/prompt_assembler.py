from typing import Dict, Any, List, Optional
import structlog

from domain.models.workflow_state import ExecutionContext, StepOutput, WorkflowStep
from .context_compactor import ContextCompactor, truncate
from .variable_substitution import VariableSubstitution, format_value

logger = structlog.get_logger(__name__)

STEP_OUTPUT_PREFIX = "step_output:"
IMPLEMENT_STEP_ID = "implement"

WELL_KNOWN_PLACEHOLDERS = {
    "project_path",
    "tech_stack",
    "test_framework",
    "e2e_framework",
    "git_diff",
    "previous_output",
    "all_changes",
    "implemented_code",
    "related_files",
    "codebase_files",
}

# Per-turn text for the new-request block, never stored on the run
CONTINUATION_INPUT = "continuationInput"

# Inputs that steer assembly and are never rendered as free sections
RESERVED_INPUTS = {"relatedFiles", "relatedFilesInput", CONTINUATION_INPUT}

INPUT_LABELS = {
    "requirement": "Requirement",
    "bug_description": "Bug Description",
    "target_code": "Target Code",
    "refactor_goal": "Refactor Goal",
}

NO_CHANGES = "(no changes)"
UNSPECIFIED = "unspecified"


class PromptAssembler:
    """Builds the instruction sent to the provider for one step

    Deterministic given its arguments: anything that needs I/O (git diff,
    related file contents) is fetched by the caller and passed in.
    """

    def __init__(
        self,
        compactor: Optional[ContextCompactor] = None,
        substitution: Optional[VariableSubstitution] = None
    ):
        self.compactor = compactor or ContextCompactor()
        self.substitution = substitution or VariableSubstitution()

    def assemble(
        self,
        step: WorkflowStep,
        context: ExecutionContext,
        continuation: Optional[str] = None,
        git_diff: Optional[str] = None,
        file_contents: Optional[Dict[str, str]] = None
    ) -> str:
        """Render the full prompt for the step"""

        current = context.get_output(step.id)
        has_prior_turns = bool(current and current.conversations)

        # Caller inputs take precedence over the well-known placeholders
        values = self._well_known_values(step.prompt, step, context, git_diff, file_contents or {})
        values.update(context.inputs)
        rendered, used = self.substitution.render(step.prompt, values)
        used_inputs = used & set(context.inputs)

        prompt = self._project_block(context) + "\n---\n\n" + rendered

        if not self.substitution.has_placeholders(step.prompt) and not has_prior_turns:
            free_sections = self._free_sections(context.inputs, used_inputs)
            if free_sections:
                prompt += "\n\n---\n" + free_sections

        prior_digest = self.compactor.digest_prior_steps(
            context.completed_outputs(exclude_step_id=step.id)
        )
        if prior_digest:
            prompt += (
                "\n\n# Previous steps\n"
                "These workflow steps are already completed. Continue from their results.\n\n"
                f"{prior_digest}"
            )

        history = self.compactor.render_current_history(current)
        if history:
            prompt += (
                "\n\n# Conversation history\n"
                "Earlier turns of this step. Continue from this context.\n\n"
                f"{history}"
            )

        new_request = self.new_request(step, context, continuation)
        if new_request is not None:
            prompt += f"\n\n---\n\n# New request\n{new_request}"

        logger.debug(
            "Assembled prompt",
            step_id=step.id,
            length=len(prompt),
            prior_digest_length=len(prior_digest),
            history_length=len(history)
        )
        return prompt

    @staticmethod
    def new_request(step: WorkflowStep, context: ExecutionContext, continuation: Optional[str]) -> Optional[str]:
        """Continuation text rendered for this turn, None on a step's first turn"""

        current = context.get_output(step.id)
        if not (current and current.conversations):
            return None
        if continuation is None or not continuation.strip():
            return None
        return continuation

    def references(self, step: WorkflowStep, placeholder: str) -> bool:
        """Whether the step template mentions a well-known placeholder"""
        return placeholder in self.substitution.extract_placeholders(step.prompt)

    def system_prompt(self, context: ExecutionContext) -> str:
        """Instructions for the file and command tools"""

        project = context.project_context
        lines = [
            "You can operate on the local file system through tools.",
            f"Project root: {context.project_path}",
            "",
            "- Use write_file or edit_file to change files instead of printing code for the user to copy.",
            "- Read a file with read_file before editing it.",
            "- Do not create helper scripts or run sed/awk to modify files.",
            "- Use execute_command to run builds, tests or git commands.",
        ]
        if project and project.important_files:
            lines.append("- Known project files: " + ", ".join(project.important_files))
        return "\n".join(lines)

    @staticmethod
    def related_files(context: ExecutionContext) -> List[str]:
        """Related file paths supplied with the inputs"""

        files = context.inputs.get("relatedFiles")
        if isinstance(files, (list, tuple)):
            return [str(item) for item in files if str(item).strip()]

        raw = files if isinstance(files, str) else context.inputs.get("relatedFilesInput", "")
        if not raw:
            return []
        return [item.strip() for item in str(raw).replace("\n", ",").split(",") if item.strip()]

    def _project_block(self, context: ExecutionContext) -> str:
        block = f"# Project\n\n- **Path**: {context.project_path}\n"
        project = context.project_context
        if project:
            if project.tech_stack:
                block += f"- **Tech stack**: {', '.join(project.tech_stack)}\n"
            if project.test_framework:
                block += f"- **Test framework**: {project.test_framework}\n"
            if project.e2e_framework:
                block += f"- **E2E framework**: {project.e2e_framework}\n"
        return block

    def _well_known_values(
        self,
        template: str,
        step: WorkflowStep,
        context: ExecutionContext,
        git_diff: Optional[str],
        file_contents: Dict[str, str]
    ) -> Dict[str, Any]:
        names = set(self.substitution.extract_placeholders(template))
        project = context.project_context
        values: Dict[str, Any] = {}

        for name in names & WELL_KNOWN_PLACEHOLDERS:
            if name == "project_path":
                values[name] = context.project_path
            elif name == "tech_stack":
                values[name] = ", ".join(project.tech_stack) if project and project.tech_stack else UNSPECIFIED
            elif name == "test_framework":
                values[name] = (project.test_framework if project else None) or UNSPECIFIED
            elif name == "e2e_framework":
                values[name] = (project.e2e_framework if project else None) or UNSPECIFIED
            elif name == "git_diff":
                values[name] = git_diff or NO_CHANGES
            elif name == "previous_output":
                previous = self._previous_output(step, context)
                values[name] = previous.last_response if previous else ""
            elif name == "all_changes":
                responses = [
                    turn.response
                    for output in context.outputs
                    for turn in output.conversations
                ]
                values[name] = truncate(
                    "\n\n---\n\n".join(responses),
                    self.compactor.budget.prior_total_chars
                )
            elif name == "implemented_code":
                values[name] = self._step_response(context, IMPLEMENT_STEP_ID)
            elif name == "related_files":
                values[name] = ", ".join(self.related_files(context))
            elif name == "codebase_files":
                values[name] = "\n".join(
                    f"\n### {path}\n```\n{content}\n```"
                    for path, content in file_contents.items()
                )

        for name in names:
            if name.startswith(STEP_OUTPUT_PREFIX):
                values[name] = self._step_response(context, name[len(STEP_OUTPUT_PREFIX):].strip())

        return values

    def _previous_output(self, step: WorkflowStep, context: ExecutionContext) -> Optional[StepOutput]:
        candidates = [
            output for output in context.outputs
            if output.step_id != step.id and output.conversations
        ]
        return candidates[-1] if candidates else None

    def _step_response(self, context: ExecutionContext, step_id: str) -> str:
        output = context.get_output(step_id)
        return output.last_response if output else ""

    def _free_sections(self, inputs: Dict[str, Any], used: set) -> str:
        sections = []
        for key, value in inputs.items():
            if key in used or key in RESERVED_INPUTS:
                continue
            text = format_value(value)
            if not text.strip():
                continue
            label = INPUT_LABELS.get(key, key)
            sections.append(f"\n## {label}\n{text}")
        return "\n".join(sections)
