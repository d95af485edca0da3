from typing import Any, List, Mapping, Set, Tuple
import re


PLACEHOLDER_PATTERN = re.compile(r"{{\s*([^{}]+?)\s*}}")


def format_value(value: Any) -> str:
    """Render an input value as prompt text"""

    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    return str(value)


class VariableSubstitution:
    """Replaces {{name}} placeholders with caller supplied values"""

    def has_placeholders(self, template: str) -> bool:
        return PLACEHOLDER_PATTERN.search(template) is not None

    def extract_placeholders(self, template: str) -> List[str]:
        """Placeholder names in order of first appearance"""

        seen: List[str] = []
        for match in PLACEHOLDER_PATTERN.finditer(template):
            name = match.group(1)
            if name not in seen:
                seen.append(name)
        return seen

    def render(self, template: str, values: Mapping[str, Any]) -> Tuple[str, Set[str]]:
        """Substitute every placeholder that has a value

        Returns the rendered text and the names that were consumed. Placeholders
        without a value are left untouched.
        """

        used: Set[str] = set()

        def _replace(match: "re.Match[str]") -> str:
            name = match.group(1)
            if name not in values:
                return match.group(0)
            used.add(name)
            return format_value(values[name])

        # Single pass so substituted text is never re-scanned
        rendered = PLACEHOLDER_PATTERN.sub(_replace, template)
        return rendered, used

