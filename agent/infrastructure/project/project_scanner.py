from typing import Dict, Any, List, Optional
from pathlib import Path
import asyncio
import json
import structlog

from domain.context.memory.cache_memory_store import CacheMemoryStore
from domain.models.workflow_state import ProjectContext

logger = structlog.get_logger(__name__)

IMPORTANT_FILES = [
    "package.json",
    "tsconfig.json",
    "next.config.js",
    "next.config.mjs",
    "next.config.ts",
    "vite.config.ts",
    "vitest.config.ts",
    "jest.config.js",
    "tailwind.config.js",
    "playwright.config.ts",
    "cypress.config.ts",
    "pyproject.toml",
    "requirements.txt",
    "README.md",
    ".env.example",
    "CLAUDE.md",
    ".cursorrules",
]

# Dependency name -> tech stack label, in display order
JS_STACK = [
    ("react", "React"),
    ("next", "Next.js"),
    ("vue", "Vue"),
    ("typescript", "TypeScript"),
    ("tailwindcss", "Tailwind CSS"),
    ("express", "Express"),
    ("@anthropic-ai/sdk", "Claude AI"),
]
JS_TEST_FRAMEWORKS = ["vitest", "jest", "mocha"]
JS_E2E_FRAMEWORKS = [
    ("playwright", "playwright"),
    ("@playwright/test", "playwright"),
    ("cypress", "cypress"),
    ("puppeteer", "puppeteer"),
]

PY_STACK = [
    ("fastapi", "FastAPI"),
    ("django", "Django"),
    ("flask", "Flask"),
    ("anthropic", "Claude AI"),
]


class ProjectScanner:
    """Detects tech stack and tooling from a project's manifest files"""

    def __init__(self, max_file_chars: int = 20000):
        self.max_file_chars = max_file_chars

    def scan(self, project_path: str) -> ProjectContext:
        root = Path(project_path).expanduser()
        package_json = self._read_package_json(root)
        deps = {
            **package_json.get("dependencies", {}),
            **package_json.get("devDependencies", {})
        }

        tech_stack = [label for name, label in JS_STACK if name in deps]
        test_framework = next((name for name in JS_TEST_FRAMEWORKS if name in deps), None)
        e2e_framework = next(
            (label for name, label in JS_E2E_FRAMEWORKS if name in deps),
            None
        )

        python_manifest = self._read_python_manifest(root)
        if python_manifest:
            tech_stack.append("Python")
            tech_stack.extend(label for name, label in PY_STACK if name in python_manifest)
            if test_framework is None and "pytest" in python_manifest:
                test_framework = "pytest"
            if e2e_framework is None and "playwright" in python_manifest:
                e2e_framework = "playwright"

        context = ProjectContext(
            project_path=project_path,
            tech_stack=tech_stack,
            package_manager=self._detect_package_manager(root, bool(package_json), bool(python_manifest)),
            test_framework=test_framework,
            e2e_framework=e2e_framework,
            scripts=package_json.get("scripts", {}),
            important_files=[name for name in IMPORTANT_FILES if (root / name).exists()]
        )

        logger.info(
            "Scanned project",
            project_path=project_path,
            tech_stack=tech_stack,
            package_manager=context.package_manager
        )
        return context

    def read_files(self, project_path: str, relative_paths: List[str]) -> Dict[str, str]:
        """Contents of the given files, unreadable ones skipped"""

        root = Path(project_path).expanduser()
        contents: Dict[str, str] = {}
        for relative in relative_paths:
            path = root / relative
            try:
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.warning("Could not read related file", path=str(path), error=str(e))
                continue
            if len(text) > self.max_file_chars:
                text = text[:self.max_file_chars] + "\n...[truncated]"
            contents[relative] = text
        return contents

    def _read_package_json(self, root: Path) -> Dict[str, Any]:
        path = root / "package.json"
        if not path.is_file():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Unreadable package.json", path=str(path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _read_python_manifest(self, root: Path) -> str:
        """Lower-cased text of the Python manifests, empty when there are none"""

        parts = []
        for name in ("pyproject.toml", "requirements.txt", "setup.cfg"):
            path = root / name
            if path.is_file():
                try:
                    parts.append(path.read_text(encoding="utf-8", errors="replace").lower())
                except OSError:
                    continue
        return "\n".join(parts)

    def _detect_package_manager(self, root: Path, has_package_json: bool, has_python: bool) -> str:
        if (root / "pnpm-lock.yaml").exists():
            return "pnpm"
        if (root / "yarn.lock").exists():
            return "yarn"
        if has_package_json:
            return "npm"
        if (root / "uv.lock").exists():
            return "uv"
        if (root / "poetry.lock").exists():
            return "poetry"
        if has_python:
            return "pip"
        return "unknown"


class ProjectContextProvider:
    """Read-through cache of scanned project contexts keyed by path"""

    def __init__(self, scanner: Optional[ProjectScanner] = None, cache: Optional[CacheMemoryStore] = None):
        self.scanner = scanner or ProjectScanner()
        self.cache = cache or CacheMemoryStore()

    async def get(self, project_path: str) -> ProjectContext:
        key = str(Path(project_path).expanduser())
        return await self.cache.get_or_load(
            key,
            lambda: asyncio.to_thread(self.scanner.scan, project_path)
        )

    async def read_files(self, project_path: str, relative_paths: List[str]) -> Dict[str, str]:
        if not relative_paths:
            return {}
        return await asyncio.to_thread(self.scanner.read_files, project_path, relative_paths)
