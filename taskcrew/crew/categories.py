"""Pure classifiers over task and goal text, and the category behaviour table.

Every "what kind of work is this" decision in the engine goes through one of
the functions here and lands on a closed tag. Behaviour per tag lives in
lookup tables (``CATEGORY_RULES``, ``DEPLOY_TARGET_CAPABILITIES``) instead of
conditionals spread over the workers.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Mapping, Optional, Tuple

from .tasks import InvocationRecord, Task, TaskKind


class TaskCategory(str, Enum):
    SCAFFOLD = "scaffold"
    CUSTOMIZE = "customize"
    CONTAINER = "container"
    DEPLOY = "deploy"
    VERIFY = "verify"
    GENERAL = "general"


class GoalCategory(str, Enum):
    BUILD = "build"
    DEPLOY = "deploy"
    MONITOR = "monitor"
    REMEDIATE = "remediate"


class DevSpecialty(str, Enum):
    FRONTEND = "frontend"
    BACKEND = "backend"
    GENERAL = "general"


class DeployTarget(str, Enum):
    LOCAL = "local"
    AZURE_CONTAINERS = "azure-containers"
    AZURE_APPSERVICE = "azure-appservice"


@dataclass(frozen=True)
class CategoryRule:
    """How the retry engine treats one task category.

    ``required`` empty means any capability invocation is sufficient.
    ``forced`` lists first-attempt forcing candidates in preference order.
    """

    required: FrozenSet[str]
    forced: Tuple[str, ...]
    max_rounds: Optional[int]
    insufficient_reason: str
    instruction: str = ""


CATEGORY_RULES: Mapping[TaskCategory, CategoryRule] = {
    TaskCategory.SCAFFOLD: CategoryRule(
        required=frozenset({"generate_project"}),
        forced=("generate_project",),
        max_rounds=None,
        insufficient_reason=(
            "Scaffold task requires generate_project. "
            "You described the project instead of generating it."
        ),
        instruction=(
            "This is a project scaffolding task. Call generate_project as your FIRST action. "
            "Do NOT write package manifests or config files by hand."
        ),
    ),
    TaskCategory.CUSTOMIZE: CategoryRule(
        required=frozenset({"write_file"}),
        forced=(),
        max_rounds=None,
        insufficient_reason=(
            "Customize task requires write_file. "
            "You described the changes instead of writing them."
        ),
        instruction=(
            "The project already exists. Read the file you need, then change it with write_file."
        ),
    ),
    TaskCategory.CONTAINER: CategoryRule(
        required=frozenset({"generate_deployment", "write_file"}),
        forced=("generate_deployment", "write_file"),
        max_rounds=5,
        insufficient_reason=(
            "Container task requires generate_deployment or write_file to create the "
            "container files. You described what to do instead of doing it."
        ),
        instruction=(
            "Create the container files with generate_deployment. "
            "Use write_file only for custom configuration after that."
        ),
    ),
    TaskCategory.DEPLOY: CategoryRule(
        required=frozenset({
            "write_file", "deploy_local", "deploy_azure_containers", "deploy_azure_appservice",
        }),
        forced=("deploy_local", "deploy_azure_containers", "deploy_azure_appservice"),
        max_rounds=3,
        insufficient_reason=(
            "Deploy task requires write_file for configuration or a deploy capability call. "
            "You described what to do instead of doing it."
        ),
        instruction="Write the deployment configuration and call the deploy capability.",
    ),
    TaskCategory.VERIFY: CategoryRule(
        required=frozenset(),
        forced=(),
        max_rounds=None,
        insufficient_reason=(
            "No capability calls were made. Run the checks instead of describing them."
        ),
        instruction="Run the tests or checks and report the actual results.",
    ),
    TaskCategory.GENERAL: CategoryRule(
        required=frozenset(),
        forced=(),
        max_rounds=None,
        insufficient_reason=(
            "No capability calls were made. You must use capabilities to complete the task, "
            "not just describe what you would do."
        ),
    ),
}


DEPLOY_TARGET_CAPABILITIES: Mapping[DeployTarget, Tuple[str, ...]] = {
    DeployTarget.LOCAL: ("generate_deployment", "write_file", "run_command", "deploy_local"),
    DeployTarget.AZURE_CONTAINERS: (
        "generate_deployment", "write_file", "deploy_azure_containers",
    ),
    DeployTarget.AZURE_APPSERVICE: ("write_file", "deploy_azure_appservice"),
}

# Pinned on deploy tasks; every required set overlaps the target's capabilities.
DEPLOY_TARGET_CATEGORY: Mapping[DeployTarget, TaskCategory] = {
    DeployTarget.LOCAL: TaskCategory.DEPLOY,
    DeployTarget.AZURE_CONTAINERS: TaskCategory.CONTAINER,
    DeployTarget.AZURE_APPSERVICE: TaskCategory.DEPLOY,
}


# ── Keyword tables ────────────────────────────────────────

SCAFFOLD_KEYWORDS = (
    "scaffold", "generate_project", "template=", "create project structure",
    "fullstack", "do not write files manually",
)
NEW_PROJECT_KEYWORDS = (
    "new project", "new application", "new app", "fullstack", "full-stack",
    "full stack", "todo application", "todo app", "web application", "web app",
)
EXISTING_PROJECT_KEYWORDS = ("existing", "current")
# Wording that names the scaffold tool outright; wins even over "existing".
SCAFFOLD_TOOL_KEYWORDS = ("scaffold", "generate_project", "template=")
CUSTOMIZE_KEYWORDS = (
    "customize", "working directory:", "add/modify files", "modify files",
    "update src/", "create component", "add a new route", "add new route",
    "add endpoint", "existing project", "existing express", "existing react",
    "write_file tool", "use write_file",
)
CUSTOMIZE_PATTERNS = (
    re.compile(r"add\s+\w*\s*route"),
    re.compile(r"add\s+\w*\s*endpoint"),
    re.compile(r"create\s+\w+\s+component"),
    re.compile(r"update\s+\S+\.tsx?"),
    re.compile(r"modify\s+\S+\.tsx?"),
)
CONTAINER_KEYWORDS = (
    "docker", "dockerfile", "container", "compose", "image", "containerize",
    "containerization",
)
DEPLOY_KEYWORDS = (
    "deploy", "railway", "vercel", "azure", "production", "staging", "release", "publish",
)

FRONTEND_KEYWORDS = (
    "react", "component", "tsx", "jsx", "ui", "frontend", "css", "tailwind",
    "styled", "button", "form", "modal", "page", "layout", "view", "hook",
    "state", "props", "dashboard", "sidebar", "navbar", "header", "footer",
    "responsive", "mobile", "desktop", "animation", "transition",
)
BACKEND_KEYWORDS = (
    "api", "endpoint", "route", "router", "express", "backend", "server",
    "database", "db", "model", "schema", "migration", "middleware",
    "authentication", "auth", "jwt", "session", "rest", "graphql", "controller",
    "service", "repository", "query", "mutation", "resolver", "handler",
    "prisma", "sql",
)

GOAL_KEYWORDS: Mapping[GoalCategory, Tuple[str, ...]] = {
    GoalCategory.REMEDIATE: (
        "incident", "outage", "down", "crash", "crashed", "recovery", "recover",
        "restore", "rollback", "roll back",
    ),
    GoalCategory.DEPLOY: (
        "deploy", "deployment", "dockerfile", "docker", "container", "railway",
        "vercel", "release", "launch", "host", "put online", "make it live",
    ),
    GoalCategory.MONITOR: (
        "monitor", "monitoring", "health", "health check", "status", "alert",
        "metric", "metrics", "uptime",
    ),
}
# Checked in this order; the first category with a hit wins, BUILD otherwise.
_GOAL_PRECEDENCE = (GoalCategory.REMEDIATE, GoalCategory.DEPLOY, GoalCategory.MONITOR)

# A change verb plus a code noun is build work, whatever ops words come with it
# ("add a health endpoint", "fix the crash in the login form").
BUILD_VERBS = ("build", "create", "add", "implement", "fix", "write", "refactor", "extend")
CODE_NOUNS = (
    "endpoint", "route", "component", "page", "form", "module", "feature",
    "function", "api", "button", "screen", "view", "handler", "test", "field",
    "validation", "library", "class", "widget", "dashboard",
)

DEPLOY_INTENT_KEYWORDS = (
    "deploy", "launch", "host", "put online", "run it", "make it live",
)
LOCAL_TARGET_KEYWORDS = ("locally", "docker", "local", "localhost")
CLOUD_TARGET_KEYWORDS = ("azure", "cloud", "production", "app service")


def _has_word(text: str, keyword: str) -> bool:
    """Whole-word match allowing plain inflections: 'deployed' hits 'deploy',
    'build' does not hit 'ui', 'download' does not hit 'down'."""
    pattern = rf"(?<!\w){re.escape(keyword)}(?:s|es|d|ed|ing)?(?!\w)"
    return re.search(pattern, text) is not None


def _any_word(text: str, keywords: Iterable[str]) -> bool:
    return any(_has_word(text, k) for k in keywords)


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(k in text for k in keywords)


def _task_text(task: Task) -> str:
    return f"{task.title} {task.description}".lower()


# ── Task classification ───────────────────────────────────

def is_existing_project(text: str) -> bool:
    return _any_word(text.lower(), EXISTING_PROJECT_KEYWORDS)


def is_new_project_goal(text: str) -> bool:
    if is_existing_project(text):
        return False
    return _contains_any(text.lower(), NEW_PROJECT_KEYWORDS)


def is_scaffold_task(task: Task) -> bool:
    text = _task_text(task)
    if _contains_any(text, SCAFFOLD_TOOL_KEYWORDS):
        return True
    if is_existing_project(text):
        return False
    if _contains_any(text, SCAFFOLD_KEYWORDS):
        return True
    return is_new_project_goal(text) and "customize" not in text


def is_customize_task(task: Task) -> bool:
    text = _task_text(task)
    if _contains_any(text, CUSTOMIZE_KEYWORDS):
        return True
    return any(p.search(text) for p in CUSTOMIZE_PATTERNS)


def is_container_task(task: Task) -> bool:
    return _any_word(_task_text(task), CONTAINER_KEYWORDS)


def is_deploy_task(task: Task) -> bool:
    return _any_word(_task_text(task), DEPLOY_KEYWORDS)


def classify_task(task: Task) -> TaskCategory:
    """Tag a task with its category.

    An explicit ``context["category"]`` wins; planners set it on the tasks
    they synthesize so wording in a description cannot reclassify them.
    """
    explicit = task.context.get("category")
    if explicit:
        try:
            return TaskCategory(str(explicit).lower())
        except ValueError:
            pass
    if task.kind == TaskKind.VERIFY:
        return TaskCategory.VERIFY
    if is_scaffold_task(task):
        return TaskCategory.SCAFFOLD
    if is_container_task(task):
        return TaskCategory.CONTAINER
    if is_deploy_task(task):
        return TaskCategory.DEPLOY
    if is_customize_task(task):
        return TaskCategory.CUSTOMIZE
    return TaskCategory.GENERAL


@dataclass(frozen=True)
class Sufficiency:
    sufficient: bool
    reason: str = ""
    required: Tuple[str, ...] = ()


def check_sufficiency(category: TaskCategory, record: InvocationRecord) -> Sufficiency:
    """Did the worker invoke what this category requires?"""
    rule = CATEGORY_RULES[category]
    if rule.required:
        if record.count(*rule.required) == 0:
            return Sufficiency(False, rule.insufficient_reason, tuple(sorted(rule.required)))
        return Sufficiency(True)
    if record.total == 0:
        return Sufficiency(False, rule.insufficient_reason)
    return Sufficiency(True)


def forced_capability(category: TaskCategory, available: Iterable[str]) -> Optional[str]:
    """First forcing candidate for ``category`` that the worker actually holds."""
    names = set(available)
    for name in CATEGORY_RULES[category].forced:
        if name in names:
            return name
    return None


def select_dev_specialty(task: Task) -> DevSpecialty:
    """Pick the implementer specialty from hints, keywords and file extensions."""
    hint = str(task.context.get("agent_type", "")).lower()
    if hint in (DevSpecialty.FRONTEND.value, DevSpecialty.BACKEND.value):
        return DevSpecialty(hint)

    text = _task_text(task)
    frontend = sum(1 for k in FRONTEND_KEYWORDS if _has_word(text, k))
    backend = sum(1 for k in BACKEND_KEYWORDS if _has_word(text, k))

    files = task.context.get("files") or []
    if isinstance(files, str):
        files = [files]
    for name in files:
        lowered = str(name).lower()
        if lowered.endswith((".tsx", ".jsx", ".css")):
            frontend += 2
        if "route" in lowered or "api" in lowered or "server" in lowered:
            backend += 2

    if frontend > backend and frontend >= 2:
        return DevSpecialty.FRONTEND
    if backend > frontend and backend >= 2:
        return DevSpecialty.BACKEND
    return DevSpecialty.GENERAL


# ── Goal classification ───────────────────────────────────

def is_build_request(text: str) -> bool:
    lowered = (text or "").lower()
    return _any_word(lowered, BUILD_VERBS) and _any_word(lowered, CODE_NOUNS)


def classify_goal(text: str) -> GoalCategory:
    lowered = (text or "").lower()
    if is_build_request(lowered) and not _any_word(lowered, GOAL_KEYWORDS[GoalCategory.DEPLOY]):
        return GoalCategory.BUILD
    for category in _GOAL_PRECEDENCE:
        if _any_word(lowered, GOAL_KEYWORDS[category]):
            return category
    return GoalCategory.BUILD


def has_deploy_intent(text: str) -> bool:
    return _any_word((text or "").lower(), DEPLOY_INTENT_KEYWORDS)


def detect_deploy_target(text: str) -> DeployTarget:
    """Local container runtime unless a named cloud target is requested."""
    lowered = (text or "").lower()
    if _any_word(lowered, LOCAL_TARGET_KEYWORDS):
        return DeployTarget.LOCAL
    if _any_word(lowered, CLOUD_TARGET_KEYWORDS):
        if "container" in lowered:
            return DeployTarget.AZURE_CONTAINERS
        return DeployTarget.AZURE_APPSERVICE
    return DeployTarget.LOCAL


# ── Project bootstrap helpers ─────────────────────────────

_PROJECT_NAME_PATTERNS = (
    re.compile(r"projectName[=:]\s*[\"']?([a-zA-Z0-9_-]+)[\"']?", re.IGNORECASE),
    re.compile(r"called\s+[\"']([a-zA-Z0-9_-]+)[\"']", re.IGNORECASE),
    re.compile(r"(?:named|name)\s+[\"']?([a-zA-Z0-9_-]+)[\"']?", re.IGNORECASE),
    re.compile(r"(?:in\s+(?:the\s+)?)?directory\s*[\"']?([a-zA-Z0-9_-]+)[\"']?", re.IGNORECASE),
    re.compile(r"(?:in\s+(?:the\s+)?)?folder\s*[\"']?([a-zA-Z0-9_-]+)[\"']?", re.IGNORECASE),
    re.compile(r"[\"']([a-zA-Z0-9_-]+)[\"']\s*(?:directory|folder|project)", re.IGNORECASE),
    re.compile(r"project\s+[\"']([a-zA-Z0-9_-]+)[\"']", re.IGNORECASE),
)


def extract_project_name(text: str, default: str = "my-project") -> str:
    for pattern in _PROJECT_NAME_PATTERNS:
        match = pattern.search(text or "")
        if match and match.group(1).lower() != "the":
            return match.group(1)
    return default


def detect_template_type(text: str, default: str = "fullstack") -> str:
    lowered = (text or "").lower()
    if "react" in lowered and "express" not in lowered and "backend" not in lowered:
        return "react"
    if "express" in lowered and "react" not in lowered and "frontend" not in lowered:
        return "express"
    return default


def extract_section(text: str, section: str) -> Optional[str]:
    """Bullet lines under a ``BACKEND:`` / ``FRONTEND:`` block, or None."""
    pattern = re.compile(
        rf"{section}[^:\n]*:\s*([\s\S]*?)(?=(?-i:FRONTEND|BACKEND|REQUIREMENTS:)|$)",
        re.IGNORECASE,
    )
    match = pattern.search(text or "")
    if not match:
        return None
    bullets = [
        line.strip() for line in match.group(1).splitlines()
        if line.strip().startswith("-")
    ]
    return "\n".join(bullets) or None
