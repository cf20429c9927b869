"""Immutable retry budgets and the per-goal shared context."""

import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from .tasks import Task


@dataclass(frozen=True)
class Budget:
    """A bounded counter passed by value: ``spend()`` returns a new budget.

    Used for both per-task attempts and per-goal iterations so the ceiling
    stays visible at every call site.
    """

    limit: int
    used: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def exhausted(self) -> bool:
        return self.used >= self.limit

    def spend(self) -> "Budget":
        if self.exhausted:
            raise ValueError(f"budget of {self.limit} already spent")
        return replace(self, used=self.used + 1)


# "Project created at: ./todo-app", "project created at `todo-app`"
_PROJECT_PATH_RE = re.compile(
    r"project\s+(?:created|generated)\s+at:?\s*[`'\"]?([\w./\\-]+)",
    re.IGNORECASE,
)


def extract_project_path(output: str) -> Optional[str]:
    """Find a generated project location announced in worker output."""
    if not output:
        return None
    match = _PROJECT_PATH_RE.search(output)
    if not match:
        return None
    path = match.group(1).rstrip(".,;")
    if len(path) > 1:
        path = path.rstrip("/")
    return path or None


@dataclass
class GoalContext:
    """Key/value facts discovered while a goal runs, injected into later tasks."""

    values: Dict[str, Any] = field(default_factory=dict)

    def learn_from_output(self, output: str) -> Optional[str]:
        """Capture the project path from scaffold output; returns it if new."""
        path = extract_project_path(output or "")
        if path and self.values.get("project_path") != path:
            self.values["project_path"] = path
            return path
        return None

    def apply_to(self, task: Task) -> None:
        for key, value in self.values.items():
            task.context.setdefault(key, value)
