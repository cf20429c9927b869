"""Task, result, plan and escalation records for the orchestration engine."""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..errors import InvalidTransitionError


class TaskKind(str, Enum):
    IMPLEMENT = "implement"
    VERIFY = "verify"
    FIX = "fix"
    REVIEW = "review"
    PLAN = "plan"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Execution-order role tags
ROLE_IMPLEMENT = "dev"
ROLE_VERIFY = "qa"

DEFAULT_MAX_ATTEMPTS = 3

# Forward-only lifecycle; blocked -> in_progress is the one sanctioned step back.
# failed -> in_progress is allowed while attempts remain (see Task.transition).
_ALLOWED_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED,
                         TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.BLOCKED},
    TaskStatus.BLOCKED: {TaskStatus.IN_PROGRESS, TaskStatus.FAILED},
    TaskStatus.FAILED: {TaskStatus.IN_PROGRESS},
    TaskStatus.COMPLETED: set(),
}


def generate_task_id() -> str:
    """Return a unique id of the form ``task_<ms-hex>_<rand6>``."""
    return f"task_{int(time.time() * 1000):x}_{uuid.uuid4().hex[:6]}"


@dataclass(frozen=True)
class TaskResult:
    """Outcome of one execution attempt."""

    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    files_modified: Tuple[str, ...] = ()
    tests_run: Optional[int] = None
    tests_passed: Optional[int] = None

    @property
    def reason(self) -> str:
        """Best human-readable explanation of this result."""
        return self.error or (self.output or "").strip()[:200] or "no output"


@dataclass
class Task:
    """A unit of work owned by exactly one Team."""

    id: str
    kind: TaskKind
    title: str
    description: str
    created_by: str
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    parent_id: Optional[str] = None
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    context: Dict[str, Any] = field(default_factory=dict)
    result: Optional[TaskResult] = None
    history: List[str] = field(default_factory=list)

    def can_retry(self) -> bool:
        return (
            self.status in (TaskStatus.FAILED, TaskStatus.BLOCKED)
            and self.attempts < self.max_attempts
        )

    def is_terminal(self) -> bool:
        if self.status == TaskStatus.COMPLETED:
            return True
        return self.status == TaskStatus.FAILED and self.attempts >= self.max_attempts

    def transition(self, new_status: TaskStatus) -> None:
        """Move to ``new_status`` or raise InvalidTransitionError."""
        if new_status == self.status:
            return
        allowed = _ALLOWED_TRANSITIONS[self.status]
        if new_status not in allowed or (
            self.status == TaskStatus.FAILED and not self.can_retry()
        ):
            raise InvalidTransitionError(self.id, self.status.value, new_status.value)
        self.status = new_status

    def begin_attempt(self) -> int:
        """Count a new attempt and mark the task in progress.

        Returns the 1-based attempt number.
        """
        if self.attempts >= self.max_attempts:
            raise InvalidTransitionError(self.id, self.status.value, "attempt beyond ceiling")
        self.transition(TaskStatus.IN_PROGRESS)
        self.attempts += 1
        return self.attempts

    def record(self, result: TaskResult, note: str = "") -> None:
        """Attach an attempt result and append it to the attempt history."""
        self.result = result
        label = "ok" if result.success else "fail"
        entry = f"attempt {self.attempts}/{self.max_attempts} {label}: {note or result.reason}"
        self.history.append(entry)


def create_task(
    kind: TaskKind,
    title: str,
    description: str,
    created_by: str,
    priority: TaskPriority = TaskPriority.MEDIUM,
    parent_id: Optional[str] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    context: Optional[Dict[str, Any]] = None,
) -> Task:
    return Task(
        id=generate_task_id(),
        kind=kind,
        title=title.strip(),
        description=description.strip(),
        created_by=created_by,
        priority=priority,
        parent_id=parent_id,
        max_attempts=max(1, max_attempts),
        context=dict(context or {}),
    )


@dataclass
class PlanBreakdown:
    """Planner output: task lists plus an explicit ``(role, task_id)`` order."""

    implementation_tasks: List[Task] = field(default_factory=list)
    verification_tasks: List[Task] = field(default_factory=list)
    execution_order: List[Tuple[str, str]] = field(default_factory=list)

    def __post_init__(self):
        known = {t.id for t in self.all_tasks()}
        self.execution_order = [
            (role, tid) for role, tid in self.execution_order if tid in known
        ]
        if not self.execution_order:
            self.execution_order = self.default_order()

    def default_order(self) -> List[Tuple[str, str]]:
        """All implementation tasks, then all verification tasks."""
        return (
            [(ROLE_IMPLEMENT, t.id) for t in self.implementation_tasks]
            + [(ROLE_VERIFY, t.id) for t in self.verification_tasks]
        )

    def all_tasks(self) -> List[Task]:
        return list(self.implementation_tasks) + list(self.verification_tasks)

    def get(self, task_id: str) -> Optional[Task]:
        for task in self.all_tasks():
            if task.id == task_id:
                return task
        return None


@dataclass
class EscalationRecord:
    """Unresolved failure travelling up the hierarchy by return value."""

    source_id: str
    reason: str
    history: List[str] = field(default_factory=list)

    def wrap(self, source_id: str, note: str = "") -> "EscalationRecord":
        """Return a copy re-addressed to an outer level, keeping the innermost reason."""
        history = list(self.history)
        if note:
            history.append(note)
        return EscalationRecord(source_id=source_id, reason=self.reason, history=history)


@dataclass
class InvocationRecord:
    """Per-attempt tally of capability invocations made by a worker."""

    by_capability: Dict[str, int] = field(default_factory=dict)
    successful: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return sum(self.by_capability.values())

    def record(self, name: str, success: bool) -> None:
        self.by_capability[name] = self.by_capability.get(name, 0) + 1
        if success:
            self.successful += 1
        else:
            self.failed += 1

    def count(self, *names: str) -> int:
        """Total invocations of any of ``names``."""
        return sum(self.by_capability.get(n, 0) for n in names)
