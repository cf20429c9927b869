"""Team-level orchestration: tasks, workers, retries, planning and verification."""

from .tasks import (
    EscalationRecord,
    InvocationRecord,
    PlanBreakdown,
    Task,
    TaskKind,
    TaskPriority,
    TaskResult,
    TaskStatus,
    create_task,
)
from .context import Budget, GoalContext
from .board import TaskBoard
from .verifier import VerificationVerdict, verify
from .worker import Worker, WorkerReply
from .roles import RoleSpec, WorkerFactory
from .retry import TaskRunner
from .planner import Planner
from .team import Team, WorkflowResult
from .incidents import IncidentManager, IncidentState, RecoveryKind, Runbook

__all__ = [
    "EscalationRecord",
    "InvocationRecord",
    "PlanBreakdown",
    "Task",
    "TaskKind",
    "TaskPriority",
    "TaskResult",
    "TaskStatus",
    "create_task",
    "Budget",
    "GoalContext",
    "TaskBoard",
    "VerificationVerdict",
    "verify",
    "Worker",
    "WorkerReply",
    "RoleSpec",
    "WorkerFactory",
    "TaskRunner",
    "Planner",
    "Team",
    "WorkflowResult",
    "IncidentManager",
    "IncidentState",
    "RecoveryKind",
    "Runbook",
]
