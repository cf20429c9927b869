"""Team: plan, implement, verify, iterate until verified or out of iterations."""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

from ..docs import DocsStore
from ..errors import DocsPathError, PlanningError
from ..logger import get_logger
from .board import TaskBoard
from .categories import DevSpecialty, select_dev_specialty
from .context import Budget, GoalContext
from .planner import Planner
from .retry import AttemptHook, TaskRunner
from .tasks import (
    ROLE_IMPLEMENT,
    ROLE_VERIFY,
    EscalationRecord,
    PlanBreakdown,
    Task,
    TaskKind,
    TaskPriority,
    TaskResult,
    TaskStatus,
    create_task,
)
from .worker import Worker

if TYPE_CHECKING:
    from ..config import OrchestrationConfig
    from .roles import WorkerFactory

_log = get_logger(__name__)

COMPLETED_LOG_PAGE = "tasks/completed/log.md"
DEFAULT_MAX_ITERATIONS = 5


@dataclass
class WorkflowResult:
    """Outcome of one goal run by a Team."""

    success: bool
    task: Task
    breakdown: Optional[PlanBreakdown] = None
    dev_results: List[TaskResult] = field(default_factory=list)
    qa_results: List[TaskResult] = field(default_factory=list)
    iterations: int = 0
    escalation: Optional[EscalationRecord] = None

    @property
    def escalated(self) -> bool:
        return self.escalation is not None

    @property
    def output(self) -> str:
        if self.escalation is not None:
            return self.escalation.reason
        outputs = [r.output for r in self.dev_results + self.qa_results if r.success and r.output]
        return outputs[-1] if outputs else "Done."


class Team:
    """One planner, implementers keyed by specialty and one verifier.

    The team owns its TaskBoard; every task it creates, including fix and
    re-verification tasks, lands there and is never removed.
    """

    def __init__(self, name: str, planner: Planner, implementers: Dict[str, Worker],
                 verifier: Worker, docs: Optional[DocsStore] = None,
                 max_iterations: int = DEFAULT_MAX_ITERATIONS,
                 on_attempt: Optional[AttemptHook] = None):
        if ROLE_IMPLEMENT not in implementers:
            raise ValueError(f"Team {name} needs a '{ROLE_IMPLEMENT}' implementer")
        self.name = name
        self.planner = planner
        self.implementers = implementers
        self.verifier = verifier
        self.docs = docs
        self.max_iterations = max(1, max_iterations)
        self.on_attempt = on_attempt
        self.board = TaskBoard()
        self.busy = False

    @classmethod
    def from_factory(cls, name: str, factory: "WorkerFactory",
                     orchestration: "OrchestrationConfig",
                     docs: Optional[DocsStore] = None,
                     on_attempt: Optional[AttemptHook] = None) -> "Team":
        planner = Planner(
            factory.create("pm"), docs=docs, design_docs=orchestration.design_docs,
            max_attempts=orchestration.max_attempts,
        )
        implementers = {
            role: factory.create(role)
            for role in (ROLE_IMPLEMENT, DevSpecialty.FRONTEND.value, DevSpecialty.BACKEND.value)
            if role in factory.roles
        }
        return cls(name, planner, implementers, factory.create(ROLE_VERIFY), docs=docs,
                   max_iterations=orchestration.max_iterations, on_attempt=on_attempt)

    def implementer_for(self, task: Task) -> Worker:
        specialty = select_dev_specialty(task)
        if specialty == DevSpecialty.GENERAL:
            return self.implementers[ROLE_IMPLEMENT]
        return self.implementers.get(specialty.value, self.implementers[ROLE_IMPLEMENT])

    async def execute_goal(self, title: str, description: str = "",
                           priority: TaskPriority = TaskPriority.MEDIUM,
                           context: Optional[dict] = None) -> WorkflowResult:
        if self.busy:
            raise RuntimeError(f"Team {self.name} is already running a goal")
        self.busy = True
        try:
            return await self._execute(title, description or title, priority, context)
        finally:
            self.busy = False

    async def _execute(self, title: str, description: str, priority: TaskPriority,
                       context: Optional[dict]) -> WorkflowResult:
        goal = self.board.add_task(create_task(
            TaskKind.PLAN, title, description, self.name, priority=priority,
            max_attempts=1, context=context,
        ))
        goal.begin_attempt()
        _log.info("[%s] Goal %s: %s", self.name, goal.id, goal.title)

        try:
            breakdown = await self.planner.plan(goal)
        except PlanningError as e:
            return self._escalate(goal, f"Failed to plan task: {e}", WorkflowResult(False, goal))

        self.board.add_tasks(breakdown.all_tasks())
        outcome = WorkflowResult(False, goal, breakdown=breakdown)
        shared = GoalContext()
        impl_queue = self._ordered(breakdown, ROLE_IMPLEMENT)
        verify_queue = self._ordered(breakdown, ROLE_VERIFY)
        targets = self._verification_targets(breakdown)

        budget = Budget(limit=self.max_iterations)
        while not budget.exhausted:
            budget = budget.spend()
            outcome.iterations = budget.used
            _log.info("[%s] Iteration %d/%d: %d to implement, %d to verify", self.name,
                      budget.used, budget.limit, len(impl_queue), len(verify_queue))

            for task in impl_queue:
                result = await self._run(task, self.implementer_for(task), shared)
                outcome.dev_results.append(result)
                if not result.success:
                    return self._escalate(goal, (
                        f'Task "{task.title}" failed after {task.attempts} attempts. '
                        f"Last error: {result.error}"
                    ), outcome)

            next_impl: List[Task] = []
            next_verify: List[Task] = []
            for check in verify_queue:
                result = await self._run(check, self.verifier, shared)
                outcome.qa_results.append(result)
                if not result.success:
                    fix, recheck = self._follow_up(check, result, targets.get(check.id))
                    targets[recheck.id] = fix.parent_id
                    next_impl.append(fix)
                    next_verify.append(recheck)

            if not next_verify:
                goal.transition(TaskStatus.COMPLETED)
                outcome.success = True
                _log.info("[%s] Goal %s verified after %d iteration(s)",
                          self.name, goal.id, outcome.iterations)
                return outcome

            _log.info("[%s] %d verification task(s) failed, scheduling fixes",
                      self.name, len(next_verify))
            impl_queue, verify_queue = next_impl, next_verify

        return self._escalate(
            goal, f"Max iterations ({self.max_iterations}) reached without completing all tasks",
            outcome,
        )

    async def _run(self, task: Task, worker: Worker, shared: GoalContext) -> TaskResult:
        shared.apply_to(task)
        result = await TaskRunner(worker, self.on_attempt).run(task)
        if result.success:
            learned = shared.learn_from_output(result.output or "")
            if learned:
                _log.info("[%s] Project path for later tasks: %s", self.name, learned)
            self._log_completion(task, worker, result)
        return result

    @staticmethod
    def _ordered(breakdown: PlanBreakdown, role: str) -> List[Task]:
        return [breakdown.get(tid) for r, tid in breakdown.execution_order if r == role]

    @staticmethod
    def _verification_targets(breakdown: PlanBreakdown) -> Dict[str, Optional[str]]:
        """Map each verification task to the implementation task it checks.

        That is the last implementation task ordered before it, or the first
        implementation task when verification is ordered first.
        """
        first = breakdown.implementation_tasks[0].id if breakdown.implementation_tasks else None
        targets: Dict[str, Optional[str]] = {}
        last_impl = None
        for role, tid in breakdown.execution_order:
            if role == ROLE_IMPLEMENT:
                last_impl = tid
            else:
                targets[tid] = last_impl or first
        return targets

    def _follow_up(self, check: Task, result: TaskResult,
                   target_id: Optional[str]) -> Tuple[Task, Task]:
        feedback = result.error or result.reason
        target = self.board.get_task(target_id) if target_id else None
        context = {"qa_task_id": check.id, "qa_feedback": feedback}
        if target is not None and target.context.get("agent_type"):
            context["agent_type"] = target.context["agent_type"]

        fix = self.board.add_task(create_task(
            TaskKind.FIX, f"Fix issues from: {check.title}",
            f"Verification failed with:\n{feedback}\n\nOriginal check:\n{check.description}",
            self.name, priority=check.priority,
            parent_id=target.id if target is not None else check.parent_id,
            max_attempts=check.max_attempts, context=context,
        ))
        recheck = self.board.add_task(create_task(
            TaskKind.VERIFY, check.title, check.description, self.name,
            priority=check.priority, parent_id=check.id, max_attempts=check.max_attempts,
        ))
        return fix, recheck

    def _escalate(self, goal: Task, reason: str, outcome: WorkflowResult) -> WorkflowResult:
        _log.warning("[%s] Escalating %s: %s", self.name, goal.id, reason)
        history = [
            f"{t.id} {t.title}: {entry}"
            for t in self.board.get_all_tasks() for entry in t.history
        ]
        goal.record(TaskResult(False, error=reason))
        goal.transition(TaskStatus.FAILED)
        outcome.success = False
        outcome.escalation = EscalationRecord(source_id=goal.id, reason=reason, history=history)
        return outcome

    def _log_completion(self, task: Task, worker: Worker, result: TaskResult) -> None:
        if self.docs is None:
            return
        lines = [
            f"## {task.title}",
            "",
            f"- **Task**: {task.id} ({task.kind.value})",
            f"- **Completed by**: {worker.name}",
            f"- **Attempts**: {task.attempts}",
            f"- **Completed at**: {time.strftime('%Y-%m-%dT%H:%M:%S')}",
        ]
        if result.files_modified:
            lines.append(f"- **Files**: {', '.join(result.files_modified)}")
        if result.tests_run is not None:
            lines.append(f"- **Tests**: {result.tests_passed or 0}/{result.tests_run} passed")
        try:
            self.docs.append_page(COMPLETED_LOG_PAGE, "\n".join(lines))
        except (OSError, DocsPathError) as e:
            _log.warning("[%s] Could not append completion log: %s", self.name, e)
