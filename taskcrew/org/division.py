"""Division: classify a goal and dispatch it to the unit that owns that kind of work."""

import asyncio
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, FrozenSet, Iterable, Optional

from ..config import OrchestrationConfig
from ..docs import DocsStore
from ..logger import get_logger
from ..crew.categories import (
    DEPLOY_TARGET_CAPABILITIES,
    DEPLOY_TARGET_CATEGORY,
    GoalCategory,
    classify_goal,
    detect_deploy_target,
)
from ..crew.incidents import (
    IncidentManager,
    IncidentState,
    RecoveryKind,
    Severity,
    default_runbooks,
)
from ..crew.retry import AttemptHook, TaskRunner
from ..crew.roles import WorkerFactory
from ..crew.tasks import EscalationRecord, Task, TaskKind, TaskPriority, TaskResult, create_task
from ..crew.team import Team, WorkflowResult

_log = get_logger(__name__)

_SERVICE_RE = re.compile(r"\b(?:service|app|api|server)\s+[\"'`]?([a-z0-9][\w.-]*)", re.IGNORECASE)
_URL_RE = re.compile(r"https?://[^\s\"'`]+")


@dataclass
class GoalOutcome:
    """What a unit hands back to its company for one goal."""

    success: bool
    output: str
    category: GoalCategory
    unit: str = ""
    escalation: Optional[EscalationRecord] = None
    workflow: Optional[WorkflowResult] = None

    @property
    def escalation_reason(self) -> Optional[str]:
        return self.escalation.reason if self.escalation else None


def _title(goal: str, prefix: str = "") -> str:
    first_line = goal.strip().splitlines()[0] if goal.strip() else goal
    title = f"{prefix}{first_line}"
    return title if len(title) <= 80 else title[:77] + "..."


def _service_name(goal: str) -> str:
    match = _SERVICE_RE.search(goal)
    return match.group(1).rstrip(".,;") if match else "application"


def _severity(goal: str) -> Severity:
    lowered = goal.lower()
    if "critical" in lowered or "outage" in lowered:
        return Severity.CRITICAL
    if "down" in lowered or "unreachable" in lowered:
        return Severity.HIGH
    return Severity.MEDIUM


class Division:
    """A named unit handling a fixed set of goal categories.

    Goals run one at a time per division; the team owned by a build division
    never sees two goals at once.
    """

    def __init__(self, name: str, factory: WorkerFactory,
                 orchestration: Optional[OrchestrationConfig] = None,
                 categories: Iterable[GoalCategory] = tuple(GoalCategory),
                 docs: Optional[DocsStore] = None,
                 team: Optional[Team] = None,
                 incidents: Optional[IncidentManager] = None,
                 on_attempt: Optional[AttemptHook] = None):
        self.name = name
        self.factory = factory
        self.orchestration = orchestration or OrchestrationConfig()
        self.categories: FrozenSet[GoalCategory] = frozenset(categories)
        self.docs = docs
        self.on_attempt = on_attempt
        self._team = team
        self.incidents = incidents or IncidentManager(
            name=f"{name}-incidents",
            max_recovery_attempts=self.orchestration.max_recovery_attempts,
            runbooks=default_runbooks(),
        )
        self._lock = asyncio.Lock()
        self._handlers: Dict[GoalCategory, Callable[[str], Awaitable[GoalOutcome]]] = {
            GoalCategory.BUILD: self._build,
            GoalCategory.DEPLOY: self._deploy,
            GoalCategory.MONITOR: self._monitor,
            GoalCategory.REMEDIATE: self._remediate,
        }

    @property
    def team(self) -> Team:
        if self._team is None:
            self._team = Team.from_factory(f"{self.name}-team", self.factory,
                                           self.orchestration, docs=self.docs,
                                           on_attempt=self.on_attempt)
        return self._team

    def handles(self, category: GoalCategory) -> bool:
        return category in self.categories

    async def execute(self, goal: str, category: Optional[GoalCategory] = None) -> GoalOutcome:
        category = category or classify_goal(goal)
        if not self.handles(category):
            raise ValueError(f"Division {self.name} does not handle {category.value} goals")
        _log.info("[%s] %s goal: %s", self.name, category.value, _title(goal))
        async with self._lock:
            outcome = await self._handlers[category](goal)
        outcome.unit = self.name
        return outcome

    # ── build ──

    async def _build(self, goal: str) -> GoalOutcome:
        workflow = await self.team.execute_goal(_title(goal), goal)
        return GoalOutcome(
            success=workflow.success, output=workflow.output, category=GoalCategory.BUILD,
            escalation=workflow.escalation, workflow=workflow,
        )

    # ── deploy / monitor ──

    async def _run_single(self, role: str, task: Task, category: GoalCategory,
                          restrict_to: Optional[tuple] = None) -> GoalOutcome:
        worker = self.factory.create(role, restrict_to=restrict_to)
        result = await TaskRunner(worker, self.on_attempt).run(task)
        if result.success:
            return GoalOutcome(True, result.output or "", category)
        _log.warning("[%s] %s failed: %s", self.name, task.title, result.error)
        return GoalOutcome(
            False, result.output or "", category,
            escalation=EscalationRecord(task.id, result.error or "failed", list(task.history)),
        )

    async def _deploy(self, goal: str) -> GoalOutcome:
        target = detect_deploy_target(goal)
        capabilities = DEPLOY_TARGET_CAPABILITIES[target]
        task = create_task(
            TaskKind.IMPLEMENT, _title(goal, "Deploy: "),
            f"{goal}\n\nDeployment target: {target.value}. "
            f"Use only these capabilities: {', '.join(capabilities)}.",
            self.name, priority=TaskPriority.HIGH,
            max_attempts=self.orchestration.max_attempts,
            context={"deploy_target": target.value,
                     "category": DEPLOY_TARGET_CATEGORY[target].value},
        )
        _log.info("[%s] Deploy target %s", self.name, target.value)
        return await self._run_single("devops", task, GoalCategory.DEPLOY, capabilities)

    async def _monitor(self, goal: str) -> GoalOutcome:
        task = create_task(
            TaskKind.IMPLEMENT, _title(goal, "Check: "),
            f"{goal}\n\nCall check_health for each endpoint and report the status codes.",
            self.name, max_attempts=self.orchestration.max_attempts,
            context={"category": "general"},
        )
        return await self._run_single("monitor", task, GoalCategory.MONITOR)

    # ── remediate ──

    async def _remediate(self, goal: str) -> GoalOutcome:
        service = _service_name(goal)
        incident = self.incidents.create_incident(_title(goal), _severity(goal), [service])
        self.incidents.update_state(incident.id, IncidentState.ACKNOWLEDGED)
        self.incidents.update_state(incident.id, IncidentState.INVESTIGATING)
        runbook = self.incidents.find_runbook(goal)
        url = _URL_RE.search(goal)

        last: Optional[TaskResult] = None
        while not self.incidents.should_escalate(incident.id):
            action = self.incidents.next_recovery_action(incident.id)
            if action == RecoveryKind.ESCALATE:
                break
            self.incidents.update_state(incident.id, IncidentState.RECOVERING, action.value)
            lines = [
                f"Incident {incident.id}: {incident.title}",
                f"Affected service: {service}",
                f"Recovery action: {action.value} the service, then confirm it is healthy.",
            ]
            if url:
                lines.append(f"Health endpoint: {url.group(0)}")
            if runbook is not None:
                lines.append(runbook.as_prompt())
            task = create_task(
                TaskKind.IMPLEMENT, f"{action.value.capitalize()} {service}",
                "\n".join(lines), self.name, priority=TaskPriority.CRITICAL, max_attempts=1,
                context={"incident_id": incident.id, "category": "general"},
            )
            worker = self.factory.create("incident")
            last = await TaskRunner(worker, self.on_attempt).run(task)
            self.incidents.record_recovery(
                incident.id, action, service, last.success,
                "" if last.success else (last.error or ""),
            )
            if last.success:
                self.incidents.update_state(incident.id, IncidentState.RESOLVED,
                                            f"{action.value} succeeded")
                return GoalOutcome(
                    True, f"Incident {incident.id} resolved by {action.value}: {last.output or ''}",
                    GoalCategory.REMEDIATE,
                )

        attempts = len(incident.recovery_actions)
        reason = (
            f"Automated recovery failed for {service} after {attempts} action(s)"
            + (f": {last.error}" if last is not None and last.error else "")
        )
        self.incidents.update_state(incident.id, IncidentState.ESCALATED, reason)
        _log.warning("[%s] %s escalated: %s", self.name, incident.id, reason)
        return GoalOutcome(
            False, reason, GoalCategory.REMEDIATE,
            escalation=EscalationRecord(incident.id, reason, incident.history()),
        )
