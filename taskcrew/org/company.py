"""Company: owns the divisions for one business domain and reports on their goals."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..config import OrchestrationConfig
from ..docs import DocsStore
from ..errors import DocsPathError
from ..logger import get_logger
from ..crew.categories import GoalCategory, classify_goal
from ..crew.retry import AttemptHook
from ..crew.roles import WorkerFactory
from ..crew.tasks import EscalationRecord
from .division import Division, GoalOutcome

_log = get_logger(__name__)

GOALS_LOG_PAGE = "executive/goals-log.md"


class UnitStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


@dataclass
class GoalRecord:
    goal: str
    category: GoalCategory
    unit: str
    success: bool
    output: str
    escalation_reason: Optional[str] = None
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    @property
    def status(self) -> str:
        if self.success:
            return "succeeded"
        return "escalated" if self.escalation_reason else "failed"


@dataclass
class CompanyReport:
    company_id: str
    name: str
    domain: str
    units: Dict[str, UnitStatus]
    goals: List[GoalRecord]

    @property
    def total(self) -> int:
        return len(self.goals)

    @property
    def succeeded(self) -> int:
        return sum(1 for g in self.goals if g.success)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    def as_row(self) -> dict:
        return {
            "name": self.name, "domain": self.domain,
            "units": [f"{n} ({s.value})" for n, s in self.units.items()],
            "total": self.total, "succeeded": self.succeeded, "failed": self.failed,
        }

    def to_markdown(self) -> str:
        lines = [
            f"## {self.name} ({self.domain})",
            "",
            f"Goals: {self.total} total, {self.succeeded} succeeded, {self.failed} failed",
            "",
        ]
        for record in self.goals:
            lines.append(f"- [{record.status}] {record.unit}: {record.goal[:80]}")
        return "\n".join(lines)


class Company:
    """Keyed collection of units. A unit added here is never handed to another
    company, and an archived unit stays archived."""

    def __init__(self, company_id: str, name: str, domain: str,
                 docs: Optional[DocsStore] = None):
        self.id = company_id
        self.name = name
        self.domain = domain
        self.docs = docs
        self.units: Dict[str, Division] = {}
        self.unit_status: Dict[str, UnitStatus] = {}
        self.goals: List[GoalRecord] = []
        self.created_at = time.time()

    @classmethod
    def standard(cls, company_id: str, name: str, domain: str, factory: WorkerFactory,
                 orchestration: Optional[OrchestrationConfig] = None,
                 docs: Optional[DocsStore] = None,
                 on_attempt: Optional[AttemptHook] = None) -> "Company":
        """Engineering builds; operations deploys, monitors and remediates."""
        company = cls(company_id, name, domain, docs=docs)
        company.add_unit(Division(
            "engineering", factory, orchestration, categories=(GoalCategory.BUILD,),
            docs=docs, on_attempt=on_attempt,
        ))
        company.add_unit(Division(
            "operations", factory, orchestration,
            categories=(GoalCategory.DEPLOY, GoalCategory.MONITOR, GoalCategory.REMEDIATE),
            docs=docs, on_attempt=on_attempt,
        ))
        return company

    def add_unit(self, unit: Division) -> Division:
        if unit.name in self.units:
            raise ValueError(f"Company {self.name} already has a unit named {unit.name}")
        self.units[unit.name] = unit
        self.unit_status[unit.name] = UnitStatus.ACTIVE
        _log.info("[%s] Added unit %s", self.name, unit.name)
        return unit

    def set_unit_status(self, name: str, status: UnitStatus) -> None:
        if name not in self.units:
            raise KeyError(f"Unknown unit: {name}")
        current = self.unit_status[name]
        if current == UnitStatus.ARCHIVED and status != UnitStatus.ARCHIVED:
            raise ValueError(f"Unit {name} is archived")
        self.unit_status[name] = status
        _log.info("[%s] Unit %s: %s -> %s", self.name, name, current.value, status.value)

    def pause_unit(self, name: str) -> None:
        self.set_unit_status(name, UnitStatus.PAUSED)

    def resume_unit(self, name: str) -> None:
        self.set_unit_status(name, UnitStatus.ACTIVE)

    def archive_unit(self, name: str) -> None:
        self.set_unit_status(name, UnitStatus.ARCHIVED)

    def unit_for(self, category: GoalCategory) -> Optional[Division]:
        for name, unit in self.units.items():
            if self.unit_status[name] == UnitStatus.ACTIVE and unit.handles(category):
                return unit
        return None

    async def execute_goal(self, goal: str,
                           category: Optional[GoalCategory] = None) -> GoalOutcome:
        """Run ``goal`` on the first active unit for its category; ``category``
        skips classification when the caller already knows what kind of work it is."""
        category = category or classify_goal(goal)
        unit = self.unit_for(category)
        record = GoalRecord(goal=goal, category=category,
                            unit=unit.name if unit else "-", success=False, output="")

        if unit is None:
            reason = f"No active unit in {self.name} handles {category.value} goals"
            _log.warning("[%s] %s", self.name, reason)
            outcome = GoalOutcome(False, reason, category,
                                  escalation=EscalationRecord(self.id, reason))
        else:
            outcome = await unit.execute(goal, category)
            if outcome.escalation is not None:
                outcome.escalation = outcome.escalation.wrap(
                    self.id, f"{self.name}/{unit.name}: {category.value} goal escalated",
                )

        record.success = outcome.success
        record.output = outcome.output
        record.escalation_reason = outcome.escalation_reason
        record.finished_at = time.time()
        self.goals.append(record)
        self._log_goal(record)
        return outcome

    def report(self) -> CompanyReport:
        return CompanyReport(self.id, self.name, self.domain,
                             dict(self.unit_status), list(self.goals))

    def _log_goal(self, record: GoalRecord) -> None:
        if self.docs is None:
            return
        elapsed = (record.finished_at or time.time()) - record.started_at
        lines = [
            f"## {record.goal.strip().splitlines()[0][:80] if record.goal.strip() else '(empty)'}",
            "",
            f"- **Company**: {self.name}",
            f"- **Domain**: {self.domain}",
            f"- **Unit**: {record.unit} ({record.category.value})",
            f"- **Status**: {record.status}",
            f"- **Duration**: {elapsed:.1f}s",
        ]
        if record.escalation_reason:
            lines.append(f"- **Escalation**: {record.escalation_reason}")
        try:
            self.docs.append_page(GOALS_LOG_PAGE, "\n".join(lines))
        except (OSError, DocsPathError) as e:
            _log.warning("[%s] Could not append goals log: %s", self.name, e)
