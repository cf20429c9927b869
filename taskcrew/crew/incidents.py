"""Incident records, recovery policy and runbooks for the remediation loop."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..logger import get_logger

_log = get_logger(__name__)

DEFAULT_MAX_RECOVERY_ATTEMPTS = 3
MAX_RESTARTS = 2
MAX_ROLLBACKS = 1


class IncidentState(str, Enum):
    DETECTED = "detected"
    ACKNOWLEDGED = "acknowledged"
    INVESTIGATING = "investigating"
    RECOVERING = "recovering"
    RESOLVED = "resolved"
    ESCALATED = "escalated"


class RecoveryKind(str, Enum):
    RESTART = "restart"
    ROLLBACK = "rollback"
    SCALE = "scale"
    ESCALATE = "escalate"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class IncidentEvent:
    action: str
    actor: str
    details: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass
class RecoveryAction:
    kind: RecoveryKind
    target: str
    success: bool
    details: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass
class Incident:
    id: str
    title: str
    severity: Severity
    affected_services: List[str]
    state: IncidentState = IncidentState.DETECTED
    timeline: List[IncidentEvent] = field(default_factory=list)
    recovery_actions: List[RecoveryAction] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    resolved_at: Optional[float] = None
    escalated_at: Optional[float] = None

    def failed_count(self, kind: RecoveryKind) -> int:
        return sum(1 for a in self.recovery_actions if a.kind == kind and not a.success)

    @property
    def duration(self) -> float:
        return (self.resolved_at or time.time()) - self.created_at

    def history(self) -> List[str]:
        return [f"{e.action}: {e.details}" if e.details else e.action for e in self.timeline]


@dataclass
class RunbookStep:
    name: str
    action: str
    params: Dict[str, str] = field(default_factory=dict)
    continue_on_failure: bool = False


@dataclass
class Runbook:
    name: str
    description: str
    triggers: List[str]
    steps: List[RunbookStep] = field(default_factory=list)

    def as_prompt(self) -> str:
        lines = [f"Runbook: {self.name} ({self.description})"]
        for n, step in enumerate(self.steps, 1):
            suffix = " (continue on failure)" if step.continue_on_failure else ""
            lines.append(f"{n}. {step.name}: {step.action}{suffix}")
        return "\n".join(lines)


def default_runbooks() -> List[Runbook]:
    return [
        Runbook(
            name="service-down",
            description="Service not responding to health checks",
            triggers=["down", "unhealthy", "not responding", "unreachable"],
            steps=[
                RunbookStep("confirm", "check_health against the service URL"),
                RunbookStep("recover", "apply the requested recovery action"),
                RunbookStep("verify", "check_health again and report the status code"),
            ],
        ),
        Runbook(
            name="crash-loop",
            description="Container keeps restarting",
            triggers=["crash", "crashing", "restarting", "oom"],
            steps=[
                RunbookStep("inspect", "run_command to read recent container logs",
                            continue_on_failure=True),
                RunbookStep("recover", "apply the requested recovery action"),
                RunbookStep("verify", "check_health and report the status code"),
            ],
        ),
    ]


class IncidentManager:
    """Tracks incidents and decides the next recovery action.

    Policy: restart until two restarts have failed, then one rollback, then
    escalate. ``should_escalate`` also trips once the total number of recorded
    actions reaches ``max_recovery_attempts``.
    """

    def __init__(self, name: str = "incident",
                 max_recovery_attempts: int = DEFAULT_MAX_RECOVERY_ATTEMPTS,
                 runbooks: Optional[List[Runbook]] = None):
        self.name = name
        self.max_recovery_attempts = max_recovery_attempts
        self.incidents: Dict[str, Incident] = {}
        self.runbooks: Dict[str, Runbook] = {}
        self._counter = 0
        for runbook in runbooks or []:
            self.register_runbook(runbook)

    def create_incident(self, title: str, severity: Severity = Severity.MEDIUM,
                        affected_services: Optional[List[str]] = None) -> Incident:
        self._counter += 1
        incident = Incident(
            id=f"INC-{self._counter:05d}", title=title, severity=severity,
            affected_services=list(affected_services or []),
        )
        incident.timeline.append(IncidentEvent("created", self.name, f"Incident created: {title}"))
        self.incidents[incident.id] = incident
        _log.info("Created incident %s: %s", incident.id, title)
        return incident

    def get(self, incident_id: str) -> Incident:
        if incident_id not in self.incidents:
            raise KeyError(f"Unknown incident: {incident_id}")
        return self.incidents[incident_id]

    def update_state(self, incident_id: str, state: IncidentState, details: str = "") -> Incident:
        incident = self.get(incident_id)
        old = incident.state
        incident.state = state
        note = f"{old.value} -> {state.value}" + (f": {details}" if details else "")
        incident.timeline.append(IncidentEvent("state_change", self.name, note))
        if state == IncidentState.RESOLVED:
            incident.resolved_at = time.time()
        elif state == IncidentState.ESCALATED:
            incident.escalated_at = time.time()
        return incident

    def record_recovery(self, incident_id: str, kind: RecoveryKind, target: str,
                        success: bool, details: str = "") -> RecoveryAction:
        incident = self.get(incident_id)
        action = RecoveryAction(kind, target, success, details)
        incident.recovery_actions.append(action)
        outcome = "success" if success else "failed"
        note = f"{kind.value} on {target}: {outcome}" + (f" - {details}" if details else "")
        incident.timeline.append(IncidentEvent(f"recovery_{kind.value}", self.name, note))
        return action

    def next_recovery_action(self, incident_id: str) -> RecoveryKind:
        incident = self.get(incident_id)
        if incident.failed_count(RecoveryKind.RESTART) < MAX_RESTARTS:
            return RecoveryKind.RESTART
        if incident.failed_count(RecoveryKind.ROLLBACK) < MAX_ROLLBACKS:
            return RecoveryKind.ROLLBACK
        return RecoveryKind.ESCALATE

    def should_escalate(self, incident_id: str) -> bool:
        incident = self.get(incident_id)
        if len(incident.recovery_actions) >= self.max_recovery_attempts:
            return True
        return (incident.failed_count(RecoveryKind.RESTART) >= MAX_RESTARTS
                and incident.failed_count(RecoveryKind.ROLLBACK) >= MAX_ROLLBACKS)

    def register_runbook(self, runbook: Runbook) -> None:
        self.runbooks[runbook.name] = runbook

    def get_runbook(self, name: str) -> Optional[Runbook]:
        return self.runbooks.get(name)

    def find_runbook(self, trigger: str) -> Optional[Runbook]:
        """First runbook whose trigger list names ``trigger`` or appears in it."""
        lowered = trigger.lower()
        for runbook in self.runbooks.values():
            for t in runbook.triggers:
                if t.lower() == lowered or t.lower() in lowered:
                    return runbook
        return None

    def active_incidents(self) -> List[Incident]:
        return [i for i in self.incidents.values() if i.state != IncidentState.RESOLVED]
