"""Organisation layer: divisions, companies and the top-level router."""

from .division import Division, GoalOutcome
from .company import Company, CompanyReport, GoalRecord, UnitStatus
from .router import Router, RouterAction, RouterIntent, parse_intent

__all__ = [
    "Division",
    "GoalOutcome",
    "Company",
    "CompanyReport",
    "GoalRecord",
    "UnitStatus",
    "Router",
    "RouterAction",
    "RouterIntent",
    "parse_intent",
]
