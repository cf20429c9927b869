"""Planner: decompose a goal into ordered implementation and verification tasks."""

import re
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..docs import DocsStore
from ..errors import DocsPathError, PlanningError, WorkerError
from ..logger import get_logger
from .categories import (
    TaskCategory,
    detect_template_type,
    extract_project_name,
    extract_section,
    is_new_project_goal,
    is_scaffold_task,
)
from .tasks import (
    DEFAULT_MAX_ATTEMPTS,
    ROLE_IMPLEMENT,
    ROLE_VERIFY,
    PlanBreakdown,
    Task,
    TaskKind,
    create_task,
)
from .worker import Worker

_log = get_logger(__name__)

PLANNING_ROUNDS = 3

_TASK_LINE_RE = re.compile(r"\d+\.\s*\[?([^\]\n-]+)\]?\s*[-:]\s*([^\n]+)")
_ORDER_RE = re.compile(r"\d+\.\s*(DEV|QA):(\d+)", re.IGNORECASE)
_DEV_SECTION_RE = re.compile(r"DEV_TASKS:?\s*([\s\S]*?)(?=QA_TASKS:|EXECUTION_ORDER:|$)", re.IGNORECASE)
_QA_SECTION_RE = re.compile(r"QA_TASKS:?\s*([\s\S]*?)(?=EXECUTION_ORDER:|DEV_TASKS:|$)", re.IGNORECASE)
_ORDER_SECTION_RE = re.compile(r"EXECUTION_ORDER:?\s*([\s\S]*?)$", re.IGNORECASE)

_OVERVIEW_RE = re.compile(r"OVERVIEW:?\s*([\s\S]*?)(?=REQUIREMENTS:|APPROACH:|ACCEPTANCE|$)", re.IGNORECASE)
_REQUIREMENTS_RE = re.compile(r"REQUIREMENTS:?\s*([\s\S]*?)(?=OVERVIEW:|APPROACH:|ACCEPTANCE|$)", re.IGNORECASE)
_APPROACH_RE = re.compile(r"APPROACH:?\s*([\s\S]*?)(?=OVERVIEW:|REQUIREMENTS:|ACCEPTANCE|$)", re.IGNORECASE)
_CRITERIA_RE = re.compile(
    r"ACCEPTANCE[_\s]?CRITERIA:?\s*([\s\S]*?)(?=OVERVIEW:|REQUIREMENTS:|APPROACH:|$)", re.IGNORECASE
)
_BULLET_RE = re.compile(r"^\s*[-*]\s*(?:\[[ xX]?\]\s*)?(.+?)\s*$", re.MULTILINE)

DEFAULT_CRITERIA = ("Implementation complete", "All tests pass")


@dataclass
class DesignRecord:
    path: str
    title: str
    overview: str
    requirements: List[str] = field(default_factory=list)
    approach: str = ""
    acceptance_criteria: List[str] = field(default_factory=list)

    def to_markdown(self, author: str) -> str:
        lines = ["## Overview", "", self.overview, "", "## Requirements", ""]
        lines += [f"- {r}" for r in self.requirements]
        lines += ["", "## Approach", "", self.approach, "", "## Acceptance Criteria", ""]
        lines += [f"- [ ] {c}" for c in self.acceptance_criteria]
        lines += ["", "---", f"*Created by {author} on {time.strftime('%Y-%m-%dT%H:%M:%S')}*", ""]
        return "\n".join(lines)

    def summary(self) -> str:
        """Compact form folded into the decomposition prompt."""
        parts = [
            f"A design record exists at: {self.path}",
            f"**Overview**: {self.overview}",
            "**Requirements**:\n" + "\n".join(f"- {r}" for r in self.requirements),
        ]
        if self.approach:
            parts.append(f"**Approach**:\n{self.approach}")
        parts.append("**Acceptance Criteria**:\n" + "\n".join(f"- {c}" for c in self.acceptance_criteria))
        parts.append("Make sure the breakdown follows this design.")
        return "\n\n".join(parts)


def _slug(text: str, limit: int = 50) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:limit] or "goal"


def _section(pattern: re.Pattern, text: str) -> str:
    match = pattern.search(text or "")
    return match.group(1).strip() if match else ""


def _bullets(text: str) -> List[str]:
    return [m.group(1) for m in _BULLET_RE.finditer(text) if m.group(1)]


def parse_design(response: str, goal: Task) -> DesignRecord:
    """Decode a design reply; every field has a fallback."""
    requirements = _bullets(_section(_REQUIREMENTS_RE, response))
    criteria = _bullets(_section(_CRITERIA_RE, response))
    return DesignRecord(
        path=f"designs/{_slug(goal.title)}-{int(time.time() * 1000)}",
        title=f"Design: {goal.title}",
        overview=_section(_OVERVIEW_RE, response) or goal.description,
        requirements=requirements or [goal.description],
        approach=_section(_APPROACH_RE, response),
        acceptance_criteria=criteria or list(DEFAULT_CRITERIA),
    )


def _parse_task_lines(section: str) -> List[Tuple[str, str]]:
    return [(m.group(1).strip(), m.group(2).strip()) for m in _TASK_LINE_RE.finditer(section)]


def parse_breakdown(response: str, goal: Task, created_by: str = "pm",
                    max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> PlanBreakdown:
    """Decode a DEV_TASKS / QA_TASKS / EXECUTION_ORDER reply. Never raises."""
    def _make(kind: TaskKind, title: str, description: str, **extra) -> Task:
        return create_task(kind, title, description, created_by, priority=goal.priority,
                           parent_id=goal.id, max_attempts=max_attempts, **extra)

    text = response or ""
    impl = [_make(TaskKind.IMPLEMENT, t, d) for t, d in _parse_task_lines(_section(_DEV_SECTION_RE, text))]
    verify = [_make(TaskKind.VERIFY, t, d) for t, d in _parse_task_lines(_section(_QA_SECTION_RE, text))]

    order: List[Tuple[str, str]] = []
    for match in _ORDER_RE.finditer(_section(_ORDER_SECTION_RE, text)):
        role = match.group(1).lower()
        index = int(match.group(2)) - 1
        pool = impl if role == ROLE_IMPLEMENT else verify
        if 0 <= index < len(pool):
            pair = (role, pool[index].id)
            if pair not in order:
                order.append(pair)

    if not impl:
        order = []
        if is_new_project_goal(f"{goal.title} {goal.description}"):
            name = extract_project_name(goal.description)
            impl = [
                _make(TaskKind.IMPLEMENT, "Scaffold Project", _scaffold_description("fullstack", name),
                      context={"category": TaskCategory.SCAFFOLD.value}),
                _make(TaskKind.IMPLEMENT, "Customize for Requirements",
                      f'After scaffold is complete, modify the generated files in "{name}" to meet '
                      f"the specific requirements: {goal.description}",
                      context={"category": TaskCategory.CUSTOMIZE.value}),
            ]
        else:
            impl = [_make(TaskKind.IMPLEMENT, goal.title, goal.description)]
    elif order:
        # Tasks the order forgot still run, after the ordered ones.
        listed = {tid for _, tid in order}
        order += [(ROLE_IMPLEMENT, t.id) for t in impl if t.id not in listed]
        order += [(ROLE_VERIFY, t.id) for t in verify if t.id not in listed]

    return PlanBreakdown(implementation_tasks=impl, verification_tasks=verify,
                         execution_order=order)


def _scaffold_description(template: str, project_name: str) -> str:
    return (
        f'IMMEDIATELY call generate_project with template="{template}" and '
        f'projectName="{project_name}". Do NOT write files manually.'
    )


def _section_description(section: str, content: str, project_name: str) -> str:
    part = section.lower()
    root = f"{project_name}/{part}"
    entry = "src/app.ts" if part == "backend" else "src/App.tsx"
    return "\n".join([
        f"## Customize {section.capitalize()} for {project_name}",
        "",
        f"Project root: {root}/",
        "",
        "Requirements:",
        content,
        "",
        f"Steps (ALL paths must start with {root}/):",
        f"1. Use read_file to check the existing {root}/{entry}",
        "2. Create or update the files each requirement needs",
        f"3. Wire the new code into {root}/{entry}",
        "4. Use read_file to verify changes",
        "",
        "IMPORTANT: Use write_file to create/modify files. Do NOT just describe what to do.",
    ])


def _customize_description(request: str, project_name: str) -> str:
    lines = [f'Customize the scaffolded "{project_name}" project to meet the following requirements:', ""]
    extra = re.search(r"REQUIREMENTS:?\s*([\s\S]*?)$", request)
    bullets = _bullets(extra.group(1)) if extra else []
    if bullets:
        lines.append("## REQUIREMENTS:")
        lines += [f"- {b}" for b in bullets]
    else:
        lines.append(request)
    lines += ["", "IMPORTANT: Use read_file to check what the template created first, "
                  "then write_file to modify specific files."]
    return "\n".join(lines)


def _detect_agent_type(description: str) -> Optional[str]:
    lower = description.lower()
    backend = any(k in lower for k in ("route", "endpoint", "api", "express", "server",
                                       "backend", "database", "middleware"))
    frontend = any(k in lower for k in ("component", "react", "frontend", "view", "page",
                                        "button", "form", "jsx", "tsx"))
    if backend and not frontend:
        return "backend"
    if frontend and not backend:
        return "frontend"
    return None


class Planner:
    """Turns a goal task into a PlanBreakdown using the planning worker.

    Bootstrap goals skip the model entirely. Otherwise an optional design
    record is written to the docs store first and folded into the
    decomposition prompt. Transport or store failures surface as PlanningError.
    """

    def __init__(self, worker: Worker, docs: Optional[DocsStore] = None,
                 design_docs: bool = True, max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 name: str = "pm"):
        self.worker = worker
        self.docs = docs
        self.design_docs = design_docs
        self.max_attempts = max_attempts
        self.name = name

    async def plan(self, goal: Task) -> PlanBreakdown:
        if is_scaffold_task(goal):
            _log.info("Bootstrap goal, using scaffold plan: %s", goal.title)
            return self.scaffold_breakdown(goal)
        try:
            design = None
            if self.docs is not None and self.design_docs:
                design = await self.write_design(goal)
            reply = await self.worker.invoke(
                self.build_planning_prompt(goal, design), max_rounds=PLANNING_ROUNDS,
            )
        except (WorkerError, DocsPathError, OSError) as e:
            raise PlanningError(str(e)) from e

        breakdown = parse_breakdown(reply.output, goal, self.name, self.max_attempts)
        _log.info("Planned %d implementation and %d verification tasks for %s",
                  len(breakdown.implementation_tasks), len(breakdown.verification_tasks), goal.id)
        return breakdown

    async def write_design(self, goal: Task) -> DesignRecord:
        reply = await self.worker.invoke(self.build_design_prompt(goal), max_rounds=PLANNING_ROUNDS)
        design = parse_design(reply.output, goal)
        self.docs.write_page(design.path, design.to_markdown(self.name), title=design.title)
        _log.info("Design record written: %s", design.path)
        return design

    @staticmethod
    def build_design_prompt(goal: Task) -> str:
        return "\n".join([
            f"## Create Design Document for: {goal.title}",
            "",
            f"**Description**: {goal.description}",
            f"**Priority**: {goal.priority.value}",
            "",
            "Before we implement this, write a design document. Provide it in this format:",
            "",
            "OVERVIEW:\n[1-2 sentence summary of what we're building]",
            "",
            "REQUIREMENTS:\n- Requirement 1\n- Requirement 2",
            "",
            "APPROACH:\n[Key decisions, patterns and components]",
            "",
            "ACCEPTANCE_CRITERIA:\n- [ ] Criterion 1\n- [ ] Criterion 2",
        ])

    @staticmethod
    def build_planning_prompt(goal: Task, design: Optional[DesignRecord] = None) -> str:
        parts = [
            f"## Plan Task: {goal.title}",
            f"**Priority**: {goal.priority.value}\n**Description**:\n{goal.description}",
        ]
        if goal.context:
            parts.append("**Context**:\n" + "\n".join(f"- {k}: {v}" for k, v in goal.context.items()))
        if design is not None:
            parts.append("## Design Document\n\n" + design.summary())
        parts.append(
            "Break this down in exactly this format:\n\n"
            "DEV_TASKS:\n1. [Title] - [Description]\n2. [Title] - [Description]\n\n"
            "QA_TASKS:\n1. [Title] - [Description]\n\n"
            "EXECUTION_ORDER:\n1. DEV:1\n2. DEV:2\n3. QA:1"
        )
        return "\n\n".join(parts)

    def scaffold_breakdown(self, goal: Task) -> PlanBreakdown:
        """Fixed scaffold-then-customize plan; no design record, no model call."""
        description = goal.description
        lowered = description.lower()
        name = extract_project_name(description)
        template = detect_template_type(description)

        def _make(title: str, desc: str, attempts: int, **context) -> Task:
            return create_task(TaskKind.IMPLEMENT, title, desc, self.name,
                               priority=goal.priority, parent_id=goal.id,
                               max_attempts=attempts, context=context)

        tasks = [_make("Scaffold Project", _scaffold_description(template, name), 1,
                       category=TaskCategory.SCAFFOLD.value)]

        sections = {}
        for section in ("BACKEND", "FRONTEND"):
            content = extract_section(description, section)
            if content:
                sections[section] = content
                tasks.append(_make(
                    f"Customize {section.capitalize()}",
                    _section_description(section, content, name), self.max_attempts,
                    category=TaskCategory.CUSTOMIZE.value, agent_type=section.lower(),
                ))

        has_requirements = (
            "requirements:" in lowered or "with:" in lowered or "must have" in lowered
        )
        if not sections and has_requirements:
            context = {"category": TaskCategory.CUSTOMIZE.value}
            agent_type = _detect_agent_type(description)
            if agent_type:
                context["agent_type"] = agent_type
            tasks.append(_make("Customize for Requirements",
                               _customize_description(description, name),
                               self.max_attempts, **context))

        if sections and "test" in lowered:
            tasks.append(_make(
                "Add Tests",
                f"Add unit tests for the {name} project as specified in the requirements.\n\n"
                f"Use read_file to check existing code, then write_file to create test files.\n"
                f"Backend tests go in {name}/backend/tests/, frontend tests in "
                f"{name}/frontend/src/__tests__/",
                2, category=TaskCategory.CUSTOMIZE.value,
            ))

        return PlanBreakdown(implementation_tasks=tasks, verification_tasks=[])
