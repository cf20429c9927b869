"""Router: the top of the hierarchy.

Owns companies keyed by domain, decides what a free-text request means and
is the only place a human-escalation callback is fired.
"""

import re
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..config import OrchestrationConfig
from ..docs import DocsStore
from ..errors import DocsPathError, WorkerError
from ..llm import LLMAdapter, build_system_prompt
from ..logger import get_logger
from ..crew.categories import (
    DeployTarget,
    GoalCategory,
    detect_deploy_target,
    extract_project_name,
    has_deploy_intent,
)
from ..crew.retry import AttemptHook
from ..crew.roles import WorkerFactory
from .company import Company
from .division import GoalOutcome

_log = get_logger(__name__)

CONVERSATIONS_PAGE = "executive/conversations.md"

EscalationCallback = Callable[[str, dict], None]

ROUTER_INSTRUCTIONS = (
    "You route requests. Use create_company for anything that needs files written or "
    "software built. Use delegate when an existing company owns the domain. Use "
    "direct_response only for greetings and informational questions."
)


class RouterAction(str, Enum):
    DELEGATE = "delegate"
    CREATE_COMPANY = "create_company"
    CREATE_COMPANY_WITH_DEPLOY = "create_company_with_deploy"
    STATUS = "status"
    DIRECT_RESPONSE = "direct_response"


@dataclass
class RouterIntent:
    action: RouterAction
    company_id: Optional[str] = None
    company_name: Optional[str] = None
    domain: Optional[str] = None
    response: Optional[str] = None
    deploy_target: Optional[DeployTarget] = None


_ACTION_RE = re.compile(r"ACTION:\s*\[?(delegate|create_company|status|direct_response)", re.IGNORECASE)
_COMPANY_ID_RE = re.compile(r"COMPANY_ID:\s*\[?([^\s\]]+)", re.IGNORECASE)
_COMPANY_NAME_RE = re.compile(r"COMPANY_NAME:\s*(.+)", re.IGNORECASE)
_DOMAIN_RE = re.compile(r"DOMAIN:\s*(.+)", re.IGNORECASE)
_RESPONSE_RE = re.compile(r"RESPONSE:\s*([\s\S]+?)(?=\n(?:ACTION|COMPANY|DOMAIN)\w*:|$)", re.IGNORECASE)

_STATUS_RE = re.compile(r"\b(status|progress|report)\b", re.IGNORECASE)
_GREETING_RE = re.compile(r"^\s*(hi|hello|hey|thanks|thank you)\b", re.IGNORECASE)
_QUESTION_RE = re.compile(r"^\s*(what|who|why|how)\s+(is|are|does|do)\b", re.IGNORECASE)
_WORK_RE = re.compile(
    r"\b(build|create|make|implement|add|write|fix|generate|scaffold|refactor|deploy|set up)\b",
    re.IGNORECASE,
)


def _field(pattern: re.Pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    if not match:
        return None
    value = match.group(1).strip().strip("[]").strip()
    return value or None


def parse_intent(reply: str) -> RouterIntent:
    """Decode ACTION / COMPANY_ID / COMPANY_NAME / DOMAIN / RESPONSE lines.

    An unreadable action becomes a direct response carrying the whole reply.
    """
    text = reply or ""
    action = _field(_ACTION_RE, text)
    return RouterIntent(
        action=RouterAction(action.lower()) if action else RouterAction.DIRECT_RESPONSE,
        company_id=_field(_COMPANY_ID_RE, text),
        company_name=_field(_COMPANY_NAME_RE, text),
        domain=_field(_DOMAIN_RE, text),
        response=_field(_RESPONSE_RE, text) or text.strip() or None,
    )


def _project_slug(request: str) -> str:
    return extract_project_name(request).lower()


def _display_name(slug: str) -> str:
    return " ".join(part.capitalize() for part in re.split(r"[-_]+", slug) if part) or "Project"


def deploy_goal(project: str, target: DeployTarget) -> str:
    """Follow-up goal text that the deploy path classifies back to ``target``."""
    if target == DeployTarget.AZURE_CONTAINERS:
        where = "to Azure container apps"
    elif target == DeployTarget.AZURE_APPSERVICE:
        where = "to Azure app service"
    else:
        where = "locally with docker compose"
    return f"Deploy the {project} project {where} and verify its health endpoint"


def _reply(success: bool, output: str) -> dict:
    return {"success": success, "output": output, "escalation_reason": None, "escalation": None}


class Router:
    """Companies keyed by domain plus request routing.

    ``on_escalation(reason, context)`` fires at most once per request that
    ends unresolved; the caller still receives a best-effort result.
    """

    def __init__(self, factory: WorkerFactory,
                 orchestration: Optional[OrchestrationConfig] = None,
                 llm: Optional[LLMAdapter] = None,
                 docs: Optional[DocsStore] = None,
                 on_escalation: Optional[EscalationCallback] = None,
                 on_attempt: Optional[AttemptHook] = None):
        self.factory = factory
        self.orchestration = orchestration or OrchestrationConfig()
        self.llm = llm
        self.docs = docs
        self.on_escalation = on_escalation
        self.on_attempt = on_attempt
        self.companies: Dict[str, Company] = {}

    # ── companies ──

    def get_company(self, key: str) -> Optional[Company]:
        """Look up by domain first, then by id."""
        if key in self.companies:
            return self.companies[key]
        for company in self.companies.values():
            if company.id == key:
                return company
        return None

    def create_company(self, name: str, domain: str) -> Company:
        """New company for ``domain``; an existing domain keeps its company."""
        existing = self.companies.get(domain)
        if existing is not None:
            return existing
        company_id = f"company_{uuid.uuid4().hex[:8]}"
        docs = None
        if self.docs is not None:
            docs = DocsStore(str(self.docs.root / "companies" / company_id))
            docs.initialize()
        company = Company.standard(company_id, name, domain, self.factory,
                                   self.orchestration, docs=docs, on_attempt=self.on_attempt)
        self.companies[domain] = company
        _log.info("Created company %s (%s) for domain %s", name, company_id, domain)
        return company

    def find_company_for(self, request: str) -> Optional[Company]:
        lowered = request.lower()
        for domain, company in self.companies.items():
            if domain.lower() in lowered or company.name.lower() in lowered:
                return company
        return None

    # ── intent ──

    def keyword_intent(self, request: str) -> RouterIntent:
        if _GREETING_RE.search(request) and not _WORK_RE.search(request):
            return RouterIntent(RouterAction.DIRECT_RESPONSE,
                                response="Hello. Describe what you want built, deployed or fixed.")
        if _STATUS_RE.search(request) and not _WORK_RE.search(request):
            return RouterIntent(RouterAction.STATUS)
        if _QUESTION_RE.search(request) and not _WORK_RE.search(request):
            return RouterIntent(RouterAction.DIRECT_RESPONSE,
                                response="I route work to delivery teams; ask me to build something.")

        company = self.find_company_for(request)
        if company is not None:
            return RouterIntent(RouterAction.DELEGATE, company_id=company.id)
        slug = _project_slug(request)
        return RouterIntent(RouterAction.CREATE_COMPANY, company_name=_display_name(slug),
                            domain=slug)

    async def classify(self, request: str) -> RouterIntent:
        if has_deploy_intent(request):
            target = detect_deploy_target(request)
            company = self.find_company_for(request)
            if company is not None:
                return RouterIntent(RouterAction.DELEGATE, company_id=company.id,
                                    deploy_target=target)
            slug = _project_slug(request)
            return RouterIntent(RouterAction.CREATE_COMPANY_WITH_DEPLOY,
                                company_name=_display_name(slug), domain=slug,
                                deploy_target=target)

        if self.llm is None:
            return self.keyword_intent(request)
        try:
            reply = await self.llm.chat([
                {"role": "system", "content": build_system_prompt("router", ROUTER_INSTRUCTIONS)},
                {"role": "user", "content": self._intent_prompt(request)},
            ])
        except WorkerError as e:
            _log.warning("Intent model unavailable, using keywords: %s", e)
            return self.keyword_intent(request)

        intent = parse_intent(reply.content or "")
        if intent.action == RouterAction.DELEGATE and self.get_company(intent.company_id or "") is None:
            _log.info("Unknown company %s in intent, using keywords", intent.company_id)
            return self.keyword_intent(request)
        if intent.action == RouterAction.CREATE_COMPANY and not intent.domain:
            intent.domain = _project_slug(request)
            intent.company_name = intent.company_name or _display_name(intent.domain)
        return intent

    def _intent_prompt(self, request: str) -> str:
        if self.companies:
            listing = "\n".join(f'- {c.id}: "{c.name}" ({domain})'
                                for domain, c in self.companies.items())
        else:
            listing = "No companies currently active."
        return (
            f"## User Request\n\n{request}\n\n## Current Companies\n{listing}\n\n"
            "Respond with:\n"
            "ACTION: [delegate/create_company/status/direct_response]\n"
            "COMPANY_ID: [existing company id, if delegate]\n"
            "COMPANY_NAME: [new company name, if create_company]\n"
            "DOMAIN: [company domain, if create_company]\n"
            "RESPONSE: [direct answer, if direct_response]"
        )

    # ── handling ──

    async def handle(self, request: str) -> dict:
        """Route one request.

        Returns ``{success, output, escalation_reason, escalation}``; the last
        is ``{source_id, history}`` for an escalated goal and None otherwise.
        """
        self._log_turn("user", request)
        try:
            intent = await self.classify(request)
            _log.info("Router action: %s", intent.action.value)
            result = await self._dispatch(request, intent)
        except Exception as e:
            _log.exception("Router failed on request")
            result = {"success": False, "output": f"An error occurred: {e}",
                      "escalation_reason": str(e), "escalation": None}

        if result["escalation_reason"]:
            self._escalate(result["escalation_reason"], request, result["escalation"])
        self._log_turn("router", result["output"])
        return result

    async def _dispatch(self, request: str, intent: RouterIntent) -> dict:
        if intent.action == RouterAction.STATUS:
            return _reply(True, self.status_report())
        if intent.action == RouterAction.DIRECT_RESPONSE:
            return _reply(True, intent.response or "")

        if intent.action == RouterAction.DELEGATE:
            company = self.get_company(intent.company_id or "")
            if company is None:
                return _reply(False, f'Company "{intent.company_id}" not found.')
            return self._result(await company.execute_goal(request), company)

        company = self.create_company(intent.company_name or "Project", intent.domain or "project")
        with_deploy = intent.action == RouterAction.CREATE_COMPANY_WITH_DEPLOY
        # the request names both steps; build first, deploy on success
        outcome = await company.execute_goal(request, GoalCategory.BUILD if with_deploy else None)
        result = self._result(outcome, company, created=True)
        if not with_deploy or not outcome.success:
            return result

        follow_up = deploy_goal(intent.domain or "project", intent.deploy_target or DeployTarget.LOCAL)
        _log.info("Build finished, deploying: %s", follow_up)
        deployed = await company.execute_goal(follow_up)
        deploy_result = self._result(deployed, company)
        deploy_result["output"] = f"{result['output']}\n\n{deploy_result['output']}"
        return deploy_result

    @staticmethod
    def _result(outcome: GoalOutcome, company: Company, created: bool = False) -> dict:
        prefix = f'Created company "{company.name}" for {company.domain}.\n\n' if created else ""
        result = _reply(outcome.success, prefix + outcome.output)
        if outcome.escalation is not None:
            result["escalation_reason"] = outcome.escalation.reason
            result["escalation"] = {
                "source_id": outcome.escalation.source_id,
                "history": list(outcome.escalation.history),
            }
        return result

    def _escalate(self, reason: str, request: str, escalation: Optional[dict] = None) -> None:
        _log.warning("Escalating to human: %s", reason)
        if self.on_escalation is None:
            return
        context = {"request": request, "source_id": None, "history": []}
        context.update(escalation or {})
        try:
            self.on_escalation(reason, context)
        except Exception:
            _log.exception("Escalation callback failed")

    def status_report(self) -> str:
        if not self.companies:
            return "No companies yet."
        return "\n\n".join(c.report().to_markdown() for c in self.companies.values())

    def status_rows(self) -> List[dict]:
        return [c.report().as_row() for c in self.companies.values()]

    def _log_turn(self, speaker: str, message: str) -> None:
        if self.docs is None:
            return
        entry = f"**{speaker}** ({time.strftime('%Y-%m-%dT%H:%M:%S')}):\n\n{message}"
        try:
            self.docs.append_page(CONVERSATIONS_PAGE, entry)
        except (OSError, DocsPathError) as e:
            _log.warning("Could not append conversation log: %s", e)

