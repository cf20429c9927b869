"""Role definitions and the worker factory."""

import uuid
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, TYPE_CHECKING

from ..llm import LLMAdapter
from ..tools.registry import CapabilityRegistry
from .worker import Worker

if TYPE_CHECKING:
    from ..config import Config, OrchestrationConfig


@dataclass(frozen=True)
class RoleSpec:
    """Specification for a team role; drives worker construction."""

    name: str
    description: str
    instructions: str
    capabilities: Optional[tuple] = None  # None = whatever the registry permits
    model_override: Optional[str] = None
    temperature_override: Optional[float] = None
    max_rounds: Optional[int] = None


DEFAULT_ROLES: Dict[str, RoleSpec] = {
    "pm": RoleSpec(
        name="pm",
        description="Plan work and write design records",
        instructions=(
            "You are the planner. Break goals into concrete, independently verifiable tasks.\n"
            "Answer in exactly the requested section format."
        ),
    ),
    "dev": RoleSpec(
        name="dev",
        description="Implement changes across the stack",
        instructions=(
            "You are an implementer. Make the change with write_file or the scaffolding "
            "capabilities, then read back what you wrote."
        ),
    ),
    "frontend": RoleSpec(
        name="frontend",
        description="Implement UI components, pages and styles",
        instructions=(
            "You are a front-end implementer. Work in the client code: components, hooks, "
            "styles. Write files, do not describe them."
        ),
    ),
    "backend": RoleSpec(
        name="backend",
        description="Implement APIs, routes, data access and middleware",
        instructions=(
            "You are a back-end implementer. Work in the server code: routes, handlers, "
            "persistence. Write files, do not describe them."
        ),
    ),
    "qa": RoleSpec(
        name="qa",
        description="Write and run tests, report actual results",
        instructions=(
            "You are the verifier. Run the tests or checks with run_command and report the "
            "real counts. Say plainly what failed and why."
        ),
    ),
    "devops": RoleSpec(
        name="devops",
        description="Containerize and deploy",
        instructions=(
            "You are the deployment engineer. Generate container files, deploy, then confirm "
            "the service answers its health check."
        ),
        max_rounds=5,
    ),
    "monitor": RoleSpec(
        name="monitor",
        description="Check service health",
        instructions="You watch running services. Call check_health and report what it returned.",
        max_rounds=3,
    ),
    "incident": RoleSpec(
        name="incident",
        description="Recover failing services",
        instructions=(
            "You respond to incidents. Apply the requested recovery action, then check health "
            "and report the outcome."
        ),
        max_rounds=5,
    ),
}


def load_roles(orchestration: Optional["OrchestrationConfig"]) -> Dict[str, RoleSpec]:
    """Default roles with ``orchestration.roles`` overrides applied; unknown names add roles."""
    roles = dict(DEFAULT_ROLES)
    if orchestration is None:
        return roles
    for name, override in orchestration.roles.items():
        base = roles.get(name) or RoleSpec(name=name, description=name, instructions="")
        roles[name] = replace(
            base,
            instructions=override.instructions or base.instructions,
            capabilities=(tuple(override.capabilities)
                          if override.capabilities is not None else base.capabilities),
            model_override=override.model or base.model_override,
            temperature_override=(override.temperature
                                  if override.temperature is not None
                                  else base.temperature_override),
            max_rounds=override.max_rounds or base.max_rounds,
        )
    return roles


class WorkerFactory:
    """Builds workers whose capability set is filtered by role.

    ``llm_factory(role)`` returns the model adapter for a role; the default
    resolves the role's model override against the loaded presets.
    """

    def __init__(self, registry: CapabilityRegistry, roles: Dict[str, RoleSpec],
                 llm_factory: Callable[[RoleSpec], LLMAdapter], default_max_rounds: int = 10):
        self.registry = registry
        self.roles = roles
        self.llm_factory = llm_factory
        self.default_max_rounds = default_max_rounds

    @classmethod
    def from_config(cls, config: "Config", registry: CapabilityRegistry) -> "WorkerFactory":
        def _llm_for(role: RoleSpec) -> LLMAdapter:
            kwargs = config.get_preset(role.model_override).get_llm_kwargs()
            if role.temperature_override is not None:
                kwargs["temperature"] = role.temperature_override
            return LLMAdapter(**kwargs)

        return cls(registry, load_roles(config.orchestration), _llm_for,
                   config.orchestration.max_rounds)

    def role(self, name: str) -> RoleSpec:
        if name not in self.roles:
            raise KeyError(f"Unknown role: {name}")
        return self.roles[name]

    def capabilities_for(self, role: RoleSpec,
                         restrict_to: Optional[tuple] = None) -> CapabilityRegistry:
        caps = self.registry.for_role(role.name)
        if role.capabilities is not None:
            caps = caps.restrict_to(role.capabilities)
        if restrict_to is not None:
            caps = caps.restrict_to(restrict_to)
        return caps

    def create(self, role_name: str, restrict_to: Optional[tuple] = None) -> Worker:
        """New worker for ``role_name``; ``restrict_to`` narrows capabilities further."""
        role = self.role(role_name)
        return Worker(
            name=f"{role.name}-{uuid.uuid4().hex[:6]}",
            role=role.name,
            llm=self.llm_factory(role),
            capabilities=self.capabilities_for(role, restrict_to),
            instructions=f"{role.description}.\n{role.instructions}",
            max_rounds=role.max_rounds or self.default_max_rounds,
        )
