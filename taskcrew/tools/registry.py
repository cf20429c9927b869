"""Capability registry: dict-based dispatch with per-role permissions."""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..errors import CapabilityNotPermittedError, TaskcrewError, UnknownCapabilityError
from ..logger import get_logger

_log = get_logger(__name__)


@dataclass(frozen=True)
class CapabilityResult:
    success: bool
    output: str = ""
    error: Optional[str] = None

    def as_message(self) -> str:
        """Text handed back to the model as the tool result."""
        if self.success:
            return self.output or "(no output)"
        return f"Error: {self.error or 'capability failed'}"


def _schema(name: str, description: str, properties: dict,
            required: list) -> dict:
    """Build an OpenAI-compatible function schema."""
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


# Shorthand helpers for property definitions
_S = lambda desc, **kw: {"type": "string", "description": desc, **kw}
_I = lambda desc, **kw: {"type": "integer", "description": desc, **kw}


class Capability:
    """A named action: schema + handler + the roles allowed to invoke it.

    ``allowed_roles=None`` permits every role; an empty tuple permits none.
    Handlers may be plain or ``async`` callables taking keyword arguments and
    return either text or a CapabilityResult.
    """
    __slots__ = ("name", "description", "properties", "required", "handler", "allowed_roles")

    def __init__(self, name: str, description: str, properties: dict, required: list,
                 handler: Callable, allowed_roles: Optional[Iterable[str]] = None):
        self.name = name
        self.description = description
        self.properties = properties
        self.required = list(required)
        self.handler = handler
        self.allowed_roles: Optional[Tuple[str, ...]] = (
            None if allowed_roles is None else tuple(allowed_roles)
        )

    @property
    def schema(self) -> dict:
        return _schema(self.name, self.description, self.properties, self.required)

    def permits(self, role: str) -> bool:
        return self.allowed_roles is None or role in self.allowed_roles

    async def execute(self, params: Dict[str, Any]) -> CapabilityResult:
        missing = [key for key in self.required if key not in params]
        if missing:
            return CapabilityResult(False, error=f"Missing argument: {', '.join(missing)}")
        try:
            if inspect.iscoroutinefunction(self.handler):
                out = await self.handler(**params)
            else:
                out = await asyncio.to_thread(self.handler, **params)
        except TaskcrewError as e:
            return CapabilityResult(False, error=str(e))
        except TypeError as e:
            return CapabilityResult(False, error=f"Bad arguments for {self.name}: {e}")
        except Exception as e:
            _log.warning("Capability %s raised %s: %s", self.name, type(e).__name__, e)
            return CapabilityResult(False, error=f"{self.name} error: {type(e).__name__}: {e}")
        if isinstance(out, CapabilityResult):
            return out
        return CapabilityResult(True, output=str(out) if out is not None else "")


class CapabilityRegistry:
    """Read-only after construction; filtered views are new registries."""

    def __init__(self, capabilities: Iterable[Capability] = ()):
        self._capabilities: Dict[str, Capability] = {}
        for cap in capabilities:
            self.register(cap)

    def register(self, capability: Capability) -> None:
        if capability.name in self._capabilities:
            raise ValueError(f"Capability already registered: {capability.name}")
        self._capabilities[capability.name] = capability

    def get(self, name: str) -> Optional[Capability]:
        return self._capabilities.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._capabilities

    def __len__(self) -> int:
        return len(self._capabilities)

    @property
    def names(self) -> List[str]:
        return list(self._capabilities)

    def for_role(self, role: str) -> "CapabilityRegistry":
        """Only the capabilities ``role`` may invoke."""
        return CapabilityRegistry(c for c in self._capabilities.values() if c.permits(role))

    def restrict_to(self, names: Iterable[str]) -> "CapabilityRegistry":
        wanted = set(names)
        return CapabilityRegistry(c for c in self._capabilities.values() if c.name in wanted)

    def without(self, names: Iterable[str]) -> "CapabilityRegistry":
        unwanted = set(names)
        return CapabilityRegistry(c for c in self._capabilities.values() if c.name not in unwanted)

    @property
    def schemas(self) -> List[dict]:
        return [c.schema for c in self._capabilities.values()]

    async def execute(self, name: str, arguments: Dict[str, Any],
                      role: Optional[str] = None) -> CapabilityResult:
        """Dispatch by name. Never raises for a capability-level failure."""
        cap = self._capabilities.get(name)
        if cap is None:
            return CapabilityResult(False, error=str(UnknownCapabilityError(name)))
        if role is not None and not cap.permits(role):
            return CapabilityResult(False, error=str(CapabilityNotPermittedError(name, role)))
        if "_raw" in arguments:
            return CapabilityResult(False, error=f"Could not decode arguments for {name}")
        return await cap.execute(arguments)
