"""Structured error types for the orchestration engine."""


class TaskcrewError(Exception):
    """Base error for all taskcrew operations."""
    pass


class CapabilityError(TaskcrewError):
    """Error raised inside a capability handler."""

    def __init__(self, capability: str, message: str):
        self.capability = capability
        super().__init__(f"{capability} error: {message}")


class UnknownCapabilityError(TaskcrewError):
    """Raised when a capability name is not registered."""

    def __init__(self, capability: str):
        self.capability = capability
        super().__init__(f"Unknown capability: {capability}")


class CapabilityNotPermittedError(TaskcrewError):
    """Raised when a role invokes a capability it is not allowed to use."""

    def __init__(self, capability: str, role: str):
        self.capability = capability
        self.role = role
        super().__init__(f"Capability '{capability}' is not permitted for role '{role}'")


class CommandBlockedError(TaskcrewError):
    """Raised when a shell command is blocked by safety guards."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Blocked: {reason}")


class WorkerError(TaskcrewError):
    """The language-model transport failed during a worker invocation."""
    pass


class PlanningError(TaskcrewError):
    """The planner could not produce a usable breakdown."""
    pass


class InvalidTransitionError(TaskcrewError):
    """Raised when a task status change violates the lifecycle."""

    def __init__(self, task_id: str, old: str, new: str):
        self.task_id = task_id
        self.old = old
        self.new = new
        super().__init__(f"Task {task_id}: cannot move from {old} to {new}")


class DocsPathError(TaskcrewError):
    """Raised when a documentation path escapes the store root."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Invalid docs path: {path}")
