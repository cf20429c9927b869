from .registry import Capability, CapabilityRegistry, CapabilityResult
from .builtins import build_default_registry
from .git_ops import GitOps
__all__ = ["Capability", "CapabilityRegistry", "CapabilityResult", "build_default_registry", "GitOps"]
