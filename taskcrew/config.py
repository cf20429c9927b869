"""
Configuration: model presets plus the orchestration section.

Loading priority:
  1. Project dir .taskcrew.yml
  2. Git root .taskcrew.yml
  3. Global ~/.taskcrew/config.yml

``.env`` files in ~/.taskcrew and the project dir are loaded first so that
``api-key-env`` references resolve.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Dict, List, Callable, Any

import yaml
from dotenv import load_dotenv

from .logger import get_logger

_log = get_logger(__name__)

CONFIG_DIR = Path.home() / ".taskcrew"
CONFIG_FILE = CONFIG_DIR / "config.yml"
PROJECT_CONFIG_NAME = ".taskcrew.yml"


# ── Configuration metadata and validation ──


@dataclass
class ConfigFieldSpec:
    """Configuration field specification with validation rules."""
    key: str
    field_name: str
    description: str
    value_type: str  # "str", "int", "bool"
    default: Any
    validator: Optional[Callable[[Any], tuple[bool, Any, str]]] = None  # (valid, coerced_value, error_msg)


def _validate_int_range(value: Any, min_val: int, max_val: int) -> tuple[bool, Optional[int], str]:
    """Validate integer within range."""
    if isinstance(value, bool):
        return False, None, "Must be an integer"
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return False, None, "Must be an integer"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_bool(value: Any) -> tuple[bool, bool, str]:
    """Validate boolean value."""
    if isinstance(value, bool):
        return True, value, ""
    if isinstance(value, str):
        val_lower = value.strip().lower()
        if val_lower in ("1", "true", "yes", "on"):
            return True, True, ""
        if val_lower in ("0", "false", "no", "off"):
            return True, False, ""
    return False, False, "Must be true/false, yes/no, on/off, or 1/0"


def _validate_path(value: Any) -> tuple[bool, str, str]:
    text = str(value or "").strip()
    if not text:
        return False, "", "Must be a non-empty path"
    return True, text, ""


ORCHESTRATION_FIELDS: Dict[str, ConfigFieldSpec] = {
    "max-attempts": ConfigFieldSpec(
        key="max-attempts",
        field_name="max_attempts",
        description="Attempt ceiling per task",
        value_type="int",
        default=3,
        validator=lambda v: _validate_int_range(v, 1, 10),
    ),
    "max-iterations": ConfigFieldSpec(
        key="max-iterations",
        field_name="max_iterations",
        description="Plan/implement/verify iterations per goal",
        value_type="int",
        default=5,
        validator=lambda v: _validate_int_range(v, 1, 20),
    ),
    "max-rounds": ConfigFieldSpec(
        key="max-rounds",
        field_name="max_rounds",
        description="Model exchange rounds per worker invocation",
        value_type="int",
        default=10,
        validator=lambda v: _validate_int_range(v, 1, 50),
    ),
    "design-docs": ConfigFieldSpec(
        key="design-docs",
        field_name="design_docs",
        description="Write a design record before decomposing a goal",
        value_type="bool",
        default=True,
        validator=_validate_bool,
    ),
    "docs-dir": ConfigFieldSpec(
        key="docs-dir",
        field_name="docs_dir",
        description="Documentation store root, relative to the project",
        value_type="str",
        default=".taskcrew/docs",
        validator=_validate_path,
    ),
    "max-recovery-attempts": ConfigFieldSpec(
        key="max-recovery-attempts",
        field_name="max_recovery_attempts",
        description="Recovery actions per incident before escalating",
        value_type="int",
        default=3,
        validator=lambda v: _validate_int_range(v, 1, 10),
    ),
}


def validate_orchestration_value(key: str, value: Any) -> tuple[bool, Any, str]:
    """Validate one ``orchestration:`` key. Returns (valid, coerced_value, error_msg)."""
    field_spec = ORCHESTRATION_FIELDS.get(key)
    if field_spec is None:
        return False, None, f"Unknown orchestration key: {key}"
    if field_spec.validator is None:
        return True, value, ""
    return field_spec.validator(value)


@dataclass
class RoleOverride:
    """Per-role settings from ``orchestration: roles: <name>:``."""
    capabilities: Optional[List[str]] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    instructions: Optional[str] = None
    max_rounds: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "RoleOverride":
        caps = data.get("capabilities")
        rounds = data.get("max-rounds")
        if rounds is not None:
            _, rounds, _ = _validate_int_range(rounds, 1, 50)
        return cls(
            capabilities=[str(c) for c in caps] if isinstance(caps, list) else None,
            model=data.get("model"),
            temperature=data.get("temperature"),
            instructions=data.get("instructions"),
            max_rounds=rounds,
        )


@dataclass
class OrchestrationConfig:
    """Parsed from the ``orchestration:`` section of ``.taskcrew.yml``."""

    max_attempts: int = 3
    max_iterations: int = 5
    max_rounds: int = 10
    design_docs: bool = True
    docs_dir: str = ".taskcrew/docs"
    max_recovery_attempts: int = 3
    roles: Dict[str, RoleOverride] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "OrchestrationConfig":
        """Parse the raw section; invalid values are coerced or defaulted and
        reported in ``warnings`` rather than raised."""
        cfg = cls()
        if not data:
            return cfg
        for key, raw in data.items():
            if key == "roles":
                continue
            valid, coerced, err = validate_orchestration_value(key, raw)
            if key not in ORCHESTRATION_FIELDS:
                cfg.warnings.append(err)
                continue
            field_spec = ORCHESTRATION_FIELDS[key]
            if not valid:
                cfg.warnings.append(f"{key}: {err}")
                if field_spec.value_type != "int" or coerced is None:
                    continue
            setattr(cfg, field_spec.field_name, coerced)
        for name, raw_role in (data.get("roles") or {}).items():
            if isinstance(raw_role, dict):
                cfg.roles[str(name)] = RoleOverride.from_dict(raw_role)
        for warning in cfg.warnings:
            _log.warning("orchestration config: %s", warning)
        return cfg

    def to_dict(self) -> dict:
        out = {key: getattr(self, field_spec.field_name) for key, field_spec in ORCHESTRATION_FIELDS.items()}
        if self.roles:
            out["roles"] = {}
            for name, role in self.roles.items():
                entry = {}
                if role.capabilities is not None:
                    entry["capabilities"] = role.capabilities
                if role.model:
                    entry["model"] = role.model
                if role.temperature is not None:
                    entry["temperature"] = role.temperature
                if role.instructions:
                    entry["instructions"] = role.instructions
                if role.max_rounds is not None:
                    entry["max-rounds"] = role.max_rounds
                out["roles"][name] = entry
        return out


@dataclass
class ModelPreset:
    name: str
    provider: str
    model: str
    api_base: Optional[str] = None
    api_key: Optional[str] = None
    api_key_env: Optional[str] = None
    temperature: float = 0.0
    max_tokens: int = 4096
    context_window: int = 128000
    description: str = ""

    def resolve_api_key(self) -> Optional[str]:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        env_map = {
            "openai": "OPENAI_API_KEY", "anthropic": "ANTHROPIC_API_KEY",
            "deepseek": "DEEPSEEK_API_KEY", "gemini": "GEMINI_API_KEY",
            "azure": "AZURE_API_KEY",
        }
        env_var = env_map.get(self.provider)
        return os.environ.get(env_var) if env_var else None

    def get_llm_kwargs(self) -> dict:
        """Return kwargs dict for LLMAdapter constructor, passed directly, no env vars."""
        return {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "context_window": self.context_window,
            "api_base": self.api_base,
            "api_key": self.resolve_api_key(),
        }


@dataclass
class Config:
    active_model: str = "local"
    models: Dict[str, ModelPreset] = field(default_factory=dict)
    commit_prefix: str = "taskcrew: "
    blocked_commands: List[str] = field(
        default_factory=lambda: [
            "rm -rf /", "rm -rf /*", "mkfs", "dd if=", "> /dev/sda",
            "sudo ", "chmod 777", "curl|sh", "curl|bash", "wget|sh",
            ":(){:|:&};:",  # fork bomb
        ]
    )
    command_timeout: int = 120
    verbose: bool = False
    orchestration: OrchestrationConfig = field(default_factory=OrchestrationConfig)
    project_root: Optional[str] = None
    _config_source: str = ""

    @classmethod
    def load(cls, project_dir: str = ".") -> "Config":
        config = cls()
        project_path = Path(project_dir).resolve()

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        git_root = cls._find_git_root(project_path)
        config_loaded = False
        for candidate in [
            project_path / PROJECT_CONFIG_NAME,
            (git_root / PROJECT_CONFIG_NAME) if git_root and git_root != project_path else None,
            CONFIG_FILE,
        ]:
            if candidate and candidate.exists():
                config._load_yaml(candidate)
                config._config_source = str(candidate)
                config_loaded = True
                break

        if not config_loaded:
            config._add_default_presets()

        config._apply_env()
        config.project_root = str(project_path)
        return config

    @classmethod
    def get_default_presets(cls) -> Dict[str, ModelPreset]:
        return {
            "local": ModelPreset(
                name="local", provider="local", model="openai/model",
                api_base="http://localhost:8080/v1", api_key="not-needed",
                description="Local model (vLLM / llama.cpp on :8080)",
                max_tokens=4096, context_window=32000,
            ),
            "gpt-4o-mini": ModelPreset(
                name="gpt-4o-mini", provider="openai", model="openai/gpt-4o-mini",
                api_key_env="OPENAI_API_KEY", description="OpenAI GPT-4o mini",
            ),
            "deepseek-chat": ModelPreset(
                name="deepseek-chat", provider="deepseek",
                model="deepseek/deepseek-chat",
                api_key_env="DEEPSEEK_API_KEY",
                description="DeepSeek chat (function calling)",
            ),
        }

    def _add_default_presets(self):
        self.models = self.get_default_presets()
        self.active_model = "local"

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            _log.warning("Cannot read %s, using defaults: %s", filepath, e)
            self._add_default_presets()
            return

        self.active_model = data.get("active-model", "local")
        self.commit_prefix = data.get("commit-prefix", "taskcrew: ")
        self.command_timeout = self._coerce_positive_int(
            data.get("command-timeout", 120), default=120, min_value=5, max_value=3600
        )
        self.verbose = _validate_bool(data.get("verbose", False))[1]
        if "blocked-commands" in data:
            self.blocked_commands = [str(c) for c in data["blocked-commands"] or []]

        self.orchestration = OrchestrationConfig.from_dict(data.get("orchestration", {}))

        self.models = {}
        for name, m in (data.get("models") or {}).items():
            self.models[name] = ModelPreset(
                name=name, provider=m.get("provider", "openai"),
                model=m.get("model", "openai/gpt-4o-mini"),
                api_base=m.get("api-base"), api_key=m.get("api-key"),
                api_key_env=m.get("api-key-env"),
                temperature=m.get("temperature", 0.0),
                max_tokens=m.get("max-tokens", 4096),
                context_window=m.get("context-window", 128000),
                description=m.get("description", ""),
            )
        if not self.models:
            self._add_default_presets()

    def _apply_env(self):
        env_map = {
            "TASKCREW_MODEL": ("active_model", str),
            "TASKCREW_VERBOSE": ("verbose", lambda v: v.lower() in ("true", "1")),
        }
        for env_var, (attr, conv) in env_map.items():
            val = os.environ.get(env_var)
            if val:
                setattr(self, attr, conv(val))

    def save(self, filepath: Optional[str] = None):
        target = Path(filepath) if filepath else (
            Path(self._config_source) if self._config_source else CONFIG_FILE
        )
        target.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "active-model": self.active_model,
            "commit-prefix": self.commit_prefix,
            "command-timeout": self.command_timeout,
            "verbose": self.verbose,
            "blocked-commands": self.blocked_commands,
            "orchestration": self.orchestration.to_dict(),
            "models": {},
        }
        for name, m in self.models.items():
            entry = {"provider": m.provider, "model": m.model,
                     "description": m.description, "temperature": m.temperature,
                     "max-tokens": m.max_tokens, "context-window": m.context_window}
            if m.api_base:
                entry["api-base"] = m.api_base
            if m.api_key:
                entry["api-key"] = m.api_key
            if m.api_key_env:
                entry["api-key-env"] = m.api_key_env
            data["models"][name] = entry

        with open(target, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        self._config_source = str(target)

    def get_active_preset(self) -> ModelPreset:
        return self.get_preset(self.active_model)

    def get_preset(self, name: Optional[str]) -> ModelPreset:
        if name and name in self.models:
            return self.models[name]
        if self.active_model in self.models:
            return self.models[self.active_model]
        if self.models:
            return next(iter(self.models.values()))
        return ModelPreset(name="default", provider="local", model="openai/model",
                           api_base="http://localhost:8080/v1", api_key="not-needed")

    def docs_root(self) -> Path:
        root = Path(self.orchestration.docs_dir).expanduser()
        if not root.is_absolute():
            root = Path(self.project_root or ".") / root
        return root

    def summary(self) -> dict:
        preset = self.get_active_preset()
        return {
            "config-source": self._config_source or "(defaults)",
            "project-root": self.project_root,
            "active-model": self.active_model,
            "model": preset.model,
            "api-key": "set" if preset.resolve_api_key() else "missing",
            "command-timeout": self.command_timeout,
            "verbose": self.verbose,
            **{f"orchestration.{k}": v for k, v in self.orchestration.to_dict().items()
               if k != "roles"},
            "orchestration.roles": ", ".join(sorted(self.orchestration.roles)) or "(defaults)",
        }

    @staticmethod
    def _coerce_positive_int(value, default: int, min_value: int = 1, max_value: int = 100000) -> int:
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return default
        return max(min_value, min(max_value, parsed))

    @staticmethod
    def _find_git_root(path: Path) -> Optional[Path]:
        current = path
        while current != current.parent:
            if (current / ".git").exists():
                return current
            current = current.parent
        return None
