"""Tests for configuration loading, validation and serialization."""

import pytest
import yaml

from taskcrew.config import (
    ORCHESTRATION_FIELDS,
    Config,
    ModelPreset,
    OrchestrationConfig,
    RoleOverride,
    _validate_bool,
    _validate_int_range,
    validate_orchestration_value,
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep the user's global config and env out of these tests."""
    monkeypatch.setattr("taskcrew.config.CONFIG_FILE", tmp_path / "global" / "config.yml")
    monkeypatch.setattr("taskcrew.config.CONFIG_DIR", tmp_path / "global")
    for var in ("TASKCREW_MODEL", "TASKCREW_VERBOSE"):
        monkeypatch.delenv(var, raising=False)


class TestConfigLoad:
    """Config.load() from YAML files."""

    def test_load_from_yaml(self, config_yaml_file, tmp_dir):
        config = Config.load(str(tmp_dir))
        assert config.active_model == "local"
        assert config.commit_prefix == "test: "
        assert config.command_timeout == 30
        assert config._config_source == str(config_yaml_file.resolve())
        assert config.project_root == str(tmp_dir.resolve())

    def test_load_models(self, config_yaml_file, tmp_dir):
        config = Config.load(str(tmp_dir))
        preset = config.models["local"]
        assert isinstance(preset, ModelPreset)
        assert preset.model == "openai/model"
        assert preset.api_base == "http://localhost:8080/v1"
        assert preset.max_tokens == 8192

    def test_load_orchestration(self, config_yaml_file, tmp_dir):
        orch = Config.load(str(tmp_dir)).orchestration
        assert orch.max_attempts == 4
        assert orch.max_iterations == 2
        assert orch.design_docs is False
        assert orch.max_rounds == 10
        assert orch.roles["qa"].capabilities == ["read_file", "run_command"]
        assert orch.roles["qa"].max_rounds == 4
        assert orch.warnings == []

    def test_load_defaults_when_no_config(self, tmp_dir):
        config = Config.load(str(tmp_dir))
        assert config.active_model == "local"
        assert "local" in config.models
        assert config.orchestration.max_attempts == 3
        assert config._config_source == ""

    def test_broken_yaml_falls_back_to_defaults(self, tmp_dir):
        (tmp_dir / ".taskcrew.yml").write_text("models: [unclosed", encoding="utf-8")
        config = Config.load(str(tmp_dir))
        assert "local" in config.models

    def test_env_overrides(self, config_yaml_file, tmp_dir, monkeypatch):
        monkeypatch.setenv("TASKCREW_MODEL", "other")
        monkeypatch.setenv("TASKCREW_VERBOSE", "1")
        config = Config.load(str(tmp_dir))
        assert config.active_model == "other"
        assert config.verbose is True

    def test_dotenv_resolves_api_key_env(self, tmp_dir, sample_config_data, monkeypatch):
        monkeypatch.delenv("CREW_TEST_KEY", raising=False)
        sample_config_data["models"]["local"].pop("api-key")
        sample_config_data["models"]["local"]["api-key-env"] = "CREW_TEST_KEY"
        with open(tmp_dir / ".taskcrew.yml", "w") as f:
            yaml.dump(sample_config_data, f)
        (tmp_dir / ".env").write_text("CREW_TEST_KEY=from-dotenv\n", encoding="utf-8")

        config = Config.load(str(tmp_dir))
        assert config.get_active_preset().resolve_api_key() == "from-dotenv"

    def test_docs_root_is_project_relative(self, config_yaml_file, tmp_dir):
        config = Config.load(str(tmp_dir))
        assert config.docs_root() == tmp_dir.resolve() / ".taskcrew" / "docs"


class TestOrchestrationConfig:

    def test_empty_section(self):
        assert OrchestrationConfig.from_dict(None) == OrchestrationConfig()

    def test_out_of_range_int_is_clamped_with_warning(self):
        cfg = OrchestrationConfig.from_dict({"max-attempts": 99})
        assert cfg.max_attempts == 10
        assert cfg.warnings == ["max-attempts: Must be between 1 and 10"]

    def test_invalid_bool_keeps_default(self):
        cfg = OrchestrationConfig.from_dict({"design-docs": "maybe"})
        assert cfg.design_docs is True
        assert len(cfg.warnings) == 1

    def test_unknown_key_warns(self):
        cfg = OrchestrationConfig.from_dict({"max-parallel": 4})
        assert cfg.warnings == ["Unknown orchestration key: max-parallel"]

    def test_role_override(self):
        role = RoleOverride.from_dict({"capabilities": ["read_file"], "model": "deepseek-chat",
                                       "max-rounds": 200})
        assert role.capabilities == ["read_file"]
        assert role.model == "deepseek-chat"
        assert role.max_rounds == 50

    def test_to_dict_round_trips_through_from_dict(self):
        cfg = OrchestrationConfig(max_attempts=2, roles={"dev": RoleOverride(instructions="Be terse")})
        data = cfg.to_dict()
        assert data["roles"] == {"dev": {"instructions": "Be terse"}}
        assert OrchestrationConfig.from_dict(data).max_attempts == 2


class TestValidation:

    def test_field_table(self):
        assert set(ORCHESTRATION_FIELDS) == {
            "max-attempts", "max-iterations", "max-rounds", "design-docs",
            "docs-dir", "max-recovery-attempts",
        }

    def test_int_range(self):
        assert _validate_int_range("5", 1, 10) == (True, 5, "")
        assert _validate_int_range(True, 1, 10)[0] is False
        assert _validate_int_range("x", 1, 10) == (False, None, "Must be an integer")
        assert _validate_int_range(0, 1, 10) == (False, 1, "Must be between 1 and 10")

    @pytest.mark.parametrize("raw,expected", [
        ("yes", True), ("off", False), (True, True), ("1", True), ("no", False),
    ])
    def test_bool(self, raw, expected):
        assert _validate_bool(raw) == (True, expected, "")

    def test_docs_dir_must_be_non_empty(self):
        assert validate_orchestration_value("docs-dir", "  ")[0] is False
        assert validate_orchestration_value("docs-dir", "docs") == (True, "docs", "")


class TestModelPreset:

    def test_resolve_api_key_direct(self):
        preset = ModelPreset(name="x", provider="openai", model="openai/gpt-4o", api_key="sk")
        assert preset.resolve_api_key() == "sk"

    def test_resolve_api_key_provider_env(self, monkeypatch):
        monkeypatch.setenv("DEEPSEEK_API_KEY", "ds")
        preset = ModelPreset(name="x", provider="deepseek", model="deepseek/deepseek-chat")
        assert preset.resolve_api_key() == "ds"

    def test_get_llm_kwargs(self):
        preset = ModelPreset(name="x", provider="local", model="openai/model",
                             api_base="http://localhost:8080/v1", api_key="k",
                             max_tokens=100, context_window=2000)
        assert preset.get_llm_kwargs() == {
            "model": "openai/model", "temperature": 0.0, "max_tokens": 100,
            "context_window": 2000, "api_base": "http://localhost:8080/v1", "api_key": "k",
        }

    def test_get_preset_fallbacks(self):
        config = Config(models=Config.get_default_presets(), active_model="missing")
        assert config.get_preset("gpt-4o-mini").name == "gpt-4o-mini"
        assert config.get_preset("nope").name == "local"
        assert Config(models={}).get_preset(None).name == "default"


class TestSave:

    def test_save_and_reload(self, config_yaml_file, tmp_dir):
        config = Config.load(str(tmp_dir))
        config.orchestration.max_iterations = 7
        config.save()

        reloaded = Config.load(str(tmp_dir))
        assert reloaded.orchestration.max_iterations == 7
        assert reloaded.orchestration.roles["qa"].max_rounds == 4
        assert reloaded.models["local"].api_key == "not-needed"

    def test_summary(self, config_yaml_file, tmp_dir):
        summary = Config.load(str(tmp_dir)).summary()
        assert summary["active-model"] == "local"
        assert summary["api-key"] == "set"
        assert summary["orchestration.max-attempts"] == 4
        assert summary["orchestration.roles"] == "qa"
