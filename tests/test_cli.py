"""Tests for the click entry points and console rendering."""

import io
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner
from rich.console import Console

from taskcrew import __version__
from taskcrew.crew.rendering import Renderer
from taskcrew.crew.tasks import TaskKind, TaskResult, create_task
from taskcrew.docs import DocsStore
from taskcrew.main import cli, company_rows
from taskcrew.org.company import GOALS_LOG_PAGE


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.setattr("taskcrew.config.CONFIG_FILE", tmp_path / "global" / "config.yml")
    monkeypatch.setattr("taskcrew.config.CONFIG_DIR", tmp_path / "global")
    for var in ("TASKCREW_MODEL", "TASKCREW_VERBOSE"):
        monkeypatch.delenv(var, raising=False)


def _goal_entry(company, domain, unit, status):
    return (f"## A goal\n\n- **Company**: {company}\n- **Domain**: {domain}\n"
            f"- **Unit**: {unit} (build)\n- **Status**: {status}\n- **Duration**: 1.0s")


@pytest.fixture
def runner():
    return CliRunner()


class TestCommands:

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_config(self, runner, config_yaml_file, tmp_dir):
        result = runner.invoke(cli, ["config", "-d", str(tmp_dir)])
        assert result.exit_code == 0
        assert "active-model" in result.output
        assert "local" in result.output
        assert "No config file found" not in result.output

    def test_config_without_file(self, runner, tmp_dir):
        result = runner.invoke(cli, ["config", "-d", str(tmp_dir)])
        assert result.exit_code == 0
        assert "No config file found" in result.output

    def test_status_without_store(self, runner, tmp_dir):
        result = runner.invoke(cli, ["status", "-d", str(tmp_dir)])
        assert result.exit_code == 0
        assert "No documentation store" in result.output

    def test_status_lists_companies(self, runner, tmp_dir):
        store = DocsStore(str(tmp_dir / ".taskcrew" / "docs" / "companies" / "company_1"))
        store.append_page(GOALS_LOG_PAGE, _goal_entry("Shop", "shop", "engineering",
                                                      "succeeded"))
        result = runner.invoke(cli, ["status", "-d", str(tmp_dir)])
        assert result.exit_code == 0
        assert "Shop" in result.output

    @pytest.mark.parametrize("success,code", [(True, 0), (False, 1)])
    def test_run_json(self, runner, tmp_dir, success, code):
        outcome = {"success": success, "output": "done", "escalation_reason": None}
        router = MagicMock()
        router.handle = AsyncMock(return_value=outcome)
        with patch("taskcrew.main.build_router", return_value=router) as build, \
                patch("taskcrew.main.setup_logger"):
            result = runner.invoke(cli, ["run", "-d", str(tmp_dir), "--json", "--no-docs",
                                         "build", "a", "todo", "app"])

        assert result.exit_code == code
        assert json.loads(result.output) == outcome
        router.handle.assert_awaited_once_with("build a todo app")
        assert build.call_args.kwargs["use_docs"] is False

    def test_run_requires_a_goal(self, runner):
        result = runner.invoke(cli, ["run"])
        assert result.exit_code != 0


class TestCompanyRows:

    def test_rows_from_goal_logs(self, docs):
        shop = DocsStore(str(docs.root / "companies" / "company_1"))
        shop.append_page(GOALS_LOG_PAGE, _goal_entry("Shop", "shop", "engineering", "succeeded"))
        shop.append_page(GOALS_LOG_PAGE, _goal_entry("Shop", "shop", "operations", "escalated"))
        shop.append_page(GOALS_LOG_PAGE, _goal_entry("Shop", "shop", "engineering", "failed"))
        (docs.root / "companies" / "company_2").mkdir()

        assert company_rows(docs) == [{
            "name": "Shop", "domain": "shop", "units": ["engineering", "operations"],
            "total": 3, "succeeded": 1, "failed": 2,
        }]

    def test_no_companies(self, docs):
        assert company_rows(docs) == []


class TestRenderer:

    def _renderer(self, verbose=False):
        buffer = io.StringIO()
        console = Console(file=buffer, width=120, color_system=None)
        return Renderer(console, verbose=verbose), buffer

    def test_attempt_lines(self):
        renderer, buffer = self._renderer(verbose=True)
        task = create_task(TaskKind.IMPLEMENT, "Write greeting", "", "pm", max_attempts=2)
        renderer.on_attempt(task, 1, TaskResult(False, error="No capability calls"))
        renderer.on_attempt(task, 2, TaskResult(True, files_modified=("src/a.ts",)))
        text = buffer.getvalue()
        assert "Write greeting attempt 1/2: No capability calls" in text
        assert "Write greeting (attempt 2/2)" in text
        assert "src/a.ts" in text

    def test_final_failure_line(self):
        renderer, buffer = self._renderer()
        task = create_task(TaskKind.IMPLEMENT, "Write greeting", "", "pm", max_attempts=1)
        renderer.on_attempt(task, 1, TaskResult(False, error="x" * 200))
        assert "..." in buffer.getvalue()

    def test_report_and_escalation(self):
        renderer, buffer = self._renderer()
        renderer.render_report({"success": False, "output": "partial",
                                "escalation_reason": "tests kept failing"})
        renderer.render_escalation("tests kept failing", {
            "request": "build it", "source_id": "company_ab12",
            "history": ["iteration 1: verify failed", "iteration 2: verify failed"],
        })
        text = buffer.getvalue()
        assert "Failed" in text
        assert "Escalated: tests kept failing" in text
        assert "Human attention needed" in text
        assert "Request: build it" in text
        assert "Source: company_ab12" in text
        assert "iteration 2: verify failed" in text

    def test_empty_company_table(self):
        renderer, buffer = self._renderer()
        renderer.render_companies([])
        assert "No companies yet." in buffer.getvalue()
