"""
taskcrew: hierarchical LLM task orchestration.

Commands: taskcrew run "<goal>", taskcrew status, taskcrew config
"""

import asyncio
import json
import re
import sys
from pathlib import Path
from typing import Dict, List

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import Config, ModelPreset
from .crew.rendering import ACCENT, BORDER, DIM, Renderer
from .crew.roles import WorkerFactory
from .docs import DocsStore
from .llm import LLMAdapter
from .logger import setup_logger
from .org.company import GOALS_LOG_PAGE
from .org.router import Router
from .tools import build_default_registry

console = Console()
BANNER = (
    f"[bold {ACCENT}]taskcrew[/bold {ACCENT}] "
    f"[dim]v{__version__} · plan, build, verify, escalate[/dim]"
)


def _apply_model_override(config: Config, model: str, api_base: str, api_key: str) -> None:
    if model in config.models:
        config.active_model = model
        return
    config.models["_cli"] = ModelPreset(
        name="_cli", provider="openai", model=model,
        api_base=api_base, api_key=api_key or "not-needed",
    )
    config.active_model = "_cli"


def build_router(config: Config, renderer: Renderer, use_docs: bool = True) -> Router:
    """Wire registry, worker factory and router from a loaded config."""
    docs = None
    if use_docs:
        docs = DocsStore(str(config.docs_root()))
        docs.initialize()
    registry = build_default_registry(
        config.project_root or ".", docs=docs,
        blocked_commands=config.blocked_commands,
        command_timeout=config.command_timeout,
        commit_prefix=config.commit_prefix,
    )
    factory = WorkerFactory.from_config(config, registry)
    llm = LLMAdapter(**config.get_active_preset().get_llm_kwargs())
    return Router(factory, config.orchestration, llm=llm, docs=docs,
                  on_escalation=renderer.render_escalation,
                  on_attempt=renderer.on_attempt)


@click.group(invoke_without_command=True)
@click.version_option(__version__, prog_name="taskcrew")
@click.pass_context
def cli(ctx):
    """taskcrew: plan, build, verify and escalate with LLM workers."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("goal", nargs=-1, required=True)
@click.option("--model", "-m", default=None, help="Model preset name or model id")
@click.option("--api-key", "-k", default=None, help="API key override")
@click.option("--api-base", "-b", default=None, help="API base override")
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--no-docs", is_flag=True, help="Do not keep a documentation store")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def run(goal, model, api_key, api_base, project_dir, no_docs, as_json, verbose):
    """Run one free-text goal through the router."""
    config = Config.load(project_dir)
    if model:
        _apply_model_override(config, model, api_base, api_key)
    if verbose:
        config.verbose = True
    setup_logger(verbose=config.verbose)

    if not as_json:
        console.print(BANNER)
    renderer = Renderer(console, verbose=config.verbose)
    router = build_router(config, renderer, use_docs=not no_docs)
    result = asyncio.run(router.handle(" ".join(goal)))

    if as_json:
        click.echo(json.dumps(result, indent=2))
    else:
        renderer.render_report(result)
    if not result["success"]:
        sys.exit(1)


_COMPANY_LINE = re.compile(r"^- \*\*Company\*\*: (.+)$", re.MULTILINE)
_DOMAIN_LINE = re.compile(r"^- \*\*Domain\*\*: (.+)$", re.MULTILINE)
_UNIT_LINE = re.compile(r"^- \*\*Unit\*\*: (\S+)", re.MULTILINE)
_STATUS_LINE = re.compile(r"^- \*\*Status\*\*: (\w+)$", re.MULTILINE)


def company_rows(docs: DocsStore) -> List[dict]:
    """Summarise each company's goals log under ``companies/<id>/``."""
    rows = []
    companies_dir = docs.root / "companies"
    if not companies_dir.is_dir():
        return rows
    for company_dir in sorted(p for p in companies_dir.iterdir() if p.is_dir()):
        page = DocsStore(str(company_dir)).read_page(GOALS_LOG_PAGE)
        if page is None:
            continue
        statuses = _STATUS_LINE.findall(page.content)
        names = _COMPANY_LINE.findall(page.content)
        domains = _DOMAIN_LINE.findall(page.content)
        units: Dict[str, None] = dict.fromkeys(_UNIT_LINE.findall(page.content))
        succeeded = statuses.count("succeeded")
        rows.append({
            "name": names[-1] if names else company_dir.name,
            "domain": domains[-1] if domains else company_dir.name,
            "units": list(units),
            "total": len(statuses),
            "succeeded": succeeded,
            "failed": len(statuses) - succeeded,
        })
    return rows


@cli.command()
@click.option("--project-dir", "-d", default=".", help="Project directory")
def status(project_dir):
    """List companies and their goal counts from the documentation store."""
    config = Config.load(project_dir)
    root = config.docs_root()
    if not root.exists():
        console.print(f"[{DIM}]No documentation store at {root}[/{DIM}]")
        return
    Renderer(console).render_companies(company_rows(DocsStore(str(root))))


@cli.command("config")
@click.option("--project-dir", "-d", default=".", help="Project directory")
def config_cmd(project_dir):
    """Show the resolved configuration."""
    cfg = Config.load(project_dir)
    table = Table(show_header=False, border_style=BORDER, padding=(0, 1))
    table.add_column("Key", style=f"bold {ACCENT}")
    table.add_column("Value")
    for key, value in cfg.summary().items():
        table.add_row(key, str(value))
    console.print(table)
    for warning in cfg.orchestration.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")
    if not Path(cfg._config_source or "").is_file():
        console.print(f"[{DIM}]No config file found; using built-in presets.[/{DIM}]")


if __name__ == "__main__":
    cli()
