"""Console rendering for goal runs: attempt events, escalations, reports."""

import os
from typing import Iterable, Optional

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .tasks import Task, TaskResult

ACCENT = "#7FA6D9"
BORDER = "#4A5568"
DIM = "#8A8A8A"
SUCCESS = "#57DB9C"
WARN = "#D9D97F"
ERROR = "#D97F7F"

_ASCII_ICONS = {"✓": "+", "✗": "x", "⟲": "~", "!": "!"}
_USE_UNICODE = os.environ.get("TASKCREW_ASCII", "").lower() not in ("1", "true", "yes")
_HISTORY_LINES = 10


def icon(char: str) -> str:
    return char if _USE_UNICODE else _ASCII_ICONS.get(char, char)


def _brief(text: Optional[str], limit: int = 80) -> str:
    text = " ".join((text or "").split())
    return text if len(text) <= limit else text[: limit - 3] + "..."


class Renderer:
    """Prints orchestration progress; ``on_attempt`` plugs into TaskRunner."""

    def __init__(self, console: Optional[Console] = None, verbose: bool = False):
        self.console = console or Console()
        self.verbose = verbose

    def _table(self, *columns: str) -> Table:
        table = Table(show_header=True, header_style=f"bold {ACCENT}",
                      border_style=BORDER, padding=(0, 1))
        for column in columns:
            table.add_column(column)
        return table

    def on_attempt(self, task: Task, attempt: int, result: TaskResult) -> None:
        if result.success:
            line = (f"[{SUCCESS}]{icon('✓')}[/{SUCCESS}] {task.title} "
                    f"[{DIM}](attempt {attempt}/{task.max_attempts})[/{DIM}]")
        elif attempt < task.max_attempts:
            line = (f"[{WARN}]{icon('⟲')}[/{WARN}] {task.title} "
                    f"[{DIM}]attempt {attempt}/{task.max_attempts}: "
                    f"{_brief(result.error)}[/{DIM}]")
        else:
            line = (f"[{ERROR}]{icon('✗')} {task.title}[/{ERROR}] "
                    f"[{DIM}]{_brief(result.error)}[/{DIM}]")
        self.console.print(f"  {line}")
        if self.verbose and result.files_modified:
            self.console.print(f"    [{DIM}]{', '.join(result.files_modified)}[/{DIM}]")

    def render_report(self, report: dict) -> None:
        """Final panel for a router result."""
        ok = bool(report.get("success"))
        color = SUCCESS if ok else ERROR
        body = [Text(report.get("output") or "")]
        reason = report.get("escalation_reason")
        if reason:
            body += [Text(""), Text(f"Escalated: {reason}", style=f"bold {WARN}")]
        self.console.print(Panel(
            Group(*body),
            title=f"[bold {color}] {'Success' if ok else 'Failed'} [/bold {color}]",
            title_align="left", border_style=color, padding=(0, 1),
        ))

    def render_escalation(self, reason: str, context: dict) -> None:
        lines = [reason, "", f"Request: {context.get('request', '')}"]
        if context.get("source_id"):
            lines.append(f"Source: {context['source_id']}")
        history = context.get("history") or []
        if history:
            lines += ["", "History:"] + [f"  {h}" for h in history[-_HISTORY_LINES:]]
        self.console.print(Panel(
            Text("\n".join(lines)),
            title=f"[bold {WARN}] {icon('!')} Human attention needed [/bold {WARN}]",
            title_align="left", border_style=WARN, padding=(0, 1),
        ))

    def render_companies(self, rows: Iterable[dict]) -> None:
        table = self._table("Company", "Domain", "Units", "Goals", "Succeeded", "Failed")
        empty = True
        for row in rows:
            empty = False
            table.add_row(
                row["name"], row["domain"], ", ".join(row["units"]) or "-",
                str(row["total"]), f"[{SUCCESS}]{row['succeeded']}[/{SUCCESS}]",
                f"[{ERROR}]{row['failed']}[/{ERROR}]",
            )
        if empty:
            self.console.print(f"[{DIM}]No companies yet.[/{DIM}]")
        else:
            self.console.print(table)
