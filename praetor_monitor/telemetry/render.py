"""
Terminal rendering for telemetry state.

Styled spans are appended to rich Text objects with explicit styles. Output
text is never parsed as console markup, so whatever a playbook prints is
shown literally.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from rich.console import Group as RenderGroup
from rich.panel import Panel
from rich.style import Style
from rich.table import Table
from rich.text import Text

from praetor_monitor.telemetry.classifier import Category, SpanStyle
from praetor_monitor.telemetry.schemas import (
    Group,
    Host,
    Inventory,
    Job,
    JobSummary,
    JobTemplate,
    Project,
)
from praetor_monitor.telemetry.tailer import LogLine

CATEGORY_COLORS: Dict[Category, str] = {
    Category.FAILED: "#f87171",
    Category.OK: "#4ade80",
    Category.CHANGED: "#facc15",
    Category.HEADER: "#60a5fa",
    Category.DEFAULT: "#cccccc",
}

STATUS_STYLES: Dict[str, str] = {
    "successful": "green",
    "failed": "red",
    "error": "red",
    "canceled": "magenta",
    "running": "yellow",
    "pending": "cyan",
    "waiting": "cyan",
}

WAITING_MESSAGE = "Waiting for logs..."


def span_style(style: SpanStyle) -> Style:
    """Translate a decoded span style into a rich Style."""
    return Style(
        color=style.fg,
        bgcolor=style.bg,
        bold=style.bold or None,
        dim=style.dim or None,
        italic=style.italic or None,
        underline=style.underline or None,
    )


def render_line(line) -> Text:
    """
    Render one classified line.

    Accepts a ClassifiedLine or a LogLine. The category colour is the base
    style; ANSI colours decoded from the output override it span by span.
    """
    text = Text(style=CATEGORY_COLORS[line.category], no_wrap=False)
    for span in line.spans:
        if span.style.is_plain:
            text.append(span.text)
        else:
            text.append(span.text, style=span_style(span.style))
    return text


def render_log(lines: Sequence[LogLine], limit: Optional[int] = None) -> Text:
    """Render a run's log, keeping only the last ``limit`` lines if given."""
    if not lines:
        return Text(WAITING_MESSAGE, style="dim")

    if limit is not None and limit > 0:
        lines = lines[-limit:]

    return Text("\n").join(render_line(line) for line in lines)


def status_text(status: str) -> Text:
    return Text(status, style=STATUS_STYLES.get(status, "white"))


def _timestamp(job: Job) -> str:
    if job.created_at is None:
        return "-"
    return job.created_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def jobs_table(jobs: Iterable[Job], title: str = "Jobs") -> Table:
    """Job list with status badges and run ids."""
    table = Table(title=title, expand=True)
    table.add_column("ID", justify="right", no_wrap=True)
    table.add_column("Name")
    table.add_column("Status", no_wrap=True)
    table.add_column("Time", no_wrap=True)
    table.add_column("Run", overflow="fold")

    rows = 0
    for job in jobs:
        table.add_row(
            f"#{job.id}",
            Text(job.name),
            status_text(job.status),
            _timestamp(job),
            Text(job.current_run_id or "-"),
        )
        rows += 1

    if rows == 0:
        table.add_row("", Text("No jobs found", style="dim"), "", "", "")
    return table


def summary_panel(summary: JobSummary) -> RenderGroup:
    """Dashboard: headline counts plus the most recent jobs."""
    counts = Text()
    counts.append("Total Jobs ", style="dim")
    counts.append(str(summary.total), style="bold")
    counts.append("    Success Rate ", style="dim")
    counts.append(f"{summary.success_rate}%", style="bold #4ade80")
    counts.append("    Failed Jobs ", style="dim")
    counts.append(str(summary.failed), style="bold #f87171")
    counts.append("    Active ", style="dim")
    counts.append(str(summary.running), style="bold #facc15")

    return RenderGroup(
        Panel(counts, title="Dashboard"),
        jobs_table(summary.recent, title="Recent Activity"),
    )


def run_panel(run_id: str, lines: Sequence[LogLine], job: Optional[Job] = None, limit: Optional[int] = None) -> Panel:
    """Log viewer panel for one run."""
    title = Text(f"Execution Logs - run {run_id}")
    if job is not None:
        title.append(f"  #{job.id} ")
        title.append_text(status_text(job.status))
    return Panel(render_log(lines, limit=limit), title=title, border_style="blue")


# =============================================================================
# Catalog tables
# =============================================================================

def projects_table(projects: Iterable[Project]) -> Table:
    table = Table(title="Projects", expand=True)
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("SCM URL", overflow="fold")
    table.add_column("Type")
    table.add_column("Last Sync")
    for project in projects:
        synced = project.modified_at.astimezone().strftime("%Y-%m-%d %H:%M:%S") if project.modified_at else "never"
        table.add_row(str(project.id), Text(project.name), Text(project.scm_url), Text(project.scm_type), synced)
    return table


def templates_table(
    templates: Iterable[JobTemplate],
    projects: Iterable[Project] = (),
    inventories: Iterable[Inventory] = (),
) -> Table:
    project_names = {p.id: p.name for p in projects}
    inventory_names = {i.id: i.name for i in inventories}

    table = Table(title="Job Templates", expand=True)
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Playbook")
    table.add_column("Project")
    table.add_column("Inventory")
    for template in templates:
        table.add_row(
            str(template.id),
            Text(template.name),
            Text(template.playbook or "playbook.yml"),
            Text(project_names.get(template.project_id, str(template.project_id or "-"))),
            Text(inventory_names.get(template.inventory_id, str(template.inventory_id or "-"))),
        )
    return table


def inventories_table(inventories: Iterable[Inventory]) -> Table:
    table = Table(title="Inventories", expand=True)
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Organization", justify="right")
    for inventory in inventories:
        table.add_row(str(inventory.id), Text(inventory.name), str(inventory.organization_id or "-"))
    return table


def hosts_table(hosts: Iterable[Host], title: str = "Hosts") -> Table:
    table = Table(title=title, expand=True)
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Enabled")
    table.add_column("Variables", overflow="fold")
    for host in hosts:
        variables = ", ".join(f"{k}={v}" for k, v in (host.variables or {}).items())
        table.add_row(
            str(host.id),
            Text(host.name),
            Text("yes", style="green") if host.enabled else Text("no", style="red"),
            Text(variables or "-"),
        )
    return table


def groups_table(groups: List[Group]) -> Table:
    table = Table(title="Groups", expand=True)
    table.add_column("ID", justify="right")
    table.add_column("Name")
    for group in groups:
        table.add_row(str(group.id), Text(group.name))
    return table
