"""
Praetor Monitor command line interface.

Usage:
    praetor-monitor dashboard
    praetor-monitor jobs --watch
    praetor-monitor logs RUN_ID --follow
    praetor-monitor launch --template 3
    praetor-monitor add-host 1 web01 --vars '{"ansible_host": "10.0.0.5"}'

Exit codes:
    0 - success
    1 - the action failed (request error or failure reported by the platform)
    2 - usage error
"""

import argparse
import asyncio
import sys
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Dict, List, Optional

import httpx
import structlog
from rich.console import Console, Group as RenderGroup, RenderableType
from rich.live import Live
from rich.text import Text

from praetor_monitor.catalog.service import CatalogService
from praetor_monitor.core.config import Settings, get_settings
from praetor_monitor.core.exceptions import PlatformError
from praetor_monitor.core.logging import configure_logging
from praetor_monitor.telemetry import render
from praetor_monitor.telemetry.clients.platform import PlatformClient
from praetor_monitor.telemetry.scheduler import log_error_sink
from praetor_monitor.telemetry.schemas import ActionOutcome, JobTemplate
from praetor_monitor.telemetry.store import TelemetryStore
from praetor_monitor.telemetry.tailer import RunLogTailer

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1

LOG_VIEW_LINES = 200
ERROR_HISTORY = 20


@dataclass
class Context:
    """Objects shared by every command."""

    settings: Settings
    client: PlatformClient
    console: Console
    errors: Deque[str] = field(default_factory=lambda: deque(maxlen=ERROR_HISTORY))

    def __post_init__(self) -> None:
        self.store = TelemetryStore(self.client, settings=self.settings, error_sink=self.record_error)
        self.catalog = CatalogService(self.client, self.store)

    def record_error(self, source: str, error: BaseException) -> None:
        log_error_sink(source, error)
        self.errors.append(f"{source}: {error}")

    def last_error(self) -> Optional[Text]:
        if not self.errors:
            return None
        return Text(self.errors[-1], style="red")


def report(console: Console, outcome: ActionOutcome) -> int:
    """Print an action outcome and map it to an exit code."""
    if outcome.ok:
        console.print(Text(outcome.message, style="green"))
        return EXIT_OK
    console.print(Text(outcome.message, style="red"))
    return EXIT_FAILED


def failed_reads(ctx: Context) -> int:
    """Exit code for one-shot reads that go through the store."""
    if ctx.errors:
        ctx.console.print(Text(f"Failed to load: {ctx.errors[-1]}", style="red"))
        return EXIT_FAILED
    return EXIT_OK


async def live_view(
    ctx: Context,
    renderable: Callable[[], RenderableType],
    done: Callable[[], bool] = lambda: False,
) -> None:
    """Redraw ``renderable`` on every store change until ``done()``."""
    changed = asyncio.Event()
    unsubscribe = ctx.store.subscribe(lambda topic: changed.set())
    try:
        with Live(renderable(), console=ctx.console, refresh_per_second=4) as live:
            while not done():
                await changed.wait()
                changed.clear()
                live.update(renderable())
    finally:
        unsubscribe()


# =============================================================================
# Jobs and runs
# =============================================================================

async def cmd_ping(ctx: Context, args: argparse.Namespace) -> int:
    health = await ctx.client.health_check()
    style = "green" if health["healthy"] else "red"
    ctx.console.print(Text(f"{ctx.client.base_url}: {health['message']}", style=style))
    return EXIT_OK if health["healthy"] else EXIT_FAILED


async def cmd_dashboard(ctx: Context, args: argparse.Namespace) -> int:
    await ctx.store.refresh_jobs()
    ctx.console.print(render.summary_panel(ctx.store.summary()))
    return failed_reads(ctx)


async def cmd_jobs(ctx: Context, args: argparse.Namespace) -> int:
    if not args.watch:
        await ctx.store.refresh_jobs()
        ctx.console.print(render.jobs_table(ctx.store.jobs))
        return failed_reads(ctx)

    await ctx.store.init()

    def view() -> RenderableType:
        parts: List[RenderableType] = [render.jobs_table(ctx.store.jobs)]
        error = ctx.last_error()
        if error is not None:
            parts.append(error)
        return RenderGroup(*parts)

    await live_view(ctx, view)
    return EXIT_OK


async def cmd_logs(ctx: Context, args: argparse.Namespace) -> int:
    run_id = args.run_id
    if not args.follow:
        tailer = RunLogTailer(run_id, ctx.client)
        await tailer.fetch()
        ctx.console.print(render.run_panel(run_id, tailer.lines()))
        return EXIT_OK

    await ctx.store.init()
    ctx.store.select_run(run_id)

    def view() -> RenderableType:
        return render.run_panel(
            run_id,
            ctx.store.log_lines(),
            job=ctx.store.selected_job,
            limit=LOG_VIEW_LINES,
        )

    await live_view(ctx, view, done=lambda: ctx.store.run_finished)
    ctx.console.print(render.run_panel(run_id, ctx.store.log_lines(), job=ctx.store.selected_job))
    return EXIT_OK


async def cmd_launch(ctx: Context, args: argparse.Namespace) -> int:
    return report(ctx.console, await ctx.store.launch_job(args.template))


# =============================================================================
# Projects and templates
# =============================================================================

async def cmd_projects(ctx: Context, args: argparse.Namespace) -> int:
    await ctx.store.refresh_projects()
    ctx.console.print(render.projects_table(ctx.store.projects))
    return failed_reads(ctx)


async def cmd_add_project(ctx: Context, args: argparse.Namespace) -> int:
    outcome = await ctx.catalog.create_project(
        args.name,
        args.scm_url,
        scm_type=args.scm_type,
        organization_id=ctx.settings.platform.organization_id,
    )
    return report(ctx.console, outcome)


async def cmd_sync_project(ctx: Context, args: argparse.Namespace) -> int:
    return report(ctx.console, await ctx.catalog.sync_project(args.project_id))


async def cmd_templates(ctx: Context, args: argparse.Namespace) -> int:
    await ctx.store.refresh_catalog()
    ctx.console.print(
        render.templates_table(ctx.store.templates, ctx.store.projects, ctx.store.inventories)
    )
    return failed_reads(ctx)


async def cmd_add_template(ctx: Context, args: argparse.Namespace) -> int:
    outcome = await ctx.catalog.create_template(
        args.name,
        args.project,
        args.inventory,
        args.playbook,
        organization_id=ctx.settings.platform.organization_id,
    )
    return report(ctx.console, outcome)


async def cmd_edit_template(ctx: Context, args: argparse.Namespace) -> int:
    # Omitted options keep the template's current values
    await ctx.store.refresh_templates()
    current: Optional[JobTemplate] = next(
        (t for t in ctx.store.templates if t.id == args.template_id), None
    )
    if current is None:
        ctx.console.print(Text(f"Template #{args.template_id} not found", style="red"))
        return EXIT_FAILED

    outcome = await ctx.catalog.update_template(
        args.template_id,
        args.name if args.name is not None else current.name,
        args.project if args.project is not None else current.project_id,
        args.inventory if args.inventory is not None else current.inventory_id,
        args.playbook if args.playbook is not None else current.playbook,
        organization_id=current.organization_id or ctx.settings.platform.organization_id,
    )
    return report(ctx.console, outcome)


# =============================================================================
# Inventories
# =============================================================================

async def cmd_inventories(ctx: Context, args: argparse.Namespace) -> int:
    await ctx.store.refresh_inventories()
    ctx.console.print(render.inventories_table(ctx.store.inventories))
    return failed_reads(ctx)


async def cmd_add_inventory(ctx: Context, args: argparse.Namespace) -> int:
    outcome = await ctx.catalog.create_inventory(
        args.name,
        organization_id=ctx.settings.platform.organization_id,
    )
    return report(ctx.console, outcome)


async def cmd_hosts(ctx: Context, args: argparse.Namespace) -> int:
    hosts = await ctx.catalog.hosts(args.inventory_id)
    ctx.console.print(render.hosts_table(hosts))
    return EXIT_OK


async def cmd_add_host(ctx: Context, args: argparse.Namespace) -> int:
    return report(ctx.console, await ctx.catalog.create_host(args.inventory_id, args.name, args.vars))


async def cmd_delete_host(ctx: Context, args: argparse.Namespace) -> int:
    return report(ctx.console, await ctx.catalog.delete_host(args.host_id))


async def cmd_groups(ctx: Context, args: argparse.Namespace) -> int:
    groups = await ctx.catalog.groups(args.inventory_id)
    ctx.console.print(render.groups_table(groups))
    return EXIT_OK


async def cmd_add_group(ctx: Context, args: argparse.Namespace) -> int:
    return report(ctx.console, await ctx.catalog.create_group(args.inventory_id, args.name))


async def cmd_group_hosts(ctx: Context, args: argparse.Namespace) -> int:
    if args.add is not None:
        return report(ctx.console, await ctx.catalog.add_host_to_group(args.group_id, args.add))
    hosts = await ctx.catalog.group_hosts(args.group_id)
    ctx.console.print(render.hosts_table(hosts, title=f"Group #{args.group_id} Hosts"))
    return EXIT_OK


COMMANDS: Dict[str, Callable[[Context, argparse.Namespace], Awaitable[int]]] = {
    "ping": cmd_ping,
    "dashboard": cmd_dashboard,
    "jobs": cmd_jobs,
    "logs": cmd_logs,
    "launch": cmd_launch,
    "projects": cmd_projects,
    "add-project": cmd_add_project,
    "sync-project": cmd_sync_project,
    "templates": cmd_templates,
    "add-template": cmd_add_template,
    "edit-template": cmd_edit_template,
    "inventories": cmd_inventories,
    "add-inventory": cmd_add_inventory,
    "hosts": cmd_hosts,
    "add-host": cmd_add_host,
    "delete-host": cmd_delete_host,
    "groups": cmd_groups,
    "add-group": cmd_add_group,
    "group-hosts": cmd_group_hosts,
}


# =============================================================================
# Entry point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="praetor-monitor",
        description="Terminal monitor and operator console for the automation platform.",
    )
    parser.add_argument("--api-url", help="Platform base URL (overrides PLATFORM_BASE_URL)")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    sub.add_parser("ping", help="Check platform reachability")
    sub.add_parser("dashboard", help="Show job counts and recent activity")

    p = sub.add_parser("jobs", help="List jobs")
    p.add_argument("--watch", action="store_true", help="Keep polling the job list")

    p = sub.add_parser("logs", help="Show a run's output")
    p.add_argument("run_id")
    p.add_argument("--follow", action="store_true", help="Tail the run until it finishes")

    p = sub.add_parser("launch", help="Launch a job")
    p.add_argument("--template", type=int, help="Job template id")

    sub.add_parser("projects", help="List projects")

    p = sub.add_parser("add-project", help="Create a project")
    p.add_argument("name")
    p.add_argument("scm_url")
    p.add_argument("--scm-type", default="git")

    p = sub.add_parser("sync-project", help="Sync a project from SCM")
    p.add_argument("project_id", type=int)

    sub.add_parser("templates", help="List job templates")

    p = sub.add_parser("add-template", help="Create a job template")
    p.add_argument("name")
    p.add_argument("--project", type=int, required=True)
    p.add_argument("--inventory", type=int, required=True)
    p.add_argument("--playbook", required=True)

    p = sub.add_parser("edit-template", help="Update a job template")
    p.add_argument("template_id", type=int)
    p.add_argument("--name")
    p.add_argument("--project", type=int)
    p.add_argument("--inventory", type=int)
    p.add_argument("--playbook")

    sub.add_parser("inventories", help="List inventories")

    p = sub.add_parser("add-inventory", help="Create an inventory")
    p.add_argument("name")

    p = sub.add_parser("hosts", help="List hosts in an inventory")
    p.add_argument("inventory_id", type=int)

    p = sub.add_parser("add-host", help="Add a host to an inventory")
    p.add_argument("inventory_id", type=int)
    p.add_argument("name")
    p.add_argument("--vars", help="Host variables as a JSON object")

    p = sub.add_parser("delete-host", help="Delete a host")
    p.add_argument("host_id", type=int)

    p = sub.add_parser("groups", help="List groups in an inventory")
    p.add_argument("inventory_id", type=int)

    p = sub.add_parser("add-group", help="Create a group in an inventory")
    p.add_argument("inventory_id", type=int)
    p.add_argument("name")

    p = sub.add_parser("group-hosts", help="List or add hosts of a group")
    p.add_argument("group_id", type=int)
    p.add_argument("--add", type=int, metavar="HOST_ID", help="Add this host to the group")

    return parser


async def run(
    args: argparse.Namespace,
    settings: Settings,
    console: Optional[Console] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """Build the shared context, run one command and release resources."""
    client = PlatformClient.from_settings(settings, base_url=args.api_url, transport=transport)
    ctx = Context(settings=settings, client=client, console=console or Console())

    try:
        return await COMMANDS[args.command](ctx, args)
    except PlatformError as e:
        logger.warning("command_failed", command=args.command, error=str(e))
        ctx.console.print(Text(f"Request failed: {e}", style="red"))
        return EXIT_FAILED
    finally:
        ctx.store.teardown()
        await client.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)

    try:
        return asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
