"""
Telemetry Store.

Process-wide state for the monitor: the job list, the catalogs used to
launch jobs, the selected run id and that run's event buffer.

The store is the only component that mutates this state. Schedulers and the
tailer are drivers that are handed the store's apply callbacks. The job-list
loop and the run-log loop touch disjoint state and never wait on each other.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional, Tuple

import structlog

from praetor_monitor.core.config import Settings, settings as default_settings
from praetor_monitor.core.exceptions import PlatformError
from praetor_monitor.telemetry.clients.platform import PlatformClient
from praetor_monitor.telemetry.scheduler import ErrorSink, SyncScheduler, log_error_sink
from praetor_monitor.telemetry.schemas import (
    ActionOutcome,
    Inventory,
    Job,
    JobEvent,
    JobLaunchRequest,
    JobStatus,
    JobSummary,
    JobTemplate,
    Project,
)
from praetor_monitor.telemetry.tailer import LogLine, RunLogTailer

logger = structlog.get_logger(__name__)

Listener = Callable[[str], None]

TOPIC_JOBS = "jobs"
TOPIC_EVENTS = "events"
TOPIC_CATALOG = "catalog"

RECENT_JOBS_LIMIT = 5


class TelemetryStore:
    """
    Owner of the monitor's mutable state.

    Lifecycle:
        store = TelemetryStore(client)
        await store.init()          # job list polling + one catalog fetch
        store.select_run("r1")      # start tailing a run
        store.select_run(None)      # close the viewer
        store.teardown()            # stop everything
    """

    def __init__(
        self,
        client: PlatformClient,
        settings: Optional[Settings] = None,
        error_sink: Optional[ErrorSink] = None,
    ):
        self.client = client
        self.settings = settings or default_settings
        self.error_sink = error_sink or log_error_sink

        self._jobs: List[Job] = []
        self._templates: List[JobTemplate] = []
        self._projects: List[Project] = []
        self._inventories: List[Inventory] = []

        self._jobs_scheduler: Optional[SyncScheduler] = None
        self._run_scheduler: Optional[SyncScheduler] = None
        self._tailer: Optional[RunLogTailer] = None
        self._selected_run_id: Optional[str] = None

        # Trailing-fetch bookkeeping for the selected run
        self._terminal_seen = False
        self._trailing_applied = 0
        self._run_finished = False

        self._listeners: List[Listener] = []

    # ==========================================================================
    # Read state
    # ==========================================================================

    @property
    def jobs(self) -> List[Job]:
        return list(self._jobs)

    @property
    def templates(self) -> List[JobTemplate]:
        return list(self._templates)

    @property
    def projects(self) -> List[Project]:
        return list(self._projects)

    @property
    def inventories(self) -> List[Inventory]:
        return list(self._inventories)

    @property
    def selected_run_id(self) -> Optional[str]:
        return self._selected_run_id

    @property
    def events(self) -> List[JobEvent]:
        """Ordered event buffer of the selected run."""
        return self._tailer.events if self._tailer else []

    @property
    def selected_job(self) -> Optional[Job]:
        if self._selected_run_id is None:
            return None
        return self._find_job(self._selected_run_id)

    @property
    def run_finished(self) -> bool:
        """True once the selected run's tail has stopped after a terminal status."""
        return self._run_finished

    @property
    def polling_jobs(self) -> bool:
        return self._jobs_scheduler is not None and self._jobs_scheduler.running

    @property
    def polling_run(self) -> bool:
        return self._run_scheduler is not None and self._run_scheduler.running

    def log_lines(self) -> List[LogLine]:
        """Classified, renderable lines of the selected run."""
        return self._tailer.lines() if self._tailer else []

    def summary(self) -> JobSummary:
        """Dashboard numbers over the current job list."""
        jobs = self._jobs
        total = len(jobs)
        successful = sum(1 for j in jobs if j.status == JobStatus.SUCCESSFUL.value)
        failed = sum(1 for j in jobs if j.status == JobStatus.FAILED.value)
        running = sum(1 for j in jobs if j.is_active)
        success_rate = round(successful / total * 100) if total else 0

        # Jobs without a timestamp sort last
        recent = sorted(
            jobs,
            key=lambda j: (j.created_at is not None, j.created_at.timestamp() if j.created_at else 0.0),
            reverse=True,
        )[:RECENT_JOBS_LIMIT]

        return JobSummary(
            total=total,
            successful=successful,
            failed=failed,
            running=running,
            success_rate=success_rate,
            recent=recent,
        )

    # ==========================================================================
    # Listeners
    # ==========================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, topic: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(topic)
            except Exception as e:
                self.error_sink(f"listener:{topic}", e)

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def init(self) -> None:
        """Start job-list polling and load the catalogs once."""
        if self._jobs_scheduler is not None:
            return

        scheduler: SyncScheduler[List[Job]] = SyncScheduler(TOPIC_JOBS, self.error_sink)
        self._jobs_scheduler = scheduler
        scheduler.start(self.settings.poll.jobs_interval, self.client.list_jobs, self._apply_jobs)
        logger.info(
            "telemetry_store_initialized",
            base_url=self.client.base_url,
            jobs_interval=self.settings.poll.jobs_interval,
        )

        await self.refresh_catalog()

    def select_run(self, run_id: Optional[str]) -> None:
        """
        Bind the log viewer to a run, or close it with ``None``.

        The previous run's scheduler is stopped and its buffer discarded
        before anything else happens; there is no cross-run merge.
        """
        self._release_run()
        self._selected_run_id = run_id

        if run_id is None:
            self._notify(TOPIC_EVENTS)
            return

        job = self._find_job(run_id)
        # A run that is already finished still gets its trailing fetches
        self._terminal_seen = bool(job and job.is_terminal)

        tailer = RunLogTailer(run_id, self.client)
        scheduler: SyncScheduler[Tuple[bool, List[JobEvent]]] = SyncScheduler(f"run:{run_id}", self.error_sink)
        self._tailer = tailer
        self._run_scheduler = scheduler

        async def fetch() -> Tuple[bool, List[JobEvent]]:
            issued_after_terminal = self._terminal_seen
            return issued_after_terminal, await tailer.pull()

        def apply(result: Tuple[bool, List[JobEvent]]) -> None:
            self._apply_run(tailer, scheduler, result)

        scheduler.start(self.settings.poll.run_interval, fetch, apply)
        logger.info("run_selected", run_id=run_id, job_id=job.id if job else None)
        self._notify(TOPIC_EVENTS)

    def teardown(self) -> None:
        """Stop all polling and release buffers."""
        if self._jobs_scheduler is not None:
            self._jobs_scheduler.stop()
            self._jobs_scheduler = None
        self._release_run()
        self._selected_run_id = None

        self._jobs = []
        self._templates = []
        self._projects = []
        self._inventories = []
        logger.info("telemetry_store_torn_down")

    def _release_run(self) -> None:
        if self._run_scheduler is not None:
            self._run_scheduler.stop()
            self._run_scheduler = None
        if self._tailer is not None:
            self._tailer.clear()
            self._tailer = None
        self._terminal_seen = False
        self._trailing_applied = 0
        self._run_finished = False

    # ==========================================================================
    # Apply callbacks
    # ==========================================================================

    def _find_job(self, run_id: str) -> Optional[Job]:
        for job in self._jobs:
            if job.current_run_id == run_id:
                return job
        return None

    def _apply_jobs(self, jobs: List[Job]) -> None:
        self._jobs = list(jobs)

        if self._selected_run_id is not None and not self._terminal_seen:
            job = self._find_job(self._selected_run_id)
            if job is not None and job.is_terminal:
                self._terminal_seen = True
                logger.info("run_terminal_status", run_id=self._selected_run_id, status=job.status)

        self._notify(TOPIC_JOBS)

    def _apply_run(
        self,
        tailer: RunLogTailer,
        scheduler: SyncScheduler,
        result: Tuple[bool, List[JobEvent]],
    ) -> None:
        # Still the active binding?
        if tailer is not self._tailer:
            return

        issued_after_terminal, fetched = result
        tailer.merge(fetched)

        if issued_after_terminal:
            self._trailing_applied += 1
            if self._trailing_applied >= self.settings.poll.trailing_fetches:
                scheduler.stop()
                self._run_finished = True
                logger.info(
                    "run_tail_complete",
                    run_id=tailer.run_id,
                    events=len(tailer),
                    last_seq=tailer.last_seq,
                )

        self._notify(TOPIC_EVENTS)

    # ==========================================================================
    # One-shot refreshes
    # ==========================================================================

    async def refresh_jobs(self) -> None:
        """
        Refresh the job list now (the "Refresh" button).

        While polling, a tick already in flight is awaited and a fresh one
        issued after it, so the list always reflects state after the call.
        """
        if self._jobs_scheduler is not None and self._jobs_scheduler.running:
            await self._jobs_scheduler.tick(wait=True)
            return
        await self._refresh(TOPIC_JOBS, self.client.list_jobs, self._apply_jobs)

    async def refresh_templates(self) -> None:
        await self._refresh("templates", self.client.list_job_templates, self._set_templates)

    async def refresh_projects(self) -> None:
        await self._refresh("projects", self.client.list_projects, self._set_projects)

    async def refresh_inventories(self) -> None:
        await self._refresh("inventories", self.client.list_inventories, self._set_inventories)

    async def refresh_catalog(self) -> None:
        """Load templates, projects and inventories concurrently."""
        await asyncio.gather(
            self.refresh_templates(),
            self.refresh_projects(),
            self.refresh_inventories(),
        )

    async def _refresh(
        self,
        source: str,
        fetch_fn: Callable[[], Awaitable[Any]],
        apply_fn: Callable[[Any], None],
    ) -> None:
        try:
            result = await fetch_fn()
        except PlatformError as e:
            self.error_sink(source, e)
            return
        apply_fn(result)

    def _set_templates(self, templates: List[JobTemplate]) -> None:
        self._templates = list(templates)
        self._notify(TOPIC_CATALOG)

    def _set_projects(self, projects: List[Project]) -> None:
        self._projects = list(projects)
        self._notify(TOPIC_CATALOG)

    def _set_inventories(self, inventories: List[Inventory]) -> None:
        self._inventories = list(inventories)
        self._notify(TOPIC_CATALOG)

    # ==========================================================================
    # Actions
    # ==========================================================================

    async def launch_job(self, template_id: Optional[int] = None) -> ActionOutcome:
        """
        Launch a job, optionally from a template.

        Not retried on failure: the launch endpoint is not idempotent.
        """
        request = JobLaunchRequest(
            name=f"cli-job-{int(time.time() * 1000)}",
            unified_job_template_id=template_id,
        )
        try:
            job = await self.client.launch_job(request)
        except PlatformError as e:
            logger.warning("job_launch_failed", template_id=template_id, error=str(e))
            return ActionOutcome.request_failed(f"Failed to launch job: {e}")

        logger.info("job_launched", job_id=job.id, template_id=template_id)
        await self.refresh_jobs()
        return ActionOutcome.succeeded(f"Launched job #{job.id}", data=job)
