"""
Run log tailing.

The RunLogTailer keeps the event history of a single run. Every fetch reads
the full server-side event list (reads are idempotent) and merges it into
the retained set keyed by ``seq``; the server copy wins on conflict. The
exposed sequence is always sorted ascending by ``seq`` with no duplicates.
"""

from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

import structlog

from praetor_monitor.telemetry.classifier import Category, StyledSpan, classify, decode_ansi, is_renderable
from praetor_monitor.telemetry.clients.platform import PlatformClient
from praetor_monitor.telemetry.schemas import JobEvent

logger = structlog.get_logger(__name__)


class LogLine(NamedTuple):
    """One renderable physical line of run output."""

    seq: int
    category: Category
    spans: Tuple[StyledSpan, ...]
    task_name: Optional[str] = None

    @property
    def text(self) -> str:
        return "".join(span.text for span in self.spans)


class RunLogTailer:
    """
    Event buffer for one run id.

    The tailer has no notion of completion; callers decide when to stop
    polling based on the bound job's status.
    """

    def __init__(self, run_id: str, client: PlatformClient):
        if not run_id:
            raise ValueError("run_id is required")
        self.run_id = run_id
        self.client = client
        self._events: Dict[int, JobEvent] = {}
        self._ordered: List[JobEvent] = []
        self.fetch_count = 0

    @property
    def events(self) -> List[JobEvent]:
        """Retained events sorted ascending by ``seq``."""
        return list(self._ordered)

    @property
    def last_seq(self) -> Optional[int]:
        return self._ordered[-1].seq if self._ordered else None

    def __len__(self) -> int:
        return len(self._ordered)

    async def pull(self) -> List[JobEvent]:
        """Fetch the run's current event list without touching the buffer."""
        return await self.client.list_run_events(self.run_id)

    def merge(self, fetched: Iterable[JobEvent]) -> List[JobEvent]:
        """
        Merge fetched events into the retained set.

        Events tagged with a different run id are ignored. Returns the
        ordered sequence after the merge.
        """
        added = 0
        replaced = 0
        for event in fetched:
            if event.current_run_id and event.current_run_id != self.run_id:
                logger.warning(
                    "run_event_foreign",
                    run_id=self.run_id,
                    event_run_id=event.current_run_id,
                    seq=event.seq,
                )
                continue
            if event.seq in self._events:
                replaced += 1
            else:
                added += 1
            self._events[event.seq] = event

        if added or replaced:
            self._ordered = [self._events[seq] for seq in sorted(self._events)]

        self.fetch_count += 1
        if added:
            logger.debug("run_events_merged", run_id=self.run_id, added=added, total=len(self._ordered))
        return self.events

    async def fetch(self) -> List[JobEvent]:
        """Pull the server's event list and merge it."""
        return self.merge(await self.pull())

    def lines(self) -> List[LogLine]:
        """
        Classified output lines in ``seq`` order.

        Events with blank output stay in the buffer but produce no lines.
        The category comes from the whole snippet, so every physical line of
        a multi-line event carries that event's category.
        """
        out: List[LogLine] = []
        for event in self._ordered:
            if not is_renderable(event.stdout_snippet):
                continue
            category = classify(event.stdout_snippet).category
            for raw in event.stdout_snippet.splitlines():
                spans = tuple(decode_ansi(raw))
                # lines holding nothing but escape sequences render as blank
                if not is_renderable("".join(span.text for span in spans)):
                    continue
                out.append(LogLine(event.seq, category, spans, event.task_name))
        return out

    def clear(self) -> None:
        """Release the retained events."""
        self._events.clear()
        self._ordered = []
