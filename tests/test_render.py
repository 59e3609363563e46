from rich.console import Console

from praetor_monitor.telemetry.classifier import Category, classify
from praetor_monitor.telemetry.render import CATEGORY_COLORS, jobs_table, render_line, render_log
from praetor_monitor.telemetry.schemas import Job
from praetor_monitor.telemetry.tailer import LogLine


def to_text(renderable, width=120):
    console = Console(width=width, color_system=None, record=True)
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def test_markup_in_output_is_rendered_literally():
    line = classify("ok: [h1] => [bold red]<script>alert(1)</script>[/]")
    text = render_line(line)
    assert text.plain == "ok: [h1] => [bold red]<script>alert(1)</script>[/]"
    assert str(text.style) == CATEGORY_COLORS[Category.OK]


def test_ansi_spans_keep_their_styles():
    text = render_line(classify("\x1b[1;31mfatal:\x1b[0m unreachable"))
    assert text.plain == "fatal: unreachable"
    assert len(text.spans) == 1
    span = text.spans[0]
    assert (span.start, span.end) == (0, 6)
    assert span.style.bold
    assert span.style.color.name == "red"


def test_render_log_waiting_message_and_limit():
    assert render_log([]).plain == "Waiting for logs..."

    lines = [LogLine(seq, *classify(f"ok: [h{seq}]")) for seq in range(1, 6)]
    assert render_log(lines, limit=2).plain == "ok: [h4]\nok: [h5]"


def test_jobs_table_lists_jobs():
    output = to_text(jobs_table([Job(id=3, name="nightly", status="failed", current_run_id="r3")]))
    assert "#3" in output
    assert "nightly" in output
    assert "failed" in output

    assert "No jobs found" in to_text(jobs_table([]))
