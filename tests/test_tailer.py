import asyncio

import pytest

from praetor_monitor.telemetry.classifier import Category
from praetor_monitor.telemetry.schemas import JobEvent
from praetor_monitor.telemetry.tailer import RunLogTailer


def event(seq, snippet="", **extra):
    return JobEvent(seq=seq, stdout_snippet=snippet, **extra)


def test_merge_orders_by_seq_without_duplicates(make_client, platform):
    tailer = RunLogTailer("r1", make_client(platform))

    tailer.merge([event(3, "c"), event(1, "a")])
    tailer.merge([event(2, "b"), event(3, "c"), event(1, "a")])

    assert [e.seq for e in tailer.events] == [1, 2, 3]
    assert tailer.last_seq == 3
    assert len(tailer) == 3


def test_refetch_without_new_events_is_a_no_op(make_client, platform):
    tailer = RunLogTailer("r1", make_client(platform))
    first = tailer.merge([event(1, "TASK [setup]"), event(2, "ok: [h1]")])
    second = tailer.merge([event(2, "ok: [h1]"), event(1, "TASK [setup]")])

    assert first == second
    assert tailer.fetch_count == 2


def test_server_copy_wins_on_conflict(make_client, platform):
    tailer = RunLogTailer("r1", make_client(platform))
    tailer.merge([event(1, "ok: [h1]")])
    tailer.merge([event(1, "changed: [h1]")])

    assert tailer.events[0].stdout_snippet == "changed: [h1]"


def test_events_from_another_run_are_ignored(make_client, platform):
    tailer = RunLogTailer("r1", make_client(platform))
    tailer.merge([
        event(1, "ok: [h1]", current_run_id="r1"),
        event(2, "ok: [h2]", current_run_id="r9"),
        event(3, "ok: [h3]"),
    ])

    assert [e.seq for e in tailer.events] == [1, 3]


def test_empty_snippets_are_kept_but_not_rendered(make_client, platform):
    tailer = RunLogTailer("r1", make_client(platform))
    tailer.merge([event(1, ""), event(2, "TASK [x]"), event(3, None), event(4, "  ")])

    assert [e.seq for e in tailer.events] == [1, 2, 3, 4]
    lines = tailer.lines()
    assert [(line.seq, line.category) for line in lines] == [(2, Category.HEADER)]


def test_multiline_snippet_yields_one_line_per_physical_line(make_client, platform):
    tailer = RunLogTailer("r1", make_client(platform))
    tailer.merge([event(1, "TASK [deploy]\n\nok: [h1]\n\x1b[0m\n"), event(2, "ok: [h2]")])

    lines = tailer.lines()
    assert [(line.seq, line.text, line.category) for line in lines] == [
        (1, "TASK [deploy]", Category.HEADER),
        (1, "ok: [h1]", Category.HEADER),
        (2, "ok: [h2]", Category.OK),
    ]


def test_multiline_failure_is_not_masked_by_changed_lines(make_client, platform):
    tailer = RunLogTailer("r1", make_client(platform))
    snippet = 'fatal: [h1]: FAILED! => {\r\n    "changed": true,\r\n    "msg": "boom"\r\n}'
    tailer.merge([event(1, snippet)])

    lines = tailer.lines()
    assert [line.text for line in lines] == [
        "fatal: [h1]: FAILED! => {",
        '    "changed": true,',
        '    "msg": "boom"',
        "}",
    ]
    assert {line.category for line in lines} == {Category.FAILED}


def test_fetch_reads_run_events(make_client, platform):
    platform.on(
        "GET",
        "/api/v1/jobs/runs/r1/events",
        (200, [{"seq": 2, "stdout_snippet": "ok: [h1]"}, {"seq": 1, "stdout_snippet": "TASK [setup]"}]),
    )
    client = make_client(platform)

    async def scenario():
        tailer = RunLogTailer("r1", client)
        await tailer.fetch()
        await client.close()
        return tailer

    tailer = asyncio.run(scenario())
    assert [line.category for line in tailer.lines()] == [Category.HEADER, Category.OK]
    assert platform.requests[0].headers["Authorization"] == "Bearer secret"


def test_clear_releases_events(make_client, platform):
    tailer = RunLogTailer("r1", make_client(platform))
    tailer.merge([event(1, "a")])
    tailer.clear()
    assert tailer.events == []
    assert tailer.last_seq is None


def test_run_id_is_required(make_client, platform):
    with pytest.raises(ValueError):
        RunLogTailer("", make_client(platform))
