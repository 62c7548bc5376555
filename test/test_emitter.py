from __future__ import annotations
import json
import logging
from pathlib import Path
import pytest
from con_telemetry._emitter import TelemetryLog, end_event, start_event, stats_event
from con_telemetry._models import (
    CapturedStream,
    EventType,
    InvocationContext,
    ProcessOutcome,
    TelemetryEvent,
)


@pytest.fixture
def context() -> InvocationContext:
    return InvocationContext(
        session_id="abc",
        pid=100,
        ppid=1,
        cwd="/work",
        env={"HOME": "/root", "LANG": "C"},
        command=["echo", "hello"],
    )


@pytest.fixture
def outcome() -> ProcessOutcome:
    return ProcessOutcome(
        exit_code=3,
        start_time=1000.0,
        end_time=1001.5,
        stdout=CapturedStream(lines=("hello",), size_bytes=6),
        stderr=CapturedStream(lines=("a", "b"), size_bytes=4),
    )


def test_append_creates_file_and_appends(
    tmp_path: Path, context: InvocationContext
) -> None:
    path = tmp_path / "log.jsonl"
    log = TelemetryLog(str(path))
    assert log.append(start_event(context, 1.0))
    assert log.append(start_event(context, 2.0))
    lines = path.read_text().splitlines()
    assert len(lines) == 2
    assert [json.loads(line)["timestamp"] for line in lines] == [1.0, 2.0]


def test_append_never_truncates(tmp_path: Path, context: InvocationContext) -> None:
    path = tmp_path / "log.jsonl"
    path.write_text('{"existing": true}\n')
    TelemetryLog(str(path)).append(start_event(context, 1.0))
    lines = path.read_text().splitlines()
    assert json.loads(lines[0]) == {"existing": True}
    assert json.loads(lines[1])["event_type"] == "process_start"


def test_prepare_creates_directories(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "dir" / "log.jsonl"
    TelemetryLog(str(path)).prepare()
    assert path.parent.is_dir()
    assert not path.exists()


def test_append_failure_is_dropped(
    tmp_path: Path, context: InvocationContext, caplog: pytest.LogCaptureFixture
) -> None:
    # a directory cannot be opened for appending
    log = TelemetryLog(str(tmp_path))
    caplog.set_level(logging.WARNING)
    assert log.append(start_event(context, 1.0)) is False
    assert "cannot write" in caplog.text


def test_unserializable_event_is_dropped(
    tmp_path: Path, context: InvocationContext
) -> None:
    path = tmp_path / "log.jsonl"
    event = TelemetryEvent(
        event_type=EventType.PROCESS_END,
        timestamp=1.0,
        context=context,
        stats={"not json": object()},
    )
    assert TelemetryLog(str(path)).append(event) is False
    assert not path.exists()


def test_record_is_single_line(tmp_path: Path) -> None:
    context = InvocationContext(
        session_id="s",
        pid=1,
        ppid=0,
        cwd="/",
        env={"MULTI": "line\nvalue", "BYTES": "\udcff"},
        command=["x"],
    )
    path = tmp_path / "log.jsonl"
    assert TelemetryLog(str(path)).append(start_event(context, 1.0))
    lines = path.read_text().splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0])["env"]["MULTI"] == "line\nvalue"


def test_start_event(context: InvocationContext) -> None:
    record = start_event(context, 1234.5).for_json()
    assert record["event_type"] == "process_start"
    assert record["timestamp"] == 1234.5
    assert record["env"] == {"HOME": "/root", "LANG": "C"}
    assert record["session_id"] == "abc"
    assert record["command"] == ["echo", "hello"]
    assert record["cwd"] == "/work"
    assert record["pid"] == 100
    assert record["ppid"] == 1
    for key in ("duration_ms", "exit_code", "stdout_lines", "stats"):
        assert record[key] is None


def test_end_event(context: InvocationContext, outcome: ProcessOutcome) -> None:
    record = end_event(context, outcome).for_json()
    assert record["event_type"] == "process_end"
    assert record["timestamp"] == 1001.5
    assert record["env"] is None
    assert record["duration_ms"] == 1500
    assert record["exit_code"] == 3
    assert record["stdout_lines"] == ["hello"]
    assert record["stderr_lines"] == ["a", "b"]
    assert record["stdout_size_bytes"] == 6
    assert record["stderr_size_bytes"] == 4
    assert record["stats"] is None


def test_stats_event(context: InvocationContext, outcome: ProcessOutcome) -> None:
    record = stats_event(context, outcome).for_json()
    assert record["event_type"] == "process_stats"
    assert record["env"] is None
    assert record["stdout_lines"] is None
    assert record["stderr_lines"] is None
    assert record["stdout_size_bytes"] == 6
    assert record["stderr_size_bytes"] == 4
    assert record["stats"] == {
        "start_time": 1000.0,
        "end_time": 1001.5,
        "duration_ms": 1500,
        "exit_code": 3,
        "signal": None,
        "stdout_lines": 1,
        "stderr_lines": 2,
        "total_output_bytes": 10,
    }


def test_events_get_distinct_ids(
    context: InvocationContext, outcome: ProcessOutcome
) -> None:
    ids = {
        start_event(context, 1.0).event_id,
        end_event(context, outcome).event_id,
        stats_event(context, outcome).event_id,
    }
    assert len(ids) == 3


def test_repr() -> None:
    assert repr(TelemetryLog("a/b.jsonl")) == "TelemetryLog('a/b.jsonl')"
