"""Building telemetry events and appending them to the telemetry log."""

from __future__ import annotations
import json
import logging
import os
from con_telemetry._constants import LOGGER_NAME
from con_telemetry._models import (
    EventType,
    InvocationContext,
    ProcessOutcome,
    TelemetryEvent,
)

lgr = logging.getLogger(LOGGER_NAME)


class TelemetryLog:
    """Append-only JSON Lines file, one event per line.

    The file is opened for every append and closed right after, so separate
    invocations sharing a path interleave whole lines only. Failures never
    propagate: telemetry is best-effort.
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def __repr__(self) -> str:
        return f"TelemetryLog({self.path!r})"

    def prepare(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            try:
                os.makedirs(directory, exist_ok=True)
            except OSError as exc:
                lgr.warning(
                    "Cannot create telemetry directory %s: %s", directory, exc
                )

    def append(self, event: TelemetryEvent) -> bool:
        try:
            line = json.dumps(event.for_json())
        except (TypeError, ValueError) as exc:
            lgr.warning(
                "Dropping %s event, cannot serialize: %s", event.event_type, exc
            )
            return False
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as exc:
            lgr.warning(
                "Dropping %s event, cannot write to %s: %s",
                event.event_type,
                self.path,
                exc,
            )
            return False
        return True


def start_event(context: InvocationContext, timestamp: float) -> TelemetryEvent:
    return TelemetryEvent(
        event_type=EventType.PROCESS_START,
        timestamp=timestamp,
        context=context,
        env=dict(context.env),
    )


def end_event(context: InvocationContext, outcome: ProcessOutcome) -> TelemetryEvent:
    # env is only recorded once, in the start event
    return TelemetryEvent(
        event_type=EventType.PROCESS_END,
        timestamp=outcome.end_time,
        context=context,
        duration_ms=outcome.duration_ms,
        exit_code=outcome.exit_code,
        stdout_lines=list(outcome.stdout.lines),
        stderr_lines=list(outcome.stderr.lines),
        stdout_size_bytes=outcome.stdout.size_bytes,
        stderr_size_bytes=outcome.stderr.size_bytes,
    )


def stats_event(context: InvocationContext, outcome: ProcessOutcome) -> TelemetryEvent:
    return TelemetryEvent(
        event_type=EventType.PROCESS_STATS,
        timestamp=outcome.end_time,
        context=context,
        duration_ms=outcome.duration_ms,
        exit_code=outcome.exit_code,
        stdout_size_bytes=outcome.stdout.size_bytes,
        stderr_size_bytes=outcome.stderr.size_bytes,
        stats=outcome.stats(),
    )
