from __future__ import annotations
from collections.abc import Iterable
from importlib.metadata import version
import logging
import sys
import time
from typing import IO
from con_telemetry._config import (
    EXECUTION_SUMMARY_FORMAT,
    TelemetryConfig,
    default_telemetry_log,
)
from con_telemetry._constants import (
    EXIT_COMMAND_NOT_EXECUTABLE,
    EXIT_COMMAND_NOT_FOUND,
    LOGGER_NAME,
)
from con_telemetry._drain import ENCODING, ERRORS
from con_telemetry._emitter import TelemetryLog, end_event, start_event, stats_event
from con_telemetry._formatter import SummaryFormatter
from con_telemetry._models import InvocationContext, ProcessOutcome, StdinMode
from con_telemetry._signals import SigIntHandler, sigint_handled
from con_telemetry._supervisor import ProcessSupervisor

__version__ = version("con-telemetry")

lgr = logging.getLogger(LOGGER_NAME)

__all__ = [
    "EXECUTION_SUMMARY_FORMAT",
    "StdinMode",
    "SummaryFormatter",
    "TelemetryConfig",
    "default_telemetry_log",
    "execute",
    "mirror_lines",
]


def mirror_lines(lines: Iterable[str], stream: IO[str]) -> None:
    """Write captured lines to one of our own streams, terminator re-added."""
    stream.flush()
    buffer = getattr(stream, "buffer", None)
    if buffer is None:
        # a text-only replacement, e.g. io.StringIO
        for line in lines:
            stream.write(line + "\n")
        stream.flush()
        return
    for line in lines:
        buffer.write(line.encode(ENCODING, ERRORS) + b"\n")
    buffer.flush()


def format_summary(
    config: TelemetryConfig, outcome: ProcessOutcome, context: InvocationContext
) -> str:
    formatter = SummaryFormatter(enable_colors=config.colors)
    return formatter.format(
        config.summary_format,
        session_id=context.session_id,
        command=" ".join(context.command),
        exit_code=outcome.exit_code,
        start_time=outcome.start_time,
        end_time=outcome.end_time,
        duration_ms=outcome.duration_ms,
        stdout_lines=outcome.stdout.line_count,
        stdout_size_bytes=outcome.stdout.size_bytes,
        stderr_lines=outcome.stderr.line_count,
        stderr_size_bytes=outcome.stderr.size_bytes,
        total_output_bytes=outcome.total_output_bytes,
        telemetry_log=config.log_path,
    )


def execute(command: str, command_args: list[str], config: TelemetryConfig) -> int:
    """Run a command, mirror its output and record telemetry about it.

    Returns exit code of the executed process.
    """
    full_command = [str(command)] + list(command_args)
    telemetry_log = TelemetryLog(config.log_path)
    telemetry_log.prepare()

    start_time = time.time()
    context = InvocationContext.capture(config.session_id, full_command)
    # Written before spawning, so a failed spawn leaves a start without an end
    telemetry_log.append(start_event(context, start_time))

    lgr.info("[%s] Executing: %s", config.session_id, " ".join(full_command))
    supervisor = ProcessSupervisor(full_command, stdin_mode=config.stdin_mode)
    try:
        with sigint_handled(SigIntHandler(supervisor)):
            exit_code, stdout, stderr = supervisor.run()
    except FileNotFoundError:
        lgr.error("%s: command not found", command)
        return EXIT_COMMAND_NOT_FOUND
    except OSError as exc:
        lgr.error("%s: cannot execute: %s", command, exc)
        return EXIT_COMMAND_NOT_EXECUTABLE
    outcome = ProcessOutcome(
        exit_code=exit_code,
        start_time=start_time,
        end_time=time.time(),
        stdout=stdout,
        stderr=stderr,
    )

    mirror_lines(stdout.lines, sys.stdout)
    mirror_lines(stderr.lines, sys.stderr)

    telemetry_log.append(end_event(context, outcome))
    telemetry_log.append(stats_event(context, outcome))

    lgr.info(format_summary(config, outcome, context))
    return outcome.exit_code
