"""Data models and enums for con-telemetry."""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from importlib.metadata import version
import os
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence
import uuid
from con_telemetry._constants import PPID_UNAVAILABLE, __schema_version__

__version__ = version("con-telemetry")


class EventType(str, Enum):
    PROCESS_START = "process_start"
    PROCESS_END = "process_end"
    PROCESS_STATS = "process_stats"

    def __str__(self) -> str:
        return self.value


class StdinMode(str, Enum):
    INHERIT = "inherit"
    PIPE = "pipe"

    def __str__(self) -> str:
        return self.value


def _parent_pid() -> int:
    try:
        return os.getppid()
    except (AttributeError, OSError):
        return PPID_UNAVAILABLE


@dataclass(frozen=True)
class InvocationContext:
    """Who we are and what we were asked to run, captured once per run."""

    session_id: str
    pid: int
    ppid: int
    cwd: str
    env: Mapping[str, str]
    command: tuple[str, ...]

    def __post_init__(self) -> None:
        # Read-only snapshots, the caller keeps no handle on them
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))
        object.__setattr__(self, "command", tuple(self.command))

    @classmethod
    def capture(cls, session_id: str, command: Sequence[str]) -> InvocationContext:
        return cls(
            session_id=session_id,
            pid=os.getpid(),
            ppid=_parent_pid(),
            cwd=os.path.abspath(os.getcwd()),
            env=os.environ,
            command=tuple(command),
        )


@dataclass(frozen=True)
class CapturedStream:
    lines: tuple[str, ...] = ()
    size_bytes: int = 0  # raw bytes read, line terminators included

    @property
    def line_count(self) -> int:
        return len(self.lines)


@dataclass(frozen=True)
class ProcessOutcome:
    exit_code: int
    start_time: float
    end_time: float
    stdout: CapturedStream = field(default_factory=CapturedStream)
    stderr: CapturedStream = field(default_factory=CapturedStream)
    # Reserved, signal decoding is not performed
    signal: Optional[int] = None

    @property
    def duration_ms(self) -> int:
        return max(0, int((self.end_time - self.start_time) * 1000))

    @property
    def total_output_bytes(self) -> int:
        return self.stdout.size_bytes + self.stderr.size_bytes

    def stats(self) -> dict[str, Any]:
        return {
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration_ms": self.duration_ms,
            "exit_code": self.exit_code,
            "signal": self.signal,
            "stdout_lines": self.stdout.line_count,
            "stderr_lines": self.stderr.line_count,
            "total_output_bytes": self.total_output_bytes,
        }


@dataclass(frozen=True)
class TelemetryEvent:
    event_type: EventType
    timestamp: float
    context: InvocationContext
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    env: Optional[dict[str, str]] = None
    duration_ms: Optional[int] = None
    exit_code: Optional[int] = None
    stdout_lines: Optional[list[str]] = None
    stderr_lines: Optional[list[str]] = None
    stdout_size_bytes: Optional[int] = None
    stderr_size_bytes: Optional[int] = None
    stats: Optional[dict[str, Any]] = None
    # Reserved, never populated
    resource_usage: Optional[dict[str, int]] = None
    stdin_provided: Optional[str] = None

    def for_json(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": str(self.event_type),
            "timestamp": self.timestamp,
            "pid": self.context.pid,
            "ppid": self.context.ppid,
            "session_id": self.context.session_id,
            "command": list(self.context.command),
            "cwd": self.context.cwd,
            "env": self.env,
            "resource_usage": self.resource_usage,
            "duration_ms": self.duration_ms,
            "exit_code": self.exit_code,
            "stdout_lines": self.stdout_lines,
            "stderr_lines": self.stderr_lines,
            "stdin_provided": self.stdin_provided,
            "stdout_size_bytes": self.stdout_size_bytes,
            "stderr_size_bytes": self.stderr_size_bytes,
            "stats": self.stats,
            "schema_version": __schema_version__,
            "telemetry_version": __version__,
        }
