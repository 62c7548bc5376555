"""Run configuration, resolved once at startup."""

from __future__ import annotations
from collections.abc import Mapping
from dataclasses import dataclass
import os
import time
from typing import Optional
import uuid
from con_telemetry._constants import DEFAULT_TELEMETRY_LOG, ENV_LOG, ENV_SESSION_ID
from con_telemetry._models import StdinMode

EXECUTION_SUMMARY_FORMAT = (
    "[{session_id}] Completed in {duration_ms!M} | Exit: {exit_code!E} | "
    "Out: {stdout_lines} lines/{stdout_size_bytes} bytes | "
    "Err: {stderr_lines} lines/{stderr_size_bytes} bytes | "
    "Telemetry: {telemetry_log}"
)


def default_telemetry_log(template: str = DEFAULT_TELEMETRY_LOG) -> str:
    return template.format(epoch=int(time.time()), pid=os.getpid())


@dataclass(frozen=True)
class TelemetryConfig:
    session_id: str
    log_path: str
    stdin_mode: StdinMode = StdinMode.INHERIT
    summary_format: str = EXECUTION_SUMMARY_FORMAT
    colors: bool = False

    @classmethod
    def create(
        cls,
        session_id: Optional[str] = None,
        log_path: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
        **kwargs,
    ) -> TelemetryConfig:
        """Fill in whatever was not given explicitly from ``environ``.

        Explicit values win over TELEMETRY_SESSION_ID and TELEMETRY_LOG, which
        win over a fresh uuid4 and the timestamped default log path.
        """
        if environ is None:
            environ = os.environ
        if not session_id:
            session_id = environ.get(ENV_SESSION_ID) or str(uuid.uuid4())
        if not log_path:
            log_path = environ.get(ENV_LOG) or default_telemetry_log()
        return cls(
            session_id=session_id,
            log_path=os.path.expanduser(log_path),
            **kwargs,
        )
