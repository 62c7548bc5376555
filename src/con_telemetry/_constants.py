"""Constants used throughout con-telemetry."""

import os
import tempfile

__schema_version__ = "0.1.0"

LOGGER_NAME = "con-telemetry"

ENV_SESSION_ID = "TELEMETRY_SESSION_ID"
ENV_LOG = "TELEMETRY_LOG"

# Used when the child's exit status cannot be expressed as an exit code
EXIT_CODE_UNAVAILABLE = -1
PPID_UNAVAILABLE = 0

# Mimicking the shells
EXIT_COMMAND_NOT_FOUND = 127
EXIT_COMMAND_NOT_EXECUTABLE = 126

DEFAULT_TELEMETRY_LOG = os.path.join(
    tempfile.gettempdir(), "con_telemetry_{epoch}.jsonl"
)
