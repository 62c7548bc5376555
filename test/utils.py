from __future__ import annotations
import json
from pathlib import Path
import sys
from typing import Any

TEST_SCRIPT_DIR = Path(__file__).with_name("data")


def python_script(name: str, *args: Any) -> list[str]:
    """Command line running one of the helper scripts under test/data."""
    return [sys.executable, str(TEST_SCRIPT_DIR / name)] + [str(a) for a in args]


def run_telemetry_command(
    cli_args: list[str], telemetry_log: str, **kwargs: Any
) -> int:
    """Helper to run the driver with test-friendly defaults.

    Args:
        cli_args: Command and its arguments as a list (e.g., ["echo", "hello"])
        telemetry_log: Path the records get appended to
        **kwargs: Override any TelemetryConfig field

    Returns:
        Exit code from the executed command
    """
    from con_telemetry.telemetry_main import TelemetryConfig
    from con_telemetry.telemetry_main import execute as telemetry_execute

    defaults: dict[str, Any] = {"session_id": "test-session"}
    defaults.update(kwargs)
    config = TelemetryConfig.create(log_path=telemetry_log, environ={}, **defaults)
    return telemetry_execute(cli_args[0], cli_args[1:], config)


def read_records(telemetry_log: str) -> list[dict[str, Any]]:
    with open(telemetry_log, encoding="utf-8") as f:
        return [json.loads(line) for line in f]
