"""Centralized JSON file type detection and loading for con-telemetry."""

from __future__ import annotations
import json
import logging
from typing import Any
from con_telemetry._constants import LOGGER_NAME

lgr = logging.getLogger(LOGGER_NAME)


def is_jsonl_file(path: str) -> bool:
    """Check if path is a JSON Lines file (telemetry logs are)."""
    return path.endswith(".jsonl")


def load_telemetry_log(path: str) -> list[dict[str, Any]]:
    """Load all records of a telemetry log.

    Several runs may append to the same log, so a damaged line only costs
    that one record.
    """
    records: list[dict[str, Any]] = []
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as exc:
                lgr.warning("Skipping malformed record %s:%d: %s", path, lineno, exc)
                continue
            if not isinstance(record, dict):
                lgr.warning("Skipping non-object record %s:%d", path, lineno)
                continue
            records.append(record)
    return records


def load_json_file(path: str) -> Any:
    """Load a standard JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
