import argparse
from collections import OrderedDict
import glob
import json
import logging
import os
import re
from types import ModuleType
from typing import Any, Dict, List, Optional, Tuple
from con_telemetry._constants import DEFAULT_TELEMETRY_LOG, ENV_LOG
from con_telemetry._formatter import SummaryFormatter
from con_telemetry._models import EventType
from con_telemetry.json_utils import load_telemetry_log

try:
    import pyout  # type: ignore
except ImportError:
    pyout = None

try:
    import yaml
except ImportError:
    yaml: Optional[ModuleType] = None  # type: ignore


lgr = logging.getLogger(__name__)

VALUE_TRANSFORMATION_MAP: Dict[str, str] = {
    "duration_ms": "{value!M}",
    "end_time": "{value!D}",
    "exit_code": "{value!E}",
    "start_time": "{value!D}",
    "stderr_size_bytes": "{value!S}",
    "stdout_size_bytes": "{value!S}",
    "total_output_bytes": "{value!S}",
}

NON_TRANSFORMED_FIELDS: List[str] = [
    "command",
    "cwd",
    "log",
    "pid",
    "session_id",
    "status",
    "stderr_lines",
    "stdout_lines",
]

LS_FIELD_CHOICES: List[str] = (
    list(VALUE_TRANSFORMATION_MAP.keys()) + NON_TRANSFORMED_FIELDS
)

STATUS_COMPLETE = "complete"
STATUS_INCOMPLETE = "incomplete"


def _merge_record(session: Dict[str, Any], record: Dict[str, Any]) -> None:
    event_type = record.get("event_type")
    if event_type == EventType.PROCESS_START:
        session["command"] = " ".join(record.get("command") or [])
        session["cwd"] = record.get("cwd")
        session["pid"] = record.get("pid")
        session["start_time"] = record.get("timestamp")
    elif event_type == EventType.PROCESS_END:
        session["status"] = STATUS_COMPLETE
        session["end_time"] = record.get("timestamp")
        for key in (
            "exit_code",
            "duration_ms",
            "stdout_size_bytes",
            "stderr_size_bytes",
        ):
            session[key] = record.get(key)
        for key in ("stdout_lines", "stderr_lines"):
            lines = record.get(key)
            session[key] = len(lines) if isinstance(lines, list) else None
    elif event_type == EventType.PROCESS_STATS:
        stats = record.get("stats") or {}
        session["status"] = STATUS_COMPLETE
        for key, value in stats.items():
            if key in LS_FIELD_CHOICES:
                session[key] = value
    else:
        lgr.debug("Ignoring record of unknown type %r", event_type)


def load_sessions(
    log_files: List[str], eval_filter: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Group records of all ``log_files`` into one entry per run.

    A session id may be shared by several runs, so records are matched on
    session id and wrapper pid, and every ``process_start`` opens a new entry.
    """
    sessions: List[Dict[str, Any]] = []
    # latest entry per (session_id, pid)
    open_runs: Dict[Tuple[str, Any], Dict[str, Any]] = {}
    for log_file in log_files:
        try:
            records = load_telemetry_log(log_file)
        except (OSError, UnicodeDecodeError) as exc:
            lgr.warning("Failed to load file %s: %s", log_file, exc)
            continue
        for record in records:
            session_id = record.get("session_id")
            if session_id is None:
                lgr.debug("Skipping record without session_id in %s", log_file)
                continue
            key = (session_id, record.get("pid"))
            session = open_runs.get(key)
            if session is None or (
                record.get("event_type") == EventType.PROCESS_START
                and "pid" in session
            ):
                session = {
                    "session_id": session_id,
                    "log": log_file,
                    "status": STATUS_INCOMPLETE,
                }
                open_runs[key] = session
                sessions.append(session)
            _merge_record(session, record)

    loaded: List[Dict[str, Any]] = []
    for session in sessions:
        if eval_filter is not None and not (
            eval_results := eval(eval_filter, dict(session), dict(re=re))
        ):
            lgr.debug(
                "Filtering out %s due to filter results matching: %s",
                session["session_id"],
                eval_results,
            )
            continue
        loaded.append(session)
    loaded.sort(key=lambda s: s.get("start_time") or 0)
    return loaded


def _restrict_row(field_list: List[str], row: Dict[str, Any]) -> OrderedDict[str, Any]:
    restricted: OrderedDict[str, Any] = OrderedDict()
    # session_id is the "primary key", always shown first
    restricted["session_id"] = row["session_id"]
    for field in field_list:
        if field != "session_id":
            restricted[field] = row.get(field)
    return restricted


def _format_row(
    row: OrderedDict[str, Any], formatter: SummaryFormatter
) -> OrderedDict[str, Any]:
    transformed: OrderedDict[str, Any] = OrderedDict()
    for col, value in row.items():
        transformation: Optional[str] = VALUE_TRANSFORMATION_MAP.get(col)
        if transformation is not None:
            value = formatter.format(transformation, value=value)
        transformed[col] = value
    return transformed


def process_session_data(
    sessions: List[Dict[str, Any]], fields: List[str], formatter: SummaryFormatter
) -> List[OrderedDict[str, Any]]:
    return [_format_row(_restrict_row(fields, row), formatter) for row in sessions]


def pyout_ls(rows: List[OrderedDict[str, Any]], enable_colors: bool) -> None:
    """Generate and print a tabular table using pyout."""
    if pyout is None:
        raise RuntimeError("pyout is required for this output format.")

    style: Dict[str, Any] = dict(header_=dict(bold=True, transform=str.upper))
    if enable_colors:
        style["exit_code"] = dict(
            color=dict(re_lookup=[["^0$", "green"], [".*", "red"]])
        )
        style["status"] = dict(
            color=dict(re_lookup=[[f"^{STATUS_COMPLETE}$", "green"], [".*", "red"]])
        )
    with pyout.Tabular(style=style, mode="final") as table:
        for row in rows:
            table(row)


def default_log_files() -> List[str]:
    pattern = DEFAULT_TELEMETRY_LOG.format(epoch="*", pid="*")
    paths = sorted(glob.glob(pattern))
    env_log = os.environ.get(ENV_LOG)
    if env_log and os.path.exists(env_log) and env_log not in paths:
        paths.append(env_log)
    return paths


def ls(args: argparse.Namespace) -> int:
    if not args.paths:
        args.paths = default_log_files()

    if args.format == "auto":
        args.format = "summaries" if pyout is None else "pyout"

    formatter = SummaryFormatter(
        enable_colors=False if args.format == "pyout" else args.colors
    )
    sessions = load_sessions(args.paths, args.eval_filter)
    if args.reverse:
        sessions.reverse()
    output_rows = process_session_data(sessions, args.fields, formatter)

    if args.format == "summaries":
        for row in output_rows:
            for col, value in row.items():
                if not col == "session_id":
                    col = f"\t{col}"
                print(f"{col.replace('_', ' ').title()}: {value}")
    elif args.format == "pyout":
        pyout_ls(output_rows, args.colors)
    elif args.format == "json":
        print(json.dumps(output_rows))
    elif args.format == "json_pp":
        print(json.dumps(output_rows, indent=2))
    elif args.format == "yaml":
        if yaml is None:
            raise RuntimeError("Install PyYaml for yaml output")
        plain_rows = [dict(row) for row in output_rows]
        print(yaml.dump(plain_rows, default_flow_style=False))
    else:
        raise RuntimeError(
            f"Unexpected format encountered: {args.format}. "
            "This should have been caught by argparse.",
        )
    return 0
