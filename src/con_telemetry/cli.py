import argparse
import logging
import os
import re
import sys
import textwrap
from typing import List, Optional
from con_telemetry import __version__
from con_telemetry.ls import LS_FIELD_CHOICES, ls
from con_telemetry.pprint_json import pprint_json
from con_telemetry.telemetry_main import (
    EXECUTION_SUMMARY_FORMAT,
    StdinMode,
    TelemetryConfig,
)
from con_telemetry.telemetry_main import execute as telemetry_execute

# Default .env file search paths (in precedence order)
DEFAULT_CONFIG_PATHS_LIST = (
    "/etc/con-telemetry/.env",
    "${XDG_CONFIG_HOME:-~/.config}/con-telemetry/.env",
    ".con-telemetry/.env",
)
DEFAULT_CONFIG_PATHS = os.pathsep.join(DEFAULT_CONFIG_PATHS_LIST)

USAGE_EXIT_CODE = 1

lgr = logging.getLogger("con-telemetry")


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


_VAR_REFERENCE = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def _expand_config_paths(paths: str) -> List[str]:
    """Split a path list, expanding ``${VAR}``, ``${VAR:-default}`` and ``~``."""
    expanded = _VAR_REFERENCE.sub(
        lambda m: os.environ.get(m.group(1)) or (m.group(2) or ""), paths
    )
    return [
        os.path.expanduser(p.strip()) for p in expanded.split(os.pathsep) if p.strip()
    ]


def load_env_files() -> List[tuple[str, str]]:
    """Load .env files listed in TELEMETRY_CONFIG_PATHS into the environment.

    Later files win over earlier ones, and variables already present in the
    environment are never overridden. Log messages are returned as
    (level_name, message) pairs, logging is not configured yet.
    """
    try:
        from dotenv import dotenv_values
    except ImportError:
        return [("INFO", "python-dotenv not installed, skipping .env file loading")]

    messages: List[tuple[str, str]] = []
    values: dict[str, str] = {}
    found = 0
    for path in _expand_config_paths(
        os.getenv("TELEMETRY_CONFIG_PATHS", DEFAULT_CONFIG_PATHS)
    ):
        if not os.path.isfile(path):
            messages.append(("DEBUG", f".env file not found (skipping): {path}"))
            continue
        try:
            loaded = dotenv_values(path)
        except (OSError, ValueError) as e:
            messages.append(("WARNING", f"Cannot read .env file {path}: {e}"))
            continue
        found += 1
        messages.append(("INFO", f"Loaded .env file: {path}"))
        values.update({k: v for k, v in loaded.items() if v is not None})

    if not found:
        messages.append(("DEBUG", "No .env files found"))
    for key, value in values.items():
        os.environ.setdefault(key, value)
    return messages


def _replay_early_logs(log_buffer: List[tuple[str, str]]) -> None:
    """Replay buffered .env loading messages once logging is configured."""
    for level_name, message in log_buffer:
        lgr.log(getattr(logging, level_name), message)


# Format default config paths as a bulleted list for help text
_config_paths_list = "\n".join(f"    - {path}" for path in DEFAULT_CONFIG_PATHS_LIST)

ABOUT_TELEMETRY = f"""
con-telemetry run (also installed as 'telemetry-driver') executes a command,
passes its stdout and stderr through, and appends a JSON lines (see
https://jsonlines.org) telemetry trail describing the invocation: the command,
its environment, working directory, duration, exit code and captured output.

Three records are appended per run, sharing one session id: process_start
(before the command is spawned), process_end and process_stats. The exit code
of the command is the exit code of the wrapper.

limitations:
  Output is captured in memory and re-emitted once the command finishes, so
  stdout and stderr are not interleaved as the command produced them.
  There is no timeout, the wrapper waits for the command unconditionally.

environment variables:
  TELEMETRY_SESSION_ID: see --session-id
  TELEMETRY_LOG: see --telemetry-log
  TELEMETRY_LOG_LEVEL: see --log-level
  TELEMETRY_STDIN: see --stdin
  TELEMETRY_SUMMARY_FORMAT: see --summary-format
  TELEMETRY_COLORS: see --colors
  TELEMETRY_CONFIG_PATHS: paths to .env files separated by platform path
    separator (':' on Unix). Defaults:

{_config_paths_list}

  Values from .env files (loaded via python-dotenv) never override variables
  already set in the environment.
"""


class CustomHelpFormatter(argparse.ArgumentDefaultsHelpFormatter):
    """Override allows helptext to respect newlines in ABOUT_TELEMETRY"""

    def _fill_text(self, text: str, width: int, _indent: str) -> str:
        return "\n".join([textwrap.fill(line, width) for line in text.splitlines()])


def _create_common_parser() -> argparse.ArgumentParser:
    """Create a parser with common arguments shared across all commands."""
    parser = argparse.ArgumentParser(add_help=False)  # help provided by child
    parser.add_argument(
        "-l",
        "--log-level",
        default=os.getenv("TELEMETRY_LOG_LEVEL", "INFO").upper(),
        choices=("NONE", "CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"),
        type=str.upper,
        help="Level of log output to stderr, use NONE to entirely disable.",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Disable con-telemetry logging output (to stderr), same as log level NONE",
    )
    return parser


def setup_logging(args: argparse.Namespace) -> None:
    log_level = "NONE" if args.quiet else args.log_level
    if log_level == "NONE":
        logging.disable(logging.CRITICAL)
    else:
        logging.basicConfig(
            format="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
            level=log_level,
        )


def _create_run_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the 'run' command."""
    parser = argparse.ArgumentParser(
        allow_abbrev=False,
        description=ABOUT_TELEMETRY,
        formatter_class=CustomHelpFormatter,
        add_help=False,  # help provided by child
    )
    # Optional at the parser level so that a missing command exits with our
    # own usage error code rather than argparse's
    parser.add_argument(
        "command",
        nargs="?",
        help="The command to execute, along with its arguments.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "command_args", nargs=argparse.REMAINDER, help="Arguments for the command."
    )
    parser.add_argument(
        "-s",
        "--session-id",
        type=str,
        default=None,
        help="Identifier shared by all records of this run. "
        "Defaults to TELEMETRY_SESSION_ID, or a freshly generated UUID.",
    )
    parser.add_argument(
        "-t",
        "--telemetry-log",
        type=str,
        default=None,
        help="JSON lines file the records are appended to, created if missing. "
        "Defaults to TELEMETRY_LOG, or a timestamped file in the temporary directory.",
    )
    parser.add_argument(
        "--stdin",
        dest="stdin_mode",
        default=os.getenv("TELEMETRY_STDIN", "inherit"),
        choices=list(StdinMode),
        type=StdinMode,
        help="'inherit' connects our stdin to the command, "
        "'pipe' gives the command an already closed stdin.",
    )
    parser.add_argument(
        "--summary-format",
        type=str,
        default=os.getenv("TELEMETRY_SUMMARY_FORMAT", EXECUTION_SUMMARY_FORMAT),
        help="Output template to use when printing the summary following execution. "
        "Accepts custom conversion flags: "
        "!S: Converts byte counts to human readable sizes. "
        "!E: Colors exit code, green if 0, red otherwise. "
        "!M: Converts milliseconds to a human readable duration. "
        "!D: Converts an epoch timestamp to a date.",
    )
    parser.add_argument(
        "--colors",
        action="store_true",
        default=_env_flag("TELEMETRY_COLORS"),
        help="Use colors in con-telemetry output.",
    )
    return parser


def _create_pp_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the 'pp' command."""
    parser = argparse.ArgumentParser(
        add_help=False,  # help provided by child
    )
    parser.add_argument("file_path", help="Telemetry log or JSON file to pretty print.")
    parser.add_argument(
        "-H",
        "--humanize",
        action="store_true",
        help="Convert sizes, durations and timestamps to human-readable format",
    )
    return parser


def _create_ls_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the 'ls' command."""
    parser = argparse.ArgumentParser(
        add_help=False,  # help provided by child
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=("auto", "pyout", "summaries", "json", "json_pp", "yaml"),
        default="auto",
        help="Output format. 'auto' chooses 'pyout' if pyout library is installed,"
        " 'summaries' otherwise.",
    )
    parser.add_argument(
        "-F",
        "--fields",
        nargs="+",
        metavar="FIELD",
        help="List of fields to show. session_id is always included implicitly as "
        f"the first field. Available choices: {', '.join(sorted(LS_FIELD_CHOICES))}.",
        choices=LS_FIELD_CHOICES,
        default=[
            "command",
            "exit_code",
            "duration_ms",
            "total_output_bytes",
            "status",
        ],
    )
    parser.add_argument(
        "--colors",
        action="store_true",
        default=_env_flag("TELEMETRY_COLORS"),
        help="Use colors in con-telemetry output.",
    )
    parser.add_argument(
        "paths",
        nargs="*",
        help="Paths to telemetry logs. If not provided, the program will glob for "
        "logs at the default location and add TELEMETRY_LOG if it is set.",
    )
    parser.add_argument(
        "-e",
        "--eval-filter",
        help="Python expression to filter sessions based on available fields. "
        "The expression is evaluated for each session, and only those that return "
        "True are included. See --fields for all supported fields. "
        "Example: --eval-filter \"exit_code != 0\". "
        "You can use 're' for regex operations "
        "(e.g., --eval-filter \"re.search('^make', command)\").",
    )
    parser.add_argument(
        "--reverse",
        action="store_true",
        help="List sessions in reverse order (most recent first).",
    )
    return parser


def run_command(args: argparse.Namespace) -> int:
    """Execute a command, recording its telemetry."""
    if args.command is None:
        print(
            "usage: con-telemetry run [options] <command> [args...]", file=sys.stderr
        )
        print("error: no command to execute was given", file=sys.stderr)
        return USAGE_EXIT_CODE
    config = TelemetryConfig.create(
        session_id=args.session_id,
        log_path=args.telemetry_log,
        stdin_mode=args.stdin_mode,
        summary_format=args.summary_format,
        colors=args.colors,
    )
    return telemetry_execute(args.command, args.command_args, config)


def execute(args: argparse.Namespace) -> int:
    """Execute the subcommand function and return its exit code."""
    result = args.func(args)
    if not isinstance(result, int):
        raise TypeError(
            "Each con-telemetry subcommand must return an int returncode, "
            f"got {type(result)}"
        )
    return result


def telemetry_entrypoint() -> None:
    """Entry point for 'telemetry-driver', same as 'con-telemetry run'."""
    main(["run"] + sys.argv[1:])


def main(argv: Optional[List[str]] = None) -> None:
    # Load .env files before parser creation so defaults pick up env vars
    env_log_buffer = load_env_files()

    parser = argparse.ArgumentParser(
        prog="con-telemetry",
        description="Run commands with telemetry and inspect telemetry logs.",
        usage="con-telemetry <command> [options]",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    common_parser = _create_common_parser()
    subparsers = parser.add_subparsers(
        dest="subcommand", help="Available subcommands"
    )

    parser_run = subparsers.add_parser(
        "run",
        help="Execute a command and record its telemetry.",
        description=ABOUT_TELEMETRY,
        parents=[common_parser, _create_run_parser()],
        formatter_class=CustomHelpFormatter,
        allow_abbrev=False,
        prog="con-telemetry run",
    )
    parser_run.set_defaults(func=run_command)

    parser_pp = subparsers.add_parser(
        "pp",
        help="Pretty print a telemetry log.",
        parents=[common_parser, _create_pp_parser()],
        prog="con-telemetry pp",
    )
    parser_pp.set_defaults(func=pprint_json)

    parser_ls = subparsers.add_parser(
        "ls",
        help="Print a summary of every session found in telemetry logs.",
        parents=[common_parser, _create_ls_parser()],
        prog="con-telemetry ls",
    )
    parser_ls.set_defaults(func=ls)

    args = parser.parse_args(argv)

    if args.subcommand is None:
        parser.print_help()
        return

    setup_logging(args)
    _replay_early_logs(env_log_buffer)
    sys.exit(execute(args))
