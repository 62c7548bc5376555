import argparse
import json
import logging
from pprint import pprint
from typing import Any
from con_telemetry._formatter import SummaryFormatter
from con_telemetry.json_utils import is_jsonl_file, load_json_file, load_telemetry_log

lgr = logging.getLogger(__name__)


def get_field_conversion_mapping() -> dict[str, str]:
    """
    Map field names to SummaryFormatter conversion types.
    """
    return {
        "duration_ms": "M",
        "stdout_size_bytes": "S",
        "stderr_size_bytes": "S",
        "total_output_bytes": "S",
        "timestamp": "D",
        "start_time": "D",
        "end_time": "D",
    }


def humanize_data(data: Any, formatter: SummaryFormatter) -> Any:
    """
    Recursively humanize numeric values using SummaryFormatter conversions.
    """
    field_mapping = get_field_conversion_mapping()

    if isinstance(data, dict):
        humanized = {}
        for key, value in data.items():
            conversion = field_mapping.get(key)
            # bool is an int, but never a size or a duration
            if (
                conversion
                and isinstance(value, (int, float))
                and not isinstance(value, bool)
            ):
                humanized[key] = formatter.convert_field(value, conversion)
            else:
                humanized[key] = humanize_data(value, formatter)
        return humanized
    elif isinstance(data, list):
        return [humanize_data(item, formatter) for item in data]
    else:
        return data


def pprint_json(args: argparse.Namespace) -> int:
    """
    Prints the contents of a telemetry log or a JSON file using pprint.
    """
    try:
        if is_jsonl_file(args.file_path):
            data: Any = load_telemetry_log(args.file_path)
        else:
            data = load_json_file(args.file_path)

        if args.humanize:
            data = humanize_data(data, SummaryFormatter())

        pprint(data)

    except FileNotFoundError:
        lgr.error("File not found: %s", args.file_path)
        return 1
    except json.JSONDecodeError as e:
        lgr.error("Error decoding JSON: %s", e)
        return 1

    return 0
