"""Summary formatter with custom conversions for con-telemetry output."""

from __future__ import annotations
from datetime import datetime
import logging
import string
from typing import Any
from con_telemetry._constants import LOGGER_NAME

lgr = logging.getLogger(LOGGER_NAME)


class SummaryFormatter(string.Formatter):
    """``str.format`` with a few extra conversions.

    - ``!S``: byte count as a human readable size
    - ``!E``: exit code, green when 0, red otherwise
    - ``!M``: milliseconds as a human readable duration
    - ``!D``: epoch timestamp as a date
    - ``!N``: red placeholder when None
    """

    NONE = "-"
    RED, GREEN = 31, 32
    RESET_SEQ = "\033[0m"
    COLOR_SEQ = "\033[1;%dm"
    SIZE_UNITS = ("kB", "MB", "GB", "TB", "PB")

    def __init__(self, enable_colors: bool = False) -> None:
        self.enable_colors = enable_colors

    def naturalsize(self, value: float | str) -> str:
        """Decimal filesize of a byte count.

        >>> SummaryFormatter().naturalsize(6)
        '6 Bytes'
        >>> SummaryFormatter().naturalsize(1500)
        '1.5 kB'
        """
        size = float(value)
        if abs(size) == 1:
            return "1 Byte"
        if abs(size) < 1000:
            return "%d Bytes" % size
        for unit in self.SIZE_UNITS:
            size /= 1000
            if abs(size) < 1000:
                break
        return "%.1f %s" % (size, unit)

    def naturalduration(self, value: float | str) -> str:
        ms = float(value)
        if ms < 1000:
            return f"{ms:.0f}ms"
        seconds = ms / 1000
        if seconds < 60:
            return f"{seconds:.2f}s"
        minutes, seconds = divmod(seconds, 60)
        if minutes < 60:
            return f"{int(minutes)}m {seconds:.1f}s"
        hours, minutes = divmod(minutes, 60)
        return f"{int(hours)}h {int(minutes)}m {seconds:.1f}s"

    def color_word(self, s: str, color: int) -> str:
        if color and self.enable_colors:
            return "%s%s%s" % (self.COLOR_SEQ % color, s, self.RESET_SEQ)
        return s

    def convert_field(self, value: Any, conversion: str | None) -> Any:
        if conversion in ("S", "M", "D", "N") and value is None:
            return self.color_word(self.NONE, self.RED)
        if conversion == "S":
            return self.naturalsize(value)
        elif conversion == "E":
            if value is None:
                return self.color_word(self.NONE, self.RED)
            failed = str(value) not in ("0", "")
            return self.color_word(str(value), self.RED if failed else self.GREEN)
        elif conversion == "M":
            return self.naturalduration(value)
        elif conversion == "D":
            try:
                return datetime.fromtimestamp(float(value)).strftime(
                    "%b %d, %Y %I:%M %p"
                )
            except (ValueError, OSError, OverflowError):
                return str(value)
        elif conversion == "N":
            return value
        return super().convert_field(value, conversion)

    def format_field(self, value: Any, format_spec: str) -> Any:
        if value is None:
            return self.NONE
        try:
            return super().format_field(value, format_spec)
        except ValueError as exc:
            lgr.warning(
                "Falling back to `str` formatting for %r due to exception: %s",
                value,
                exc,
            )
            return str(value)
