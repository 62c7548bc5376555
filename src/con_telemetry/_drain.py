"""Line-by-line draining of the child's output pipes."""

from __future__ import annotations
import logging
import threading
from typing import IO, Optional
from con_telemetry._constants import LOGGER_NAME
from con_telemetry._models import CapturedStream

lgr = logging.getLogger(LOGGER_NAME)

# Decoded lines can be encoded back to the exact bytes the child wrote
ENCODING = "utf-8"
ERRORS = "surrogateescape"


def drain_stream(stream: IO[bytes]) -> CapturedStream:
    """Read ``stream`` one line at a time until end-of-stream.

    Both ``\\n`` and ``\\r\\n`` terminators are stripped from the stored lines
    but still counted in ``size_bytes``. A final line lacking a terminator is
    kept. A failing read is treated as end-of-stream.
    """
    lines: list[str] = []
    total_bytes = 0
    while True:
        try:
            raw = stream.readline()
        except (OSError, ValueError) as exc:
            lgr.debug("Stopped reading stream after a read failure: %s", exc)
            break
        if not raw:
            break
        total_bytes += len(raw)
        if raw.endswith(b"\n"):
            raw = raw[:-1]
            if raw.endswith(b"\r"):
                raw = raw[:-1]
        lines.append(raw.decode(ENCODING, ERRORS))
    return CapturedStream(lines=tuple(lines), size_bytes=total_bytes)


class StreamDrain:
    """Drains a single stream on its own thread.

    Two of these run side by side, one per output pipe, so that neither pipe
    can fill up and block the child while we wait on the other.
    """

    def __init__(self, name: str, stream: IO[bytes]) -> None:
        self.name = name
        self.stream = stream
        self.thread: threading.Thread | None = None
        self.result: Optional[CapturedStream] = None

    def start(self) -> None:
        self.thread = threading.Thread(
            target=self._drain, name=f"drain-{self.name}", daemon=True
        )
        self.thread.start()

    def _drain(self) -> None:
        try:
            self.result = drain_stream(self.stream)
        finally:
            try:
                self.stream.close()
            except OSError:
                pass

    def join(self) -> CapturedStream:
        assert self.thread is not None
        self.thread.join()
        lgr.debug("Finished draining %s", self.name)
        if self.result is None:
            # drain_stream itself blew up, report nothing captured
            return CapturedStream()
        return self.result
