"""SIGINT handling while a command runs."""

from __future__ import annotations
from collections.abc import Iterator
from contextlib import contextmanager
import logging
import os
import signal
import threading
from types import FrameType
from typing import TYPE_CHECKING, Optional
from con_telemetry._constants import LOGGER_NAME

if TYPE_CHECKING:
    from con_telemetry._supervisor import ProcessSupervisor

lgr = logging.getLogger(LOGGER_NAME)

# SIGINTs after which a command still running gets SIGKILL
KILL_AFTER_SIGINTS = 3


class SigIntHandler:
    """
    Handler of SIGINT signals received while a command is supervised.

    The command shares our process group, so a Ctrl-C from the terminal
    already reaches it directly. We keep waiting for it instead of dying,
    so its output and exit code are still reported.
    """

    def __init__(self, supervisor: ProcessSupervisor) -> None:
        self.supervisor = supervisor
        self.sigcount: int = 0

    def __call__(self, _sig: int, _frame: Optional[FrameType]) -> None:
        self.sigcount += 1
        process = self.supervisor.process
        if process is None or process.poll() is not None:
            lgr.info("Received SIGINT, finishing up")
        elif self.sigcount < KILL_AFTER_SIGINTS:
            lgr.info("Received SIGINT, waiting for command to exit")
        else:
            lgr.warning(
                "Received SIGINT %d times, forcefully killing command process",
                self.sigcount,
            )
            try:
                os.kill(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass


@contextmanager
def sigint_handled(handler: SigIntHandler) -> Iterator[None]:
    """Install ``handler`` for SIGINT, restoring the previous one on exit.

    Signal handlers can only be set from the main thread, elsewhere this
    does nothing.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        # None means the previous handler was not installed from Python
        signal.signal(
            signal.SIGINT, previous if previous is not None else signal.SIG_DFL
        )
