"""Spawning the child and capturing both of its output streams."""

from __future__ import annotations
from enum import Enum
import logging
import subprocess
from con_telemetry._constants import EXIT_CODE_UNAVAILABLE, LOGGER_NAME
from con_telemetry._drain import StreamDrain
from con_telemetry._models import CapturedStream, StdinMode

lgr = logging.getLogger(LOGGER_NAME)


class SupervisorState(str, Enum):
    NOT_STARTED = "not_started"
    SPAWNED = "spawned"
    DRAINING = "draining"
    CHILD_EXITED = "child_exited"
    DRAINS_JOINED = "drains_joined"
    OUTCOME_READY = "outcome_ready"

    def __str__(self) -> str:
        return self.value


def exit_code_from_returncode(returncode: int | None) -> int:
    """Map a Popen returncode to an exit code.

    Negative values (terminated by a signal) and a missing returncode have no
    exit code and map to EXIT_CODE_UNAVAILABLE.
    """
    if returncode is None or returncode < 0:
        return EXIT_CODE_UNAVAILABLE
    return returncode


class ProcessSupervisor:
    """Runs one command to completion while draining its stdout and stderr."""

    def __init__(
        self, command: list[str], stdin_mode: StdinMode = StdinMode.INHERIT
    ) -> None:
        if not command:
            raise ValueError("No command to supervise.")
        self.command = command
        self.stdin_mode = stdin_mode
        self.state = SupervisorState.NOT_STARTED
        self.process: subprocess.Popen | None = None

    def _transition(self, state: SupervisorState) -> None:
        lgr.debug("Supervisor %s -> %s", self.state, state)
        self.state = state

    def spawn(self) -> subprocess.Popen:
        """Start the child with its output redirected through our pipes.

        OSError from Popen (missing executable, permission denied) is left to
        the caller, nothing is started in that case.
        """
        if self.state is not SupervisorState.NOT_STARTED:
            raise RuntimeError(f"Cannot spawn, supervisor is {self.state}")
        stdin = subprocess.PIPE if self.stdin_mode is StdinMode.PIPE else None
        self.process = subprocess.Popen(
            self.command,
            stdin=stdin,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        if self.process.stdin is not None:
            # Nothing is ever fed to the child, let it see end-of-input
            self.process.stdin.close()
        self._transition(SupervisorState.SPAWNED)
        return self.process

    def run(self) -> tuple[int, CapturedStream, CapturedStream]:
        """Spawn, drain both streams concurrently, and wait for everything.

        Returns exit code, captured stdout and captured stderr.
        """
        process = self.spawn()
        assert process.stdout is not None
        assert process.stderr is not None

        stdout_drain = StreamDrain("stdout", process.stdout)
        stderr_drain = StreamDrain("stderr", process.stderr)
        stdout_drain.start()
        stderr_drain.start()
        self._transition(SupervisorState.DRAINING)

        returncode = process.wait()
        self._transition(SupervisorState.CHILD_EXITED)

        # The pipes may still hold output written right before exit
        stdout = stdout_drain.join()
        stderr = stderr_drain.join()
        self._transition(SupervisorState.DRAINS_JOINED)

        exit_code = exit_code_from_returncode(returncode)
        self._transition(SupervisorState.OUTCOME_READY)
        return exit_code, stdout, stderr
