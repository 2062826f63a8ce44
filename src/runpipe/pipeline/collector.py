"""
Collect termination statuses of launched stages.

Raw ``waitpid`` statuses are decoded into a small tagged type instead of
being bit-masked at every call site.
"""

import logging
import os
import signal
from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..errors import InvalidHandleError, WaitError
from .stage import StageSpec

logger = logging.getLogger(__name__)


class ExitStatus(ABC):
    """Base class for decoded termination statuses."""

    @property
    def exit_code(self) -> int | None:
        """Shell-style exit code, or None if there isn't one."""
        return None

    @property
    def success(self) -> bool:
        return False

    @property
    def abnormal(self) -> bool:
        return True

    @abstractmethod
    def describe(self) -> str:
        """Human readable summary, e.g. ``"3"`` or ``"killed by SIGTERM"``."""


@dataclass(frozen=True)
class NormalExit(ExitStatus):
    """The process called exit() with ``code``."""
    code: int

    @property
    def exit_code(self) -> int:
        return self.code

    @property
    def success(self) -> bool:
        return self.code == 0

    @property
    def abnormal(self) -> bool:
        return False

    def describe(self) -> str:
        return str(self.code)


@dataclass(frozen=True)
class Signaled(ExitStatus):
    """The process was terminated by a signal (abnormal termination)."""
    signal: int
    core_dumped: bool = False

    @property
    def exit_code(self) -> int:
        return 128 + self.signal

    @property
    def signal_name(self) -> str:
        try:
            return signal.Signals(self.signal).name
        except ValueError:
            return f"signal {self.signal}"

    def describe(self) -> str:
        text = f"killed by {self.signal_name}"
        if self.core_dumped:
            text += " (core dumped)"
        return text


@dataclass(frozen=True)
class Unknown(ExitStatus):
    """A status that is neither an exit nor a signal."""
    raw: int

    def describe(self) -> str:
        return f"unknown status {self.raw:#x}"


def decode_status(raw: int) -> ExitStatus:
    """Translate a raw ``waitpid`` status."""
    if os.WIFEXITED(raw):
        return NormalExit(os.WEXITSTATUS(raw))
    if os.WIFSIGNALED(raw):
        return Signaled(os.WTERMSIG(raw), core_dumped=os.WCOREDUMP(raw))
    return Unknown(raw)


def wait_stage(stage: StageSpec) -> ExitStatus:
    """Block until the stage's process terminates and return its status.

    Args:
        stage: A launched stage

    Returns:
        Decoded ExitStatus.

    Raises:
        InvalidHandleError: If the stage was never launched.
        WaitError: If the stage was already reaped or waitpid fails.
    """
    if stage.pid is None:
        raise InvalidHandleError(f"{stage.name} was never launched", stage=stage.index)
    if stage.reaped:
        raise WaitError(f"{stage.name} (pid {stage.pid}) was already reaped", stage=stage.index)

    try:
        pid, raw = os.waitpid(stage.pid, 0)
    except ChildProcessError as e:
        stage.reaped = True
        raise WaitError(
            f"waitpid({stage.pid}) failed: {e}", stage=stage.index, cause=e
        ) from e
    except OSError as e:
        raise WaitError(
            f"waitpid({stage.pid}) failed: {e}", stage=stage.index, cause=e
        ) from e

    if pid != stage.pid:
        raise WaitError(f"waitpid({stage.pid}) returned pid {pid}", stage=stage.index)

    stage.reaped = True
    status = decode_status(raw)
    logger.debug("Stage %d (%s) pid %d: %s", stage.index, stage.name, pid, status.describe())
    return status
