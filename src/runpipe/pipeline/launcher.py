"""
Process launchers for pipeline stages.

A launcher starts one stage with its stdin/stdout redirected to the pipe
endpoints assigned by the pipe graph. It also makes sure the child keeps
none of the endpoints belonging to the stages after it. A child holding a
downstream write end keeps that pipe open forever and its reader never sees
EOF.

Two strategies:

- ForkExecLauncher: ``os.fork()`` + ``os.dup2()`` + ``os.execvp()``.
- SpawnLauncher: ``os.posix_spawnp()`` with the same redirections expressed
  as file actions.
"""

import errno
import logging
import os
import signal
from abc import ABC, abstractmethod
from typing import NoReturn

from ..errors import ExecError, ForkError
from .stage import Pipeline

logger = logging.getLogger(__name__)

STDIN_FILENO = 0
STDOUT_FILENO = 1

# Shell conventions for a command that could not be run
EXIT_NOT_FOUND = 127
EXIT_CANNOT_EXECUTE = 126

# posix_spawn errors that mean "no process could be created" rather than
# "this program can't be executed"
_RESOURCE_ERRNOS = {errno.EAGAIN, errno.ENOMEM, errno.ENFILE, errno.EMFILE}

# Python ignores these; children must get the default action back so that
# e.g. a writer into a closed pipe dies of SIGPIPE
RESTORED_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGPIPE", "SIGXFSZ") if hasattr(signal, name)
)


class Launcher(ABC):
    """Base class for stage launch strategies."""

    name: str

    @abstractmethod
    def check_available(self) -> bool:
        """Return True if this platform supports the strategy."""

    @abstractmethod
    def launch(self, pipeline: Pipeline, index: int) -> None:
        """Start ``pipeline.stages[index]``.

        Must be called for stages in increasing index order, after the pipe
        graph exists. On return the stage's ``pid`` is set and the parent no
        longer holds the stage's endpoints.

        Raises:
            ForkError: If no process could be created.
            ExecError: If the program could not be executed and the strategy
                detects this in the parent.
        """


def exec_failure_code(error: OSError) -> int:
    """Exit code reported for a program that could not be executed."""
    return EXIT_NOT_FOUND if error.errno == errno.ENOENT else EXIT_CANNOT_EXECUTE


def _descriptors_to_close(pipeline: Pipeline, index: int) -> list[int]:
    """Endpoints of every stage at ``index`` or later."""
    fds = []
    for stage in pipeline.stages[index:]:
        fds.extend(end.fileno() for end in stage.endpoints())
    return [fd for fd in fds if fd > 2]


# ---------------------------------------------------------------------------
# fork + exec
# ---------------------------------------------------------------------------


def _child_exec(
    arguments: list[str],
    stdin_fd: int | None,
    stdout_fd: int | None,
    close_fds: list[int],
) -> NoReturn:
    """Redirect, close and exec inside the forked child. Never returns."""
    status = 1
    try:
        for source, target in ((stdin_fd, STDIN_FILENO), (stdout_fd, STDOUT_FILENO)):
            if source is None:
                continue
            if source == target:
                # already in place, only the close-on-exec flag has to go
                os.set_inheritable(target, True)
            else:
                os.dup2(source, target)
        for fd in close_fds:
            os.close(fd)
        for signum in RESTORED_SIGNALS:
            signal.signal(signum, signal.SIG_DFL)
        os.execvp(arguments[0], arguments)
    except OSError as e:
        status = exec_failure_code(e)
        message = f"runpipe: {arguments[0]}: {e.strerror or e}\n"
        try:
            os.write(2, message.encode("utf-8", errors="replace"))
        except OSError:
            pass
    finally:
        os._exit(status)


class ForkExecLauncher(Launcher):
    """Launch stages with fork, dup2 and execvp."""

    name = "fork"

    def check_available(self) -> bool:
        return hasattr(os, "fork")

    def launch(self, pipeline: Pipeline, index: int) -> None:
        stage = pipeline.stages[index]
        stdin_fd = pipeline.stdin_for(stage)
        stdout_fd = pipeline.stdout_for(stage)
        close_fds = _descriptors_to_close(pipeline, index)

        try:
            pid = os.fork()
        except OSError as e:
            raise ForkError(f"fork() failed: {e}", stage=index, cause=e) from e

        if pid == 0:
            _child_exec(stage.arguments, stdin_fd, stdout_fd, close_fds)

        stage.pid = pid
        stage.release_endpoints()
        logger.debug("Stage %d (%s) forked as pid %d", index, stage.name, pid)


# ---------------------------------------------------------------------------
# posix_spawn
# ---------------------------------------------------------------------------


class SpawnLauncher(Launcher):
    """Launch stages with ``os.posix_spawnp`` file actions."""

    name = "spawn"

    def check_available(self) -> bool:
        return hasattr(os, "posix_spawnp")

    def build_file_actions(self, pipeline: Pipeline, index: int) -> list[tuple]:
        stage = pipeline.stages[index]
        actions: list[tuple] = []
        stdin_fd = pipeline.stdin_for(stage)
        stdout_fd = pipeline.stdout_for(stage)
        if stdin_fd is not None and stdin_fd != STDIN_FILENO:
            actions.append((os.POSIX_SPAWN_DUP2, stdin_fd, STDIN_FILENO))
        if stdout_fd is not None and stdout_fd != STDOUT_FILENO:
            actions.append((os.POSIX_SPAWN_DUP2, stdout_fd, STDOUT_FILENO))
        actions.extend(
            (os.POSIX_SPAWN_CLOSE, fd) for fd in _descriptors_to_close(pipeline, index)
        )
        return actions

    def launch(self, pipeline: Pipeline, index: int) -> None:
        stage = pipeline.stages[index]
        file_actions = self.build_file_actions(pipeline, index)
        for fd, target in (
            (pipeline.stdin_for(stage), STDIN_FILENO),
            (pipeline.stdout_for(stage), STDOUT_FILENO),
        ):
            if fd == target:
                # no file action clears close-on-exec on a descriptor already in place
                os.set_inheritable(fd, True)

        try:
            pid = os.posix_spawnp(
                stage.name,
                stage.arguments,
                os.environ,
                file_actions=file_actions,
                setsigdef=RESTORED_SIGNALS,
            )
        except OSError as e:
            # Neighbours must still see EOF, so drop our copies either way
            stage.release_endpoints()
            if e.errno in _RESOURCE_ERRNOS:
                raise ForkError(f"posix_spawnp() failed: {e}", stage=index, cause=e) from e
            raise ExecError(
                f"{stage.name}: {e.strerror or e}",
                status_code=exec_failure_code(e),
                stage=index,
                cause=e,
            ) from e

        stage.pid = pid
        stage.release_endpoints()
        logger.debug("Stage %d (%s) spawned as pid %d", index, stage.name, pid)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_LAUNCHERS: dict[str, type[Launcher]] = {
    "fork": ForkExecLauncher,
    "spawn": SpawnLauncher,
}


def available_launchers() -> list[str]:
    """Names of launchers usable on this platform."""
    return [name for name, cls in _LAUNCHERS.items() if cls().check_available()]


def get_launcher(name: str) -> Launcher:
    """Create a launcher by name.

    Args:
        name: Launcher identifier ("fork" or "spawn")

    Returns:
        Launcher instance

    Raises:
        ValueError: If the name is unknown or unsupported on this platform
    """
    cls = _LAUNCHERS.get(name)
    if cls is None:
        raise ValueError(
            f"Unknown launcher '{name}'. Available: {', '.join(_LAUNCHERS)}"
        )
    launcher = cls()
    if not launcher.check_available():
        raise ValueError(f"Launcher '{name}' is not supported on this platform")
    return launcher
