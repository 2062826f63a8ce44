"""
Pipe endpoints and the pipe graph between stages.

Every descriptor produced by ``os.pipe()`` is wrapped in a PipeEnd that owns
it exactly once. Ownership moves by closing (the parent hands the descriptor
to a child and drops its copy) or by ``detach()``. A released endpoint can't
be used again, so a descriptor that was "accidentally kept open" shows up as
an error instead of a hung reader.
"""

from __future__ import annotations

import fcntl
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import EndpointReleasedError, PipeCreationError

if TYPE_CHECKING:
    from .stage import StageSpec

logger = logging.getLogger(__name__)

READ = "read"
WRITE = "write"


class PipeEnd:
    """One direction of a pipe, owning a single file descriptor.

    Args:
        fd: Descriptor to take ownership of
        kind: ``"read"`` or ``"write"``
        pipe_index: Index of the pipe this endpoint belongs to
    """

    def __init__(self, fd: int, kind: str, pipe_index: int | None = None):
        self._fd: int | None = fd
        self.kind = kind
        self.pipe_index = pipe_index

    def __repr__(self) -> str:
        state = "released" if self._fd is None else f"fd={self._fd}"
        return f"PipeEnd({self.kind}, pipe={self.pipe_index}, {state})"

    def __enter__(self) -> "PipeEnd":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def released(self) -> bool:
        return self._fd is None

    def fileno(self) -> int:
        """Return the owned descriptor.

        Raises:
            EndpointReleasedError: If ownership has already moved.
        """
        if self._fd is None:
            raise EndpointReleasedError(
                f"{self.kind} end of pipe {self.pipe_index} was already released"
            )
        return self._fd

    def detach(self) -> int:
        """Give up ownership without closing and return the raw descriptor."""
        fd = self.fileno()
        self._fd = None
        return fd

    def close(self) -> None:
        """Close the descriptor. Closing a released endpoint is a no-op."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        os.close(fd)


FIRST_FREE_FD = 3


def _above_stdio(fd: int) -> int:
    """Move a descriptor that landed on 0-2 (the caller closed one of its
    standard streams) to the lowest free slot above them.

    A pipe end sitting on its own redirect target would otherwise never be
    duplicated in the child and vanish at exec with its close-on-exec flag.
    """
    if fd >= FIRST_FREE_FD:
        return fd
    moved = fcntl.fcntl(fd, fcntl.F_DUPFD_CLOEXEC, FIRST_FREE_FD)
    os.close(fd)
    return moved


@dataclass
class Pipe:
    """An OS pipe connecting stage ``index`` to stage ``index + 1``."""

    index: int
    read_end: PipeEnd
    write_end: PipeEnd

    @classmethod
    def open(cls, index: int) -> "Pipe":
        """Create a new OS pipe.

        Raises:
            PipeCreationError: If ``os.pipe()`` fails (e.g. EMFILE).
        """
        try:
            read_fd, write_fd = os.pipe()
        except OSError as e:
            raise PipeCreationError(f"pipe() failed: {e}", cause=e) from e
        try:
            read_fd = _above_stdio(read_fd)
            write_fd = _above_stdio(write_fd)
        except OSError as e:
            os.close(read_fd)
            os.close(write_fd)
            raise PipeCreationError(f"fcntl(F_DUPFD) failed: {e}", cause=e) from e
        return cls(
            index=index,
            read_end=PipeEnd(read_fd, READ, index),
            write_end=PipeEnd(write_fd, WRITE, index),
        )

    @property
    def live_endpoints(self) -> int:
        return sum(not end.released for end in (self.read_end, self.write_end))

    def close(self) -> None:
        self.read_end.close()
        self.write_end.close()


def build_pipe_graph(stages: list["StageSpec"]) -> list[Pipe]:
    """Create the N-1 pipes for N stages and hand out their endpoints.

    Pipe i's write end becomes ``stages[i].stdout_sink`` and its read end
    becomes ``stages[i + 1].stdin_source``.

    Args:
        stages: Parsed stages in pipeline order

    Returns:
        The created pipes, in order.

    Raises:
        PipeCreationError: If a pipe can't be created. Pipes created before
            the failure are closed first.
    """
    pipes: list[Pipe] = []
    try:
        for i in range(len(stages) - 1):
            pipes.append(Pipe.open(i))
    except PipeCreationError:
        logger.error("Pipe %d could not be created, closing %d earlier pipe(s)", len(pipes), len(pipes))
        for pipe in pipes:
            pipe.close()
        raise

    for pipe in pipes:
        stages[pipe.index].stdout_sink = pipe.write_end
        stages[pipe.index + 1].stdin_source = pipe.read_end

    logger.debug("Created %d pipe(s) for %d stage(s)", len(pipes), len(stages))
    return pipes


def open_descriptor_count() -> int:
    """Count the descriptors currently open in this process."""
    for fd_dir in ("/proc/self/fd", "/dev/fd"):
        path = Path(fd_dir)
        if path.is_dir():
            # listing the directory opens one descriptor of its own
            return len(list(path.iterdir())) - 1
    raise OSError("No descriptor directory available on this platform")
