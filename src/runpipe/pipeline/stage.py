"""
Stage definition for command pipelines.

A stage is one external command in the pipeline: its argument vector, the
pipe endpoints wired to its stdin/stdout, and its process handle once it has
been launched.
"""

from dataclasses import dataclass, field

from .pipes import Pipe, PipeEnd


@dataclass
class StageSpec:
    """One command in a pipeline.

    Attributes:
        index: Position in the pipeline (0-based)
        arguments: Argument vector; the first item is the executable
        stdin_source: Read end of pipe ``index - 1``, or None to inherit the
            pipeline caller's stdin
        stdout_sink: Write end of pipe ``index``, or None to inherit the
            pipeline caller's stdout
        pid: Process ID once launched, None before
        reaped: Whether the process status has already been collected
    """
    index: int
    arguments: list[str]
    stdin_source: PipeEnd | None = None
    stdout_sink: PipeEnd | None = None
    pid: int | None = None
    reaped: bool = field(default=False, compare=False)

    def __post_init__(self) -> None:
        if not self.arguments:
            raise ValueError(f"Stage {self.index} has no arguments")

    @property
    def name(self) -> str:
        """Executable name, used in status messages."""
        return self.arguments[0]

    @property
    def launched(self) -> bool:
        return self.pid is not None

    def endpoints(self) -> list[PipeEnd]:
        """Pipe endpoints this stage still owns."""
        return [
            end for end in (self.stdin_source, self.stdout_sink)
            if end is not None and not end.released
        ]

    def release_endpoints(self) -> None:
        """Close any endpoint still owned and mark both as released."""
        for end in self.endpoints():
            end.close()
        self.stdin_source = None
        self.stdout_sink = None


@dataclass
class Pipeline:
    """Stages plus the pipes connecting them.

    Attributes:
        stages: Stages in launch order
        pipes: Pipes created between adjacent stages
        stdin: Descriptor for the first stage's stdin (None = inherit)
        stdout: Descriptor for the last stage's stdout (None = inherit)
    """
    stages: list[StageSpec]
    pipes: list[Pipe] = field(default_factory=list)
    stdin: int | None = None
    stdout: int | None = None

    def __len__(self) -> int:
        return len(self.stages)

    def held_endpoints(self) -> list[PipeEnd]:
        """Every pipe endpoint not yet handed to a child."""
        held = []
        for pipe in self.pipes:
            held.extend(end for end in (pipe.read_end, pipe.write_end) if not end.released)
        return held

    def stdin_for(self, stage: StageSpec) -> int | None:
        """Descriptor the stage should read from, or None to leave fd 0 alone."""
        if stage.stdin_source is not None:
            return stage.stdin_source.fileno()
        if stage.index == 0:
            return self.stdin
        return None

    def stdout_for(self, stage: StageSpec) -> int | None:
        """Descriptor the stage should write to, or None to leave fd 1 alone."""
        if stage.stdout_sink is not None:
            return stage.stdout_sink.fileno()
        if stage.index == len(self.stages) - 1:
            return self.stdout
        return None

    def release_all(self) -> None:
        """Close every endpoint still held by the parent."""
        for stage in self.stages:
            stage.release_endpoints()
        for pipe in self.pipes:
            pipe.close()
