"""
Pipeline executor for command pipelines.

Drives a run from tokens to exit statuses: parse stages, build the pipe
graph, launch every stage in order, then wait on every stage in order.
Progress is published as events so callers decide how to render it.
"""

import logging
import os
import signal
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from ..config import RunnerConfig
from ..errors import ExecError, ResourceError, StageWaitError
from .collector import ExitStatus, NormalExit, wait_stage
from .launcher import Launcher, get_launcher
from .parser import parse_stages
from .pipes import build_pipe_graph
from .stage import Pipeline, StageSpec

logger = logging.getLogger(__name__)


class PipelineStatus(str, Enum):
    """Pipeline execution status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class AbortPolicy(str, Enum):
    """What happens to launched stages when the pipeline aborts."""
    TERMINATE = "terminate"
    REAP = "reap"
    ORPHAN = "orphan"


@dataclass
class StageResult:
    """Outcome of one stage.

    Attributes:
        index: Stage position
        arguments: Stage argument vector
        pid: Process ID, or None if the stage never started
        status: Decoded exit status, or None if it couldn't be collected
        error: Why the stage could not be launched or collected
    """
    index: int
    arguments: list[str]
    pid: int | None = None
    status: ExitStatus | None = None
    error: str | None = None

    @property
    def name(self) -> str:
        return self.arguments[0]

    @property
    def exit_code(self) -> int | None:
        return self.status.exit_code if self.status is not None else None


@dataclass
class PipelineReport:
    """Final state of a pipeline run.

    Attributes:
        status: Overall pipeline status
        results: One StageResult per stage, in launch order
    """
    status: PipelineStatus = PipelineStatus.PENDING
    results: list[StageResult] = field(default_factory=list)

    @property
    def exit_codes(self) -> list[int | None]:
        return [r.exit_code for r in self.results]

    @property
    def all_succeeded(self) -> bool:
        return all(r.status is not None and r.status.success for r in self.results)

    @property
    def last_exit_code(self) -> int | None:
        if not self.results:
            return None
        return self.results[-1].exit_code


# Event types for callbacks
@dataclass
class PipelineEvent:
    """Base class for pipeline events."""
    pass


@dataclass
class StageStartedEvent(PipelineEvent):
    """Emitted right before a stage is launched."""
    index: int
    arguments: list[str]


@dataclass
class StageLaunchFailedEvent(PipelineEvent):
    """Emitted when a stage's program could not be executed."""
    index: int
    arguments: list[str]
    error: str


@dataclass
class StageWaitingEvent(PipelineEvent):
    """Emitted before blocking on a stage."""
    index: int
    arguments: list[str]


@dataclass
class StageExitedEvent(PipelineEvent):
    """Emitted when a stage's status has been collected."""
    index: int
    arguments: list[str]
    status: ExitStatus


@dataclass
class StageWaitFailedEvent(PipelineEvent):
    """Emitted when a stage's status could not be collected."""
    index: int
    arguments: list[str]
    error: str


@dataclass
class PipelineAbortedEvent(PipelineEvent):
    """Emitted when a resource failure stops the pipeline."""
    error: str
    policy: AbortPolicy
    launched: int


@dataclass
class PipelineCompletedEvent(PipelineEvent):
    """Emitted when every stage has been waited on."""
    status: PipelineStatus
    exit_codes: list[int | None]


class PipelineExecutor:
    """Runs a command pipeline.

    Args:
        config: RunnerConfig with parser limits and policies
        launcher: Launch strategy (defaults to ``config.launcher``)
        on_event: Optional callback for pipeline events
    """

    def __init__(
        self,
        config: RunnerConfig | None = None,
        launcher: Launcher | None = None,
        on_event: Callable[[PipelineEvent], None] | None = None,
    ):
        self.config = config or RunnerConfig()
        self.launcher = launcher or get_launcher(self.config.launcher)
        self.on_event = on_event
        self.abort_policy = AbortPolicy(self.config.abort_policy)
        self._report = PipelineReport()

    @property
    def report(self) -> PipelineReport:
        """Report of the current (or last) run."""
        return self._report

    def _emit(self, event: PipelineEvent) -> None:
        """Emit an event to the callback if registered."""
        if self.on_event:
            try:
                self.on_event(event)
            except Exception as e:
                logger.warning("Event callback error: %s", e)

    def parse(self, tokens: Sequence[str]) -> list[StageSpec]:
        return parse_stages(tokens, self.config.delimiter, self.config.max_stages)

    def run(
        self,
        tokens: Sequence[str],
        stdin: int | None = None,
        stdout: int | None = None,
    ) -> PipelineReport:
        """Parse ``tokens`` and run the resulting pipeline.

        Raises:
            ConfigurationError: If the tokens don't describe a pipeline.
                Nothing has been spawned in that case.
            ResourceError: If a pipe or process couldn't be created.
        """
        return self.run_stages(self.parse(tokens), stdin=stdin, stdout=stdout)

    def run_stages(
        self,
        stages: Sequence[StageSpec],
        stdin: int | None = None,
        stdout: int | None = None,
    ) -> PipelineReport:
        """Wire, launch and wait on already parsed stages.

        Args:
            stages: Stages in pipeline order
            stdin: Descriptor for the first stage's stdin (None = inherit)
            stdout: Descriptor for the last stage's stdout (None = inherit)

        Returns:
            PipelineReport with exactly one result per stage.

        Raises:
            ResourceError: If a pipe or process couldn't be created. The
                abort policy has been applied to launched stages.
        """
        pipeline = Pipeline(stages=list(stages), stdin=stdin, stdout=stdout)
        self._report = PipelineReport(status=PipelineStatus.RUNNING)

        try:
            pipeline.pipes = build_pipe_graph(pipeline.stages)
            launch_errors = self._launch_all(pipeline)
        except ResourceError as e:
            self._abort(pipeline, e)
            raise
        finally:
            # Nothing is left to hand out after the launch phase
            pipeline.release_all()

        self._wait_all(pipeline, launch_errors)

        self._report.status = PipelineStatus.COMPLETED
        self._emit(PipelineCompletedEvent(
            status=self._report.status,
            exit_codes=self._report.exit_codes,
        ))
        return self._report

    def _launch_all(self, pipeline: Pipeline) -> dict[int, ExecError]:
        launch_errors: dict[int, ExecError] = {}
        for stage in pipeline.stages:
            self._emit(StageStartedEvent(index=stage.index, arguments=stage.arguments))
            try:
                self.launcher.launch(pipeline, stage.index)
            except ExecError as e:
                logger.warning("Stage %d (%s) could not be executed: %s", stage.index, stage.name, e.message)
                launch_errors[stage.index] = e
                self._emit(StageLaunchFailedEvent(
                    index=stage.index, arguments=stage.arguments, error=e.message,
                ))
        return launch_errors

    def _wait_all(self, pipeline: Pipeline, launch_errors: dict[int, ExecError]) -> None:
        for stage in pipeline.stages:
            self._emit(StageWaitingEvent(index=stage.index, arguments=stage.arguments))
            result = StageResult(index=stage.index, arguments=stage.arguments, pid=stage.pid)
            launch_error = launch_errors.get(stage.index)
            if launch_error is not None:
                # no process to wait on; report what a forked child would have
                result.status = NormalExit(launch_error.status_code)
                result.error = launch_error.message
                self._emit(StageExitedEvent(
                    index=stage.index, arguments=stage.arguments, status=result.status,
                ))
                self._report.results.append(result)
                continue
            try:
                result.status = wait_stage(stage)
            except StageWaitError as e:
                result.error = e.message
                logger.warning("Stage %d (%s): %s", stage.index, stage.name, result.error)
                self._emit(StageWaitFailedEvent(
                    index=stage.index, arguments=stage.arguments, error=result.error,
                ))
            else:
                self._emit(StageExitedEvent(
                    index=stage.index, arguments=stage.arguments, status=result.status,
                ))
            self._report.results.append(result)

    def _abort(self, pipeline: Pipeline, error: ResourceError) -> None:
        """Release held endpoints and deal with already launched stages."""
        pipeline.release_all()
        launched = [s for s in pipeline.stages if s.launched and not s.reaped]
        logger.error(
            "Pipeline aborted (%s), %d stage(s) running, policy=%s",
            error, len(launched), self.abort_policy.value,
        )

        if self.abort_policy is AbortPolicy.TERMINATE:
            for stage in launched:
                try:
                    os.kill(stage.pid, signal.SIGTERM)
                except ProcessLookupError:
                    logger.debug("Stage %d (pid %d) already gone", stage.index, stage.pid)

        if self.abort_policy is not AbortPolicy.ORPHAN:
            for stage in launched:
                result = StageResult(index=stage.index, arguments=stage.arguments, pid=stage.pid)
                try:
                    result.status = wait_stage(stage)
                except StageWaitError as e:
                    result.error = e.message
                    logger.warning("Stage %d (%s): %s", stage.index, stage.name, e.message)
                self._report.results.append(result)

        self._report.status = PipelineStatus.FAILED
        self._emit(PipelineAbortedEvent(
            error=str(error), policy=self.abort_policy, launched=len(launched),
        ))
