"""
Pipeline module for running chains of external commands.

Provides the pieces of a ``cmd1 | cmd2 | ... | cmdN`` run: stage parsing,
the pipe graph, process launchers, status collection and the executor that
sequences them.
"""

from .collector import ExitStatus, NormalExit, Signaled, Unknown, decode_status, wait_stage
from .executor import (
    AbortPolicy,
    PipelineEvent,
    PipelineExecutor,
    PipelineReport,
    PipelineStatus,
    StageResult,
)
from .launcher import ForkExecLauncher, Launcher, SpawnLauncher, get_launcher
from .parser import parse_stages
from .pipes import Pipe, PipeEnd, build_pipe_graph
from .stage import Pipeline, StageSpec

__all__ = [
    "AbortPolicy",
    "ExitStatus",
    "ForkExecLauncher",
    "Launcher",
    "NormalExit",
    "Pipe",
    "PipeEnd",
    "Pipeline",
    "PipelineEvent",
    "PipelineExecutor",
    "PipelineReport",
    "PipelineStatus",
    "Signaled",
    "SpawnLauncher",
    "StageResult",
    "StageSpec",
    "Unknown",
    "build_pipe_graph",
    "decode_status",
    "get_launcher",
    "parse_stages",
    "wait_stage",
]
