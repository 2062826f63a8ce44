"""
runpipe - run a chain of external commands connected by pipes.

``runpipe echo hi -- tr a-z A-Z`` behaves like ``echo hi | tr a-z A-Z`` and
reports every stage's exit status on stderr.
"""

from .config import RunnerConfig, load_config
from .errors import PipelineError
from .pipeline import (
    ExitStatus,
    NormalExit,
    PipelineExecutor,
    PipelineReport,
    Signaled,
    StageSpec,
    parse_stages,
)


__all__ = [
    "main",
    "ExitStatus",
    "NormalExit",
    "PipelineError",
    "PipelineExecutor",
    "PipelineReport",
    "RunnerConfig",
    "Signaled",
    "StageSpec",
    "load_config",
    "parse_stages",
]


def main() -> None:
    """Main entry point for runpipe CLI."""
    from .cli import main as cli_main
    try:
        cli_main()
    except KeyboardInterrupt:
        print()
        raise SystemExit(130)
