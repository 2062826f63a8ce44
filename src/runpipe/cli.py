"""runpipe CLI - run a pipeline of commands separated by a delimiter.

Usage:
    runpipe echo hi -- tr a-z A-Z
    runpipe --launcher spawn cat /etc/passwd -- grep root -- wc -l
    runpipe -d :: ls -l :: sort -k5 -n
    runpipe --help
"""

import logging
import sys

import click

from .config import RunnerConfig, load_config
from .errors import PipelineError
from .pipeline.executor import PipelineExecutor
from .render import make_event_printer

logger = logging.getLogger(__name__)


def get_version() -> str:
    """Get the installed package version."""
    try:
        from importlib.metadata import version
        return version("runpipe")
    except Exception:
        return "0.1.0"


def configure_logging(level: str, debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


@click.command(
    context_settings={
        "allow_interspersed_args": False,
        "help_option_names": ["-h", "--help"],
    },
)
@click.argument("tokens", nargs=-1, type=click.UNPROCESSED)
@click.option(
    "-d", "--delimiter",
    default=None,
    help="Token separating stages (default: --)",
)
@click.option(
    "--max-stages",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of stages (default: 10)",
)
@click.option(
    "--launcher",
    type=click.Choice(["fork", "spawn"]),
    default=None,
    help="How stages are started (default: fork)",
)
@click.option(
    "--on-abort",
    "abort_policy",
    type=click.Choice(["terminate", "reap", "orphan"]),
    default=None,
    help="What to do with running stages if the pipeline aborts (default: terminate)",
)
@click.option(
    "--output",
    type=click.Choice(["text", "jsonl"]),
    default=None,
    help="Diagnostic format on stderr (jsonl for tooling)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML configuration file (default: $RUNPIPE_CONFIG)",
)
@click.option(
    "--strict",
    is_flag=True,
    help="Exit with the last stage's exit code instead of 0",
)
@click.option(
    "-q", "--quiet",
    is_flag=True,
    help="Do not print stage progress",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug logging",
)
@click.version_option(get_version(), "--version", "-V", prog_name="runpipe")
def cli(
    tokens: tuple[str, ...],
    delimiter: str | None,
    max_stages: int | None,
    launcher: str | None,
    abort_policy: str | None,
    output: str | None,
    config_path: str | None,
    strict: bool,
    quiet: bool,
    debug: bool,
) -> None:
    """Run commands connected by pipes, like cmd1 | cmd2 | ... | cmdN.

    Stages are separated by the delimiter token. Options must come before
    the first command.

    \b
    EXAMPLES:
      runpipe echo hi -- tr a-z A-Z
      runpipe ls -l -- grep py -- wc -l
      runpipe -d '|' cat notes.txt '|' sort '|' uniq -c
    """
    try:
        config = load_config(config_path)
    except PipelineError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(e.exit_code)

    config = config.merge(
        delimiter=delimiter,
        max_stages=max_stages,
        launcher=launcher,
        abort_policy=abort_policy,
        output=output,
    )
    configure_logging(config.log_level, debug)

    sys.exit(run_pipeline(list(tokens), config, strict=strict, quiet=quiet))


def run_pipeline(
    tokens: list[str],
    config: RunnerConfig,
    strict: bool = False,
    quiet: bool = False,
) -> int:
    """Run the pipeline and return the process exit code.

    Returns 0 once every stage has been waited on (or the last stage's code
    with ``strict``), and the error's exit code for structural failures.
    """
    try:
        executor = PipelineExecutor(
            config=config,
            on_event=make_event_printer(config.output, quiet),
        )
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        return 2

    try:
        report = executor.run(tokens)
    except PipelineError as e:
        click.echo(f"Error: {e}", err=True)
        if e.exit_code == 2 and not tokens:
            click.echo(
                f"Usage: runpipe [OPTIONS] CMD [ARGS]... [{config.delimiter} CMD [ARGS]...]...",
                err=True,
            )
        return e.exit_code

    if strict:
        code = report.last_exit_code
        return code if code is not None else 1
    return 0


def main() -> None:
    """Main entry point for the runpipe CLI."""
    cli()
