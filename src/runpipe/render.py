"""
Formatting of pipeline events for the diagnostic channel.

Events are rendered either as human readable lines or as JSON records, one
per line. Output always goes to stderr so it never mixes with the data the
stages write to stdout.
"""

import json
import logging
import sys
from dataclasses import asdict
from typing import Callable, TextIO

from .pipeline.collector import ExitStatus, NormalExit, Signaled
from .pipeline.executor import (
    PipelineAbortedEvent,
    PipelineCompletedEvent,
    PipelineEvent,
    StageExitedEvent,
    StageLaunchFailedEvent,
    StageStartedEvent,
    StageWaitFailedEvent,
    StageWaitingEvent,
)

logger = logging.getLogger(__name__)


def _label(index: int, arguments: list[str]) -> str:
    return f"{index}: {arguments[0]}"


def format_event(event: PipelineEvent) -> str | None:
    """Format an event as a single line, or None if it has no text form."""
    if isinstance(event, StageStartedEvent):
        return f"Starting stage {_label(event.index, event.arguments)}"
    elif isinstance(event, StageLaunchFailedEvent):
        return f"Stage {_label(event.index, event.arguments)} could not start: {event.error}"
    elif isinstance(event, StageWaitingEvent):
        return f"Waiting for stage {_label(event.index, event.arguments)}"
    elif isinstance(event, StageExitedEvent):
        if isinstance(event.status, NormalExit):
            return f"Stage {_label(event.index, event.arguments)} exited with {event.status.code}"
        return f"Stage {_label(event.index, event.arguments)} {event.status.describe()}"
    elif isinstance(event, StageWaitFailedEvent):
        return f"Stage {_label(event.index, event.arguments)} status unavailable: {event.error}"
    elif isinstance(event, PipelineAbortedEvent):
        return (
            f"Pipeline aborted: {event.error} "
            f"({event.launched} running stage(s), policy {event.policy.value})"
        )
    elif isinstance(event, PipelineCompletedEvent):
        return "Pipeline complete"
    return None


def status_to_record(status: ExitStatus) -> dict:
    """Serialise an ExitStatus for JSON output."""
    record = {"kind": type(status).__name__, "exit_code": status.exit_code}
    if isinstance(status, Signaled):
        record["signal"] = status.signal
        record["signal_name"] = status.signal_name
        record["core_dumped"] = status.core_dumped
    return record


def event_to_record(event: PipelineEvent) -> dict:
    """Convert an event into a JSON-serialisable dict."""
    record = {"event": type(event).__name__}
    for key, value in asdict(event).items():
        if key == "status" and isinstance(event, StageExitedEvent):
            record[key] = status_to_record(event.status)
        elif hasattr(value, "value"):
            record[key] = value.value
        else:
            record[key] = value
    return record


def make_event_printer(
    output: str = "text",
    quiet: bool = False,
    stream: TextIO | None = None,
) -> Callable[[PipelineEvent], None] | None:
    """Build an ``on_event`` callback writing to ``stream`` (stderr).

    Args:
        output: "text" or "jsonl"
        quiet: If True, return None so no events are printed
        stream: Destination, defaults to ``sys.stderr`` at call time

    Returns:
        Callback for PipelineExecutor, or None when quiet.
    """
    if quiet:
        return None
    if output not in ("text", "jsonl"):
        raise ValueError(f"Unknown output format: {output}")

    def printer(event: PipelineEvent) -> None:
        out = stream or sys.stderr
        if output == "jsonl":
            line = json.dumps(event_to_record(event))
        else:
            line = format_event(event)
            if line is None:
                return
        print(line, file=out, flush=True)

    return printer
