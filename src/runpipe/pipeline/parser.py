"""
Split a flat token list into pipeline stages.

``["echo", "hi", "--", "tr", "a-z", "A-Z"]`` becomes two stages,
``echo hi`` and ``tr a-z A-Z``.
"""

import logging
from typing import Sequence

from ..config import DEFAULT_DELIMITER, DEFAULT_MAX_STAGES
from ..errors import (
    EmptyStageError,
    NoStagesError,
    TooManyStagesError,
    TrailingDelimiterError,
)
from .stage import StageSpec

logger = logging.getLogger(__name__)


def parse_stages(
    tokens: Sequence[str],
    delimiter: str = DEFAULT_DELIMITER,
    max_stages: int | None = DEFAULT_MAX_STAGES,
) -> list[StageSpec]:
    """Group tokens into stages at delimiter boundaries.

    Args:
        tokens: Command-line tokens, delimiter included
        delimiter: Token separating stages
        max_stages: Maximum number of stages, or None for no limit

    Returns:
        Stages in pipeline order, with no pipes attached yet.

    Raises:
        NoStagesError: If ``tokens`` is empty.
        EmptyStageError: If a stage has no arguments.
        TrailingDelimiterError: If the last token is the delimiter.
        TooManyStagesError: If more than ``max_stages`` stages are given.
    """
    if not delimiter:
        raise ValueError("Delimiter cannot be empty")
    if not tokens:
        raise NoStagesError()

    stages: list[StageSpec] = []
    current: list[str] = []

    for token in tokens:
        if token != delimiter:
            current.append(token)
            continue
        _close_group(stages, current, max_stages)
        current = []

    if tokens[-1] == delimiter:
        raise TrailingDelimiterError(delimiter)
    _close_group(stages, current, max_stages)

    logger.debug("Parsed %d stage(s): %s", len(stages), [s.name for s in stages])
    return stages


def _close_group(stages: list[StageSpec], group: list[str], max_stages: int | None) -> None:
    position = len(stages)
    if max_stages is not None and position >= max_stages:
        raise TooManyStagesError(max_stages)
    if not group:
        raise EmptyStageError(position)
    stages.append(StageSpec(index=position, arguments=group))
