"""Tests for splitting tokens into pipeline stages."""

import pytest

from runpipe.errors import (
    ConfigurationError,
    EmptyStageError,
    NoStagesError,
    TooManyStagesError,
    TrailingDelimiterError,
)
from runpipe.pipeline.parser import parse_stages
from runpipe.pipeline.stage import StageSpec


class TestParseStages:
    """Tests for parse_stages() grouping."""

    def test_single_stage(self):
        stages = parse_stages(["false"])
        assert len(stages) == 1
        assert stages[0].arguments == ["false"]
        assert stages[0].index == 0

    def test_two_stages_split_on_delimiter(self):
        """Happy: echo hi -- tr a-z A-Z gives two stages in order."""
        stages = parse_stages(["echo", "hi", "--", "tr", "a-z", "A-Z"])
        assert [s.arguments for s in stages] == [["echo", "hi"], ["tr", "a-z", "A-Z"]]
        assert [s.index for s in stages] == [0, 1]

    def test_stage_names_are_executables(self):
        stages = parse_stages(["ls", "-l", "--", "grep", "py", "--", "wc", "-l"])
        assert [s.name for s in stages] == ["ls", "grep", "wc"]

    def test_custom_delimiter(self):
        stages = parse_stages(["cat", "--", "x", "::", "sort"], delimiter="::")
        assert [s.arguments for s in stages] == [["cat", "--", "x"], ["sort"]]

    def test_stages_have_no_pipes_or_handles(self):
        for stage in parse_stages(["a", "--", "b", "--", "c"]):
            assert stage.stdin_source is None
            assert stage.stdout_sink is None
            assert stage.pid is None
            assert not stage.launched

    def test_no_tokens_is_usage_error(self):
        """Failure: an empty token list has no stages."""
        with pytest.raises(NoStagesError):
            parse_stages([])

    def test_adjacent_delimiters_raise_empty_stage(self):
        """Failure: a -- -- b has an empty second stage."""
        with pytest.raises(EmptyStageError) as exc_info:
            parse_stages(["a", "--", "--", "b"])
        assert exc_info.value.position == 1
        assert exc_info.value.stage == 1

    def test_leading_delimiter_raises_empty_stage(self):
        with pytest.raises(EmptyStageError) as exc_info:
            parse_stages(["--", "a"])
        assert exc_info.value.position == 0

    def test_lone_delimiter_is_empty_stage(self):
        with pytest.raises(EmptyStageError):
            parse_stages(["--"])

    def test_trailing_delimiter(self):
        """Failure: a delimiter with nothing after it."""
        with pytest.raises(TrailingDelimiterError):
            parse_stages(["echo", "hi", "--"])

    def test_too_many_stages(self):
        """Failure: exceeding max_stages fails during parsing."""
        tokens = ["true", "--", "true", "--", "true"]
        with pytest.raises(TooManyStagesError) as exc_info:
            parse_stages(tokens, max_stages=2)
        assert exc_info.value.limit == 2

    def test_exactly_max_stages_is_allowed(self):
        tokens = ["true", "--", "true", "--", "true"]
        assert len(parse_stages(tokens, max_stages=3)) == 3

    def test_default_limit_is_ten(self):
        tokens = ["true"] + ["--", "true"] * 10
        with pytest.raises(TooManyStagesError):
            parse_stages(tokens)

    def test_no_limit(self):
        tokens = ["true"] + ["--", "true"] * 30
        assert len(parse_stages(tokens, max_stages=None)) == 31

    def test_errors_are_configuration_errors(self):
        for tokens in ([], ["a", "--"], ["a", "--", "--", "b"]):
            with pytest.raises(ConfigurationError) as exc_info:
                parse_stages(tokens)
            assert exc_info.value.exit_code == 2

    def test_empty_delimiter_rejected(self):
        with pytest.raises(ValueError):
            parse_stages(["a"], delimiter="")


class TestStageSpec:
    """Tests for StageSpec helpers."""

    def test_empty_arguments_rejected(self):
        with pytest.raises(ValueError):
            StageSpec(index=0, arguments=[])

    def test_release_endpoints_without_pipes(self):
        stage = StageSpec(index=0, arguments=["true"])
        stage.release_endpoints()
        assert stage.endpoints() == []
