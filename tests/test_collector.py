"""Tests for exit status decoding and stage collection."""

import os
import signal
from unittest.mock import patch

import pytest

from runpipe.errors import InvalidHandleError, WaitError
from runpipe.pipeline.collector import (
    ExitStatus,
    NormalExit,
    Signaled,
    Unknown,
    decode_status,
    wait_stage,
)
from runpipe.pipeline.launcher import ForkExecLauncher
from runpipe.pipeline.parser import parse_stages
from runpipe.pipeline.stage import Pipeline, StageSpec


def launch_single(arguments):
    pipeline = Pipeline(stages=parse_stages(arguments))
    ForkExecLauncher().launch(pipeline, 0)
    return pipeline.stages[0]


class TestDecodeStatus:
    """Tests for decode_status() on raw wait statuses."""

    @pytest.mark.parametrize("code", [0, 1, 42, 255])
    def test_normal_exit(self, code):
        status = decode_status(code << 8)
        assert status == NormalExit(code)
        assert status.exit_code == code
        assert not status.abnormal

    def test_signaled(self):
        status = decode_status(signal.SIGKILL)
        assert status == Signaled(signal.SIGKILL)
        assert status.abnormal
        assert status.exit_code == 128 + signal.SIGKILL
        assert not status.success

    def test_core_dump_flag(self):
        status = decode_status(signal.SIGSEGV | 0x80)
        assert isinstance(status, Signaled)
        assert status.core_dumped
        assert "core dumped" in status.describe()

    def test_stopped_is_unknown(self):
        status = decode_status((signal.SIGSTOP << 8) | 0x7F)
        assert isinstance(status, Unknown)
        assert status.exit_code is None


class TestExitStatus:
    """Tests for ExitStatus helpers."""

    def test_success_only_for_zero(self):
        assert NormalExit(0).success
        assert not NormalExit(1).success

    def test_describe(self):
        assert NormalExit(3).describe() == "3"
        assert Signaled(signal.SIGTERM).describe() == "killed by SIGTERM"
        assert Unknown(0x137F).describe() == "unknown status 0x137f"

    def test_unknown_signal_number_name(self):
        assert Signaled(250).signal_name == "signal 250"

    def test_base_class_is_abstract(self):
        with pytest.raises(TypeError):
            ExitStatus()


class TestWaitStage:
    """Tests for wait_stage() against real processes."""

    def test_exit_code_is_reported(self):
        stage = launch_single(["sh", "-c", "exit 42"])
        assert wait_stage(stage) == NormalExit(42)
        assert stage.reaped

    def test_false_reports_one(self):
        assert wait_stage(launch_single(["false"])) == NormalExit(1)

    def test_signal_is_abnormal_not_zero(self):
        """Happy: a stage killed by a signal reports Signaled."""
        stage = launch_single(["sh", "-c", "kill -TERM $$"])
        status = wait_stage(stage)
        assert status == Signaled(signal.SIGTERM)
        assert status.exit_code != 0

    def test_never_launched_raises_invalid_handle(self):
        stage = StageSpec(index=2, arguments=["true"])
        with pytest.raises(InvalidHandleError) as exc_info:
            wait_stage(stage)
        assert exc_info.value.stage == 2

    def test_second_wait_raises_wait_error(self):
        stage = launch_single(["true"])
        wait_stage(stage)
        with pytest.raises(WaitError, match="already reaped"):
            wait_stage(stage)

    def test_waitpid_failure_raises_wait_error(self):
        stage = launch_single(["true"])
        try:
            with patch("os.waitpid", side_effect=ChildProcessError(10, "No child processes")):
                with pytest.raises(WaitError) as exc_info:
                    wait_stage(stage)
            assert isinstance(exc_info.value.cause, ChildProcessError)
        finally:
            os.waitpid(stage.pid, 0)
