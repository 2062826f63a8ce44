"""Tests for runner configuration loading."""

import pytest

from runpipe.config import CONFIG_ENV_VAR, RunnerConfig, RunnerSchema, load_config
from runpipe.errors import ConfigFileError, ConfigurationError


class TestRunnerConfig:
    """Tests for RunnerConfig defaults and merging."""

    def test_defaults(self):
        config = RunnerConfig()
        assert config.delimiter == "--"
        assert config.max_stages == 10
        assert config.launcher == "fork"
        assert config.abort_policy == "terminate"
        assert config.output == "text"

    def test_merge_ignores_none(self):
        config = RunnerConfig(delimiter="::").merge(delimiter=None, launcher="spawn")
        assert config.delimiter == "::"
        assert config.launcher == "spawn"

    def test_merge_ignores_unknown_keys(self):
        assert RunnerConfig().merge(color=True) == RunnerConfig()


class TestLoadConfig:
    """Tests for load_config() with YAML files."""

    def test_no_path_no_env_gives_defaults(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert load_config() == RunnerConfig()

    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "runpipe.yaml"
        path.write_text(
            "delimiter: '::'\n"
            "max_stages: 16\n"
            "launcher: spawn\n"
            "abort_policy: reap\n"
            "output: jsonl\n"
            "log_level: info\n"
        )
        config = load_config(path)
        assert config == RunnerConfig(
            delimiter="::",
            max_stages=16,
            launcher="spawn",
            abort_policy="reap",
            output="jsonl",
            log_level="INFO",
        )

    def test_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("max_stages: 3\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert load_config().max_stages == 3

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == RunnerConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigFileError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("delimiter: [unclosed\n")
        with pytest.raises(ConfigFileError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigFileError, match="mapping"):
            load_config(path)

    @pytest.mark.parametrize("content", [
        "launcher: thread\n",
        "abort_policy: ignore\n",
        "max_stages: 0\n",
        "delimiter: ' '\n",
        "log_level: LOUD\n",
        "colour: true\n",
    ])
    def test_schema_violations(self, tmp_path, content):
        path = tmp_path / "invalid.yaml"
        path.write_text(content)
        with pytest.raises(ConfigFileError) as exc_info:
            load_config(path)
        assert isinstance(exc_info.value, ConfigurationError)
        assert exc_info.value.exit_code == 2


class TestRunnerSchema:
    def test_to_config(self):
        schema = RunnerSchema(delimiter="|", output="jsonl")
        assert schema.to_config() == RunnerConfig(delimiter="|", output="jsonl")
