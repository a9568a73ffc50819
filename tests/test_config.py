"""Tests for configuration loading."""

import json

import pytest
import yaml
from pydantic import ValidationError

from llm_benchmark.capacity import FALLBACK_MODEL_ID
from llm_benchmark.cost import RATES, REFERENCE_MODEL_ID
from llm_benchmark.config import (
    BenchmarkSettings,
    ConfigManager,
    load_config_with_auto_discovery,
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("AWS_DEFAULT_REGION", "AWS_REGION", "LLM_BENCHMARK_AWS_REGION",
                 "LLM_BENCHMARK_MAX_RETRIES", "LLM_BENCHMARK_STORAGE_PATH", "LLM_BENCHMARK_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(tmp_path):
    settings = BenchmarkSettings(storage_path=str(tmp_path))

    assert settings.aws_region == "us-east-1"
    assert settings.capacity_buffer == 50
    assert settings.low_capacity_threshold == 500
    assert settings.fallback_model_id == FALLBACK_MODEL_ID
    assert settings.log_format == "structured"


def test_fallback_model_is_priced_as_reference():
    assert FALLBACK_MODEL_ID == REFERENCE_MODEL_ID
    assert FALLBACK_MODEL_ID in RATES


def test_validators(tmp_path):
    assert BenchmarkSettings(storage_path=str(tmp_path), log_level="debug").log_level == "DEBUG"

    with pytest.raises(ValidationError):
        BenchmarkSettings(log_level="LOUD")
    with pytest.raises(ValidationError):
        BenchmarkSettings(log_format="xml")
    with pytest.raises(ValidationError):
        BenchmarkSettings(base_delay=5.0, max_delay=2.0)
    with pytest.raises(ValidationError):
        BenchmarkSettings(capacity_buffer=10)
    with pytest.raises(ValidationError):
        BenchmarkSettings(unknown_setting=True)


def test_precedence(tmp_path, clean_env):
    config_file = tmp_path / "settings.yaml"
    config_file.write_text(yaml.safe_dump({
        "aws_region": "eu-west-1",
        "max_retries": 2,
        "log_level": "WARNING",
        "storage_path": str(tmp_path / "from-file"),
    }))
    clean_env.setenv("LLM_BENCHMARK_MAX_RETRIES", "7")
    clean_env.setenv("LLM_BENCHMARK_LOG_LEVEL", "ERROR")

    settings = ConfigManager(config_file).load_config({"log_level": "DEBUG"})

    assert settings.aws_region == "eu-west-1"
    assert settings.max_retries == 7
    assert settings.log_level == "DEBUG"
    assert (tmp_path / "from-file").is_dir()


def test_standard_aws_region_variable(tmp_path, clean_env):
    clean_env.setenv("AWS_REGION", "ap-south-1")
    settings = ConfigManager().load_config({"storage_path": str(tmp_path)})
    assert settings.aws_region == "ap-south-1"


def test_invalid_env_integer_is_ignored(tmp_path, clean_env):
    clean_env.setenv("LLM_BENCHMARK_MAX_RETRIES", "many")
    settings = ConfigManager().load_config({"storage_path": str(tmp_path)})
    assert settings.max_retries == 5


def test_invalid_values_raise_value_error(tmp_path, clean_env):
    with pytest.raises(ValueError, match="Invalid configuration"):
        ConfigManager().load_config({"storage_path": str(tmp_path), "max_retries": -1})


def test_missing_and_unsupported_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigManager(tmp_path / "missing.yaml").load_config()

    bad = tmp_path / "settings.toml"
    bad.write_text("x = 1")
    with pytest.raises(ValueError):
        ConfigManager(bad).load_config()


def test_save_and_reload(tmp_path, clean_env):
    manager = ConfigManager()
    manager.load_config({"storage_path": str(tmp_path), "capacity_budget": 1234})

    output = tmp_path / "saved.json"
    manager.save_config(output, format="json")

    assert json.loads(output.read_text())["capacity_budget"] == 1234
    assert ConfigManager(output).load_config().capacity_budget == 1234


def test_save_without_config(tmp_path):
    with pytest.raises(ValueError):
        ConfigManager().save_config(tmp_path / "out.yaml")


def test_auto_discovery(tmp_path, clean_env):
    clean_env.chdir(tmp_path)
    (tmp_path / "llm-benchmark.yaml").write_text(yaml.safe_dump({
        "storage_path": str(tmp_path / "store"),
        "capacity_budget": 999,
    }))

    settings = load_config_with_auto_discovery()

    assert settings.capacity_budget == 999
