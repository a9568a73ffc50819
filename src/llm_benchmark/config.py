"""
Configuration management for the LLM Benchmark Toolkit.

Provides centralized configuration handling with support for:
- Configuration files (YAML/JSON)
- Environment variables
- Command-line overrides
- Validation and defaults
"""

import os
import json
import yaml
from pathlib import Path
from typing import Dict, Optional, Any, Union
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


logger = logging.getLogger(__name__)


ENV_PREFIX = "LLM_BENCHMARK_"


class BenchmarkSettings(BaseModel):
    """
    Main settings class for the LLM Benchmark Toolkit.

    Supports loading from files, environment variables, and validation
    of all configuration parameters.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    # AWS Configuration
    aws_region: str = Field(default="us-east-1", description="AWS region for the Bedrock runtime")
    aws_profile: Optional[str] = Field(default=None, description="AWS profile name")

    # Retry Configuration
    max_retries: int = Field(default=5, ge=0, le=20, description="Maximum retry attempts for throttled calls")
    base_delay: float = Field(default=1.0, ge=0.1, le=10.0, description="Base delay for exponential backoff (seconds)")
    max_delay: float = Field(default=60.0, ge=1.0, le=300.0, description="Maximum delay for exponential backoff (seconds)")

    # Capacity Configuration
    capacity_budget: int = Field(default=100_000, ge=0, description="Token budget reported by the static capacity checker")
    capacity_buffer: int = Field(default=50, ge=50, le=100, description="Tokens held back when clamping max_tokens")
    low_capacity_threshold: int = Field(default=500, ge=0, description="Budget below which premium models are substituted")
    fallback_model_id: str = Field(default="meta.llama3-8b-instruct-v1:0", description="Cheap model used when capacity is tight")
    prompt_truncation_limit: int = Field(default=1000, ge=100, description="Prompt length cap for the last-resort retry")

    # Storage Configuration
    storage_path: str = Field(default="./benchmarks", description="Path to store benchmark runs")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="structured", description="Log format: 'structured' or 'simple'")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")

    # Model Configuration Defaults
    default_model_params: Dict[str, Any] = Field(default_factory=dict, description="Default model parameters")

    @field_validator('aws_region')
    @classmethod
    def validate_aws_region(cls, v):
        """Validate AWS region format."""
        if not v or len(v) < 3:
            raise ValueError("AWS region must be a valid region identifier")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        """Validate log format."""
        valid_formats = ['structured', 'simple']
        if v not in valid_formats:
            raise ValueError(f"Log format must be one of: {valid_formats}")
        return v

    @field_validator('storage_path')
    @classmethod
    def validate_storage_path(cls, v):
        """Validate and normalize storage path."""
        path = Path(v).expanduser().resolve()
        return str(path)

    @field_validator('max_delay')
    @classmethod
    def validate_max_delay_greater_than_base(cls, v, info: ValidationInfo):
        """Ensure max_delay is greater than base_delay."""
        if 'base_delay' in info.data and v <= info.data['base_delay']:
            raise ValueError("max_delay must be greater than base_delay")
        return v


class ConfigManager:
    """
    Manages configuration loading from multiple sources with precedence:
    1. Command-line arguments (highest priority)
    2. Environment variables
    3. Configuration file
    4. Defaults (lowest priority)
    """

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Optional path to configuration file
        """
        self.config_file = Path(config_file) if config_file else None
        self._config: Optional[BenchmarkSettings] = None

    def load_config(
        self,
        config_overrides: Optional[Dict[str, Any]] = None,
        validate: bool = True
    ) -> BenchmarkSettings:
        """
        Load configuration from all sources with proper precedence.

        Args:
            config_overrides: Dictionary of configuration overrides (highest priority)
            validate: Whether to check that storage and log paths are writable

        Returns:
            BenchmarkSettings instance

        Raises:
            ValueError: If configuration is invalid
            FileNotFoundError: If specified config file doesn't exist
        """
        config_data = {}

        if self.config_file:
            file_config = self._load_config_file(self.config_file)
            config_data.update(file_config)

        env_config = self._load_from_environment()
        config_data.update(env_config)

        if config_overrides:
            config_data.update(config_overrides)

        try:
            self._config = BenchmarkSettings(**config_data)

            if validate:
                self._validate_config()

            logger.info("Configuration loaded successfully")
            logger.debug(f"Config: {self._config.model_dump()}")

            return self._config

        except Exception as e:
            logger.error(f"Configuration validation failed: {e}")
            raise ValueError(f"Invalid configuration: {e}")

    def _load_config_file(self, config_file: Path) -> Dict[str, Any]:
        """
        Load configuration from a file (JSON or YAML).

        Args:
            config_file: Path to configuration file

        Returns:
            Dictionary of configuration values

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If file format is unsupported or invalid
        """
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_file}")

        suffix = config_file.suffix.lower()
        if suffix not in ['.yaml', '.yml', '.json']:
            raise ValueError(f"Unsupported config file format: {config_file.suffix}")

        try:
            with open(config_file, 'r') as f:
                if suffix == '.json':
                    return json.load(f) or {}
                return yaml.safe_load(f) or {}
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid configuration file format: {e}")
        except OSError as e:
            raise ValueError(f"Error reading configuration file: {e}")

    def _load_from_environment(self) -> Dict[str, Any]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with 'LLM_BENCHMARK_' and use
        uppercase with underscores.

        Returns:
            Dictionary of configuration values from environment
        """
        env_config = {}

        int_fields = {
            "max_retries", "capacity_budget", "capacity_buffer",
            "low_capacity_threshold", "prompt_truncation_limit",
        }
        float_fields = {"base_delay", "max_delay"}
        str_fields = {
            "aws_region", "aws_profile", "fallback_model_id", "storage_path",
            "log_level", "log_format", "log_file",
        }

        for config_key in sorted(int_fields | float_fields | str_fields):
            env_var = f"{ENV_PREFIX}{config_key.upper()}"
            value = os.getenv(env_var)
            if value is None:
                continue

            if config_key in int_fields:
                try:
                    env_config[config_key] = int(value)
                except ValueError:
                    logger.warning(f"Invalid integer value for {env_var}: {value}")
            elif config_key in float_fields:
                try:
                    env_config[config_key] = float(value)
                except ValueError:
                    logger.warning(f"Invalid float value for {env_var}: {value}")
            else:
                env_config[config_key] = value

        # Handle AWS region from standard AWS environment variable
        if "aws_region" not in env_config:
            aws_region = os.getenv("AWS_DEFAULT_REGION") or os.getenv("AWS_REGION")
            if aws_region:
                env_config["aws_region"] = aws_region

        return env_config

    def _validate_config(self):
        """
        Perform additional validation beyond pydantic validation.

        Raises:
            ValueError: If configuration is invalid
        """
        if not self._config:
            raise ValueError("No configuration loaded")

        storage_path = Path(self._config.storage_path)
        try:
            storage_path.mkdir(parents=True, exist_ok=True)
            test_file = storage_path / ".write_test"
            test_file.touch()
            test_file.unlink()
        except OSError as e:
            raise ValueError(f"Storage path is not writable: {storage_path} - {e}")

        if self._config.log_file:
            log_file = Path(self._config.log_file)
            try:
                log_file.parent.mkdir(parents=True, exist_ok=True)
                log_file.touch()
            except OSError as e:
                raise ValueError(f"Log file path is not writable: {log_file} - {e}")

    def save_config(self, output_path: Union[str, Path], format: str = "yaml"):
        """
        Save current configuration to a file.

        Args:
            output_path: Path to save configuration file
            format: Output format ('yaml' or 'json')

        Raises:
            ValueError: If no configuration is loaded or invalid format
        """
        if not self._config:
            raise ValueError("No configuration loaded to save")

        if format.lower() not in ('yaml', 'json'):
            raise ValueError(f"Unsupported format: {format}")

        output_path = Path(output_path)
        config_dict = self._config.model_dump()

        try:
            with open(output_path, 'w') as f:
                if format.lower() == 'yaml':
                    yaml.dump(config_dict, f, default_flow_style=False, indent=2)
                else:
                    json.dump(config_dict, f, indent=2)

            logger.info(f"Configuration saved to {output_path}")

        except OSError as e:
            raise ValueError(f"Error saving configuration: {e}")


def find_config_file() -> Optional[Path]:
    """
    Find configuration file in standard locations.

    Searches for configuration files in the following order:
    1. ./llm-benchmark.yaml
    2. ./llm-benchmark.yml
    3. ./llm-benchmark.json
    4. ~/.llm-benchmark.yaml
    5. ~/.llm-benchmark.yml
    6. ~/.llm-benchmark.json

    Returns:
        Path to configuration file or None if not found
    """
    search_paths = [
        Path("./llm-benchmark.yaml"),
        Path("./llm-benchmark.yml"),
        Path("./llm-benchmark.json"),
        Path("~/.llm-benchmark.yaml").expanduser(),
        Path("~/.llm-benchmark.yml").expanduser(),
        Path("~/.llm-benchmark.json").expanduser(),
    ]

    for path in search_paths:
        if path.exists():
            logger.info(f"Found configuration file: {path}")
            return path

    return None


def load_config_with_auto_discovery(
    config_file: Optional[Union[str, Path]] = None,
    config_overrides: Optional[Dict[str, Any]] = None
) -> BenchmarkSettings:
    """
    Load configuration with automatic file discovery.

    Args:
        config_file: Explicit config file path (overrides auto-discovery)
        config_overrides: Configuration overrides

    Returns:
        BenchmarkSettings instance
    """
    if config_file:
        config_path = Path(config_file)
    else:
        config_path = find_config_file()

    config_manager = ConfigManager(config_path)
    return config_manager.load_config(config_overrides)
