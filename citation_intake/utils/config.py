"""Configuration management for the citation form session engine."""

import os
import yaml
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigError
from .logging import DEFAULT_FORMAT as DEFAULT_LOG_FORMAT

DEFAULT_FORM_VERSION = "AOPC 407-95 (Rev. 11/2022)"
DEFAULT_FEE = "40.25"


@dataclass
class StorageConfig:
    """Key-value medium configuration."""
    backend: str = "file"  # "file" | "memory"
    data_dir: str = "data/applications"
    finalize_max_retries: int = 3
    retry_backoff_seconds: float = 0.05


@dataclass
class FormConfig:
    """Pre-filled constants of a new application document."""
    version_label: str = DEFAULT_FORM_VERSION
    default_fee: str = DEFAULT_FEE


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = DEFAULT_LOG_FORMAT
    file: str = ""


@dataclass
class Config:
    """Main configuration class."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    form: FormConfig = field(default_factory=FormConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: str = "config.yaml") -> "Config":
        """
        Load configuration from file and environment variables.

        A missing file yields the built-in defaults. Environment variables
        override config file values:
        - CITATION_STORAGE_BACKEND
        - CITATION_DATA_DIR
        - CITATION_FINALIZE_RETRIES
        - LOG_LEVEL

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings

        Raises:
            ConfigError: If the file exists but is not valid YAML or has
                values of the wrong type
        """
        load_dotenv()

        config_data = {}
        path = Path(config_path)
        if path.exists():
            try:
                with open(path, 'r') as f:
                    config_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError.invalid(config_path, e) from e
            if not isinstance(config_data, dict):
                raise ConfigError.invalid(config_path, ValueError("top level must be a mapping"))

        storage_data = config_data.get("storage", {}) or {}
        form_data = config_data.get("form", {}) or {}
        logging_data = config_data.get("logging", {}) or {}

        defaults = StorageConfig()
        try:
            storage_config = StorageConfig(
                backend=os.getenv(
                    "CITATION_STORAGE_BACKEND", storage_data.get("backend", defaults.backend)
                ),
                data_dir=os.getenv(
                    "CITATION_DATA_DIR", storage_data.get("data_dir", defaults.data_dir)
                ),
                finalize_max_retries=int(os.getenv(
                    "CITATION_FINALIZE_RETRIES",
                    storage_data.get("finalize_max_retries", defaults.finalize_max_retries)
                )),
                retry_backoff_seconds=float(
                    storage_data.get("retry_backoff_seconds", defaults.retry_backoff_seconds)
                )
            )
        except (TypeError, ValueError) as e:
            raise ConfigError.invalid(config_path, e) from e

        if storage_config.backend not in ("file", "memory"):
            raise ConfigError.invalid(
                config_path, ValueError(f"unknown storage backend '{storage_config.backend}'")
            )
        if storage_config.finalize_max_retries < 1:
            raise ConfigError.invalid(
                config_path, ValueError("finalize_max_retries must be at least 1")
            )

        form_config = FormConfig(
            version_label=str(form_data.get("version_label", DEFAULT_FORM_VERSION)),
            default_fee=str(form_data.get("default_fee", DEFAULT_FEE))
        )

        log_defaults = LoggingConfig()
        logging_config = LoggingConfig(
            level=os.getenv("LOG_LEVEL", logging_data.get("level", log_defaults.level)),
            format=logging_data.get("format", log_defaults.format),
            file=logging_data.get("file", log_defaults.file) or ""
        )

        return cls(
            storage=storage_config,
            form=form_config,
            logging=logging_config,
        )
