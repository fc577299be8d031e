"""Configuration service for managing catalog settings."""

import json
from pathlib import Path
from typing import Any

import structlog

from ..models import CatalogConfig, GrammarProfile
from ..models.config import DEFAULT_SIGNATURE_DIRECTORIES, DEFAULT_SOURCE_URL
from .errors import ConfigurationError

log = structlog.stdlib.get_logger()

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "romnibus" / "config.json"
DEFAULT_DATA_DIRECTORY = Path.home() / ".local" / "share" / "romnibus"


class ValidationResult:
    """Result of configuration validation."""

    def __init__(self, is_valid: bool, errors: list[str] | None = None) -> None:
        self.is_valid: bool = is_valid
        self.errors: list[str] = errors or []


class ConfigurationService:
    """Loads, validates and saves the JSON configuration file."""

    def __init__(self, config_path: Path | None = None) -> None:
        self.config_path: Path = config_path or DEFAULT_CONFIG_PATH
        log.debug("Configuration service initialized", config_path=str(self.config_path))

    def load_config(self) -> CatalogConfig:
        """Load configuration from file, falling back to defaults when it is missing or invalid."""
        if not self.config_path.exists():
            log.info("Configuration file not found, using defaults", config_path=str(self.config_path))
            return self.get_default_config()

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise TypeError("configuration root must be an object")

            config = self._dict_to_config(data)
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.warning("Failed to load configuration, using defaults", error=str(e))
            return self.get_default_config()

        validation_result = self.validate_config(config)
        if not validation_result.is_valid:
            log.warning("Invalid configuration loaded, using defaults", errors=validation_result.errors)
            return self.get_default_config()

        log.info("Configuration loaded successfully", config_path=str(self.config_path))
        return config

    def save_config(self, config: CatalogConfig) -> None:
        """Save configuration to file.

        Raises:
            ConfigurationError: If the configuration does not validate
            OSError: If the file cannot be written
        """
        validation_result = self.validate_config(config)
        if not validation_result.is_valid:
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(validation_result.errors)}",
                setting=str(self.config_path),
            )

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self._config_to_dict(config), f, indent=2, ensure_ascii=False)
        except OSError as e:
            log.error("Failed to save configuration", error=str(e))
            raise

        log.info("Configuration saved successfully", config_path=str(self.config_path))

    def validate_config(self, config: CatalogConfig) -> ValidationResult:
        """Validate configuration settings."""
        errors = []

        if not isinstance(config.profile, GrammarProfile):
            errors.append("profile must be one of: " + ", ".join(p.value for p in GrammarProfile))

        if config.log_level not in VALID_LOG_LEVELS:
            errors.append(f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}")

        if not isinstance(config.source_url, str) or not config.source_url.startswith(("http://", "https://")):
            errors.append("source_url must be an http(s) URL")

        if not config.signature_directories:
            errors.append("signature_directories cannot be empty")
        elif not all(isinstance(d, str) and d.strip("/ ") for d in config.signature_directories):
            errors.append("signature_directories must contain non-empty relative paths")

        if not isinstance(config.database_path, Path) or not str(config.database_path):
            errors.append("database_path must be a path")

        if not isinstance(config.work_directory, Path) or not str(config.work_directory):
            errors.append("work_directory must be a path")

        if isinstance(config.request_timeout, bool) or not isinstance(config.request_timeout, (int, float)) \
                or config.request_timeout <= 0:
            errors.append("request_timeout must be a positive number")

        if isinstance(config.max_retries, bool) or not isinstance(config.max_retries, int) or config.max_retries < 0:
            errors.append("max_retries must be a non-negative integer")
        elif config.max_retries > 10:
            errors.append("max_retries should not exceed 10")

        return ValidationResult(len(errors) == 0, errors)

    def get_default_config(self) -> CatalogConfig:
        return CatalogConfig(
            database_path=DEFAULT_DATA_DIRECTORY / "catalog.db",
            work_directory=DEFAULT_DATA_DIRECTORY / "work",
        )

    def _config_to_dict(self, config: CatalogConfig) -> dict[str, Any]:
        """Convert CatalogConfig to a dictionary for JSON serialization."""
        return {
            "database_path": str(config.database_path),
            "work_directory": str(config.work_directory),
            "source_url": config.source_url,
            "signature_directories": list(config.signature_directories),
            "profile": config.profile.value,
            "log_level": config.log_level,
            "keep_sources": config.keep_sources,
            "request_timeout": config.request_timeout,
            "max_retries": config.max_retries,
        }

    def _dict_to_config(self, data: dict[str, Any]) -> CatalogConfig:
        """Convert a dictionary to CatalogConfig, defaulting absent keys.

        Raises:
            ValueError: If the profile name is unknown
        """
        defaults = self.get_default_config()

        directories = data.get("signature_directories", list(DEFAULT_SIGNATURE_DIRECTORIES))
        if not isinstance(directories, list):
            directories = []

        timeout = data.get("request_timeout", defaults.request_timeout)
        retries = data.get("max_retries", defaults.max_retries)

        return CatalogConfig(
            database_path=Path(str(data.get("database_path", defaults.database_path))).expanduser(),
            work_directory=Path(str(data.get("work_directory", defaults.work_directory))).expanduser(),
            source_url=str(data.get("source_url", DEFAULT_SOURCE_URL)),
            signature_directories=tuple(str(d) for d in directories),
            profile=GrammarProfile(str(data.get("profile", defaults.profile.value)).lower()),
            log_level=str(data.get("log_level", defaults.log_level)).upper(),
            keep_sources=data.get("keep_sources") is True,
            request_timeout=float(timeout) if isinstance(timeout, (int, float)) and not isinstance(timeout, bool) else -1.0,
            max_retries=int(retries) if isinstance(retries, int) and not isinstance(retries, bool) else -1,
        )
