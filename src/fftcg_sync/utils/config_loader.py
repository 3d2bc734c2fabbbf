"""YAML configuration loading with ``${VAR}`` environment substitution."""

import os
import re
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml
from pydantic import ValidationError

from fftcg_sync.models.config import AppConfig
from fftcg_sync.utils.errors import ConfigurationError

log = structlog.stdlib.get_logger()

ENV_SELECTOR = "FFTCG_ENV"
DEFAULT_ENVIRONMENT = "default"
ENV_REFERENCE = re.compile(r"\$\{([^}]+)\}")

SUPPORTED_DOCUMENT_STORES = ("memory",)
SUPPORTED_BLOB_STORES = ("memory",)


class ConfigLoader:
    """
    Builds an :class:`AppConfig` from ``config/<environment>.yaml``.

    The environment comes from ``FFTCG_ENV``; a missing environment file
    falls back to ``default.yaml``. Keys absent from the file are filled from
    ``FFTCG_<SECTION>__<KEY>`` environment variables, then model defaults.
    """

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        self.config_dir = config_dir or Path(__file__).resolve().parents[3] / "config"

    def load_config(self, config_path: Optional[str] = None) -> AppConfig:
        """
        Load and validate configuration.

        Args:
            config_path: Explicit YAML file; the environment file is used when None

        Returns:
            AppConfig: Validated application configuration

        Raises:
            ConfigurationError: If the file is missing, unreadable, not a
                mapping, references an unset variable or fails validation
        """
        path = Path(config_path) if config_path is not None else self._environment_file()
        log.info("loading_configuration", config_path=str(path))

        raw = substitute_env_vars(self._read_mapping(path))
        try:
            config = AppConfig(**raw)
        except ValidationError as e:
            log.error("configuration_validation_failed", error=str(e))
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        log.info("configuration_loaded_successfully", config_path=str(path))
        return config

    def _environment_file(self) -> Path:
        environment = os.getenv(ENV_SELECTOR, DEFAULT_ENVIRONMENT)
        for candidate in (f"{environment}.yaml", f"{DEFAULT_ENVIRONMENT}.yaml"):
            path = self.config_dir / candidate
            if path.exists():
                return path
        raise ConfigurationError(
            f"No configuration file for environment '{environment}' in {self.config_dir}; "
            f"expected {environment}.yaml or {DEFAULT_ENVIRONMENT}.yaml"
        )

    @staticmethod
    def _read_mapping(path: Path) -> dict[str, Any]:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {path}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            raise ConfigurationError(f"Configuration file is empty: {path}")
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping, got {type(data).__name__}: {path}"
            )
        return data

    def validate_config(self, config: AppConfig) -> list[str]:
        """Return warnings for settings that are valid but probably unintended."""
        sync = config.sync
        warnings = []

        if sync.checkpoint_interval < sync.cards_per_batch:
            warnings.append(
                f"sync.checkpoint_interval ({sync.checkpoint_interval}) is smaller than "
                f"sync.cards_per_batch ({sync.cards_per_batch}); every sub-batch will checkpoint"
            )
        if sync.safety_margin_seconds >= sync.max_execution_seconds:
            warnings.append(
                f"sync.safety_margin_seconds ({sync.safety_margin_seconds}) leaves no execution "
                f"budget out of sync.max_execution_seconds ({sync.max_execution_seconds})"
            )
        if config.store.type not in SUPPORTED_DOCUMENT_STORES:
            warnings.append(
                f"store.type '{config.store.type}' is not supported; "
                f"choose one of {list(SUPPORTED_DOCUMENT_STORES)}"
            )
        if config.store.blob_type not in SUPPORTED_BLOB_STORES:
            warnings.append(
                f"store.blob_type '{config.store.blob_type}' is not supported; "
                f"choose one of {list(SUPPORTED_BLOB_STORES)}"
            )

        if warnings:
            log.warning("configuration_validation_warnings", warnings=warnings)
        return warnings


def substitute_env_vars(value: Any) -> Any:
    """
    Replace ``${VAR}`` references in every string of a parsed YAML tree.

    Raises:
        ConfigurationError: If a referenced variable is not set
    """
    if isinstance(value, dict):
        return {key: substitute_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [substitute_env_vars(item) for item in value]
    if isinstance(value, str):
        return ENV_REFERENCE.sub(_env_value, value)
    return value


def _env_value(match: re.Match) -> str:
    name = match.group(1)
    resolved = os.getenv(name)
    if resolved is None:
        raise ConfigurationError(f"Required environment variable not set: {name}")
    return resolved
