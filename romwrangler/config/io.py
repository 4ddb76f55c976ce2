"""Config I/O utilities."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from .models import EngineConfig

logger = logging.getLogger(__name__)


def default_config_path() -> str:
    override = os.environ.get("ROMWRANGLER_CONFIG", "").strip()
    if override:
        return override
    base = os.environ.get("XDG_CONFIG_HOME", "").strip() or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, "romwrangler", "config.yaml")


def _expand_tilde(path: Optional[str]) -> Optional[str]:
    if not path:
        return path
    if path == "~" or path.startswith("~/"):
        return os.path.expanduser(path)
    return path


def _expand_paths(config: EngineConfig) -> EngineConfig:
    config.source_dirs = [_expand_tilde(d) or d for d in config.source_dirs]
    config.chdman_path = _expand_tilde(config.chdman_path)
    config.seven_zip_path = _expand_tilde(config.seven_zip_path)
    config.output_dir = _expand_tilde(config.output_dir)
    return config


def parse_config(data: Optional[Dict[str, Any]], config_path: Optional[str] = None) -> EngineConfig:
    try:
        config = EngineConfig.model_validate(data or {})
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}", file_path=config_path) from exc
    return _expand_paths(config)


def load_config(config_path: Optional[str] = None) -> EngineConfig:
    """Load settings from YAML; a missing file yields (and writes) defaults."""
    if config_path is None:
        config_path = default_config_path()

    path = Path(config_path)
    if not path.exists():
        config = EngineConfig()
        try:
            save_config(config, config_path)
        except ConfigurationError as exc:
            logger.warning("Could not write default config: %s", exc)
        return config

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config: {exc}", file_path=config_path) from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in config: {exc}", file_path=config_path) from exc

    if data is not None and not isinstance(data, dict):
        raise ConfigurationError("Config root must be a mapping", file_path=config_path)
    return parse_config(data, config_path)


def save_config(config: EngineConfig, config_path: Optional[str] = None) -> str:
    if config_path is None:
        config_path = default_config_path()
    payload = config.model_dump(exclude_none=True)
    try:
        os.makedirs(os.path.dirname(os.path.abspath(config_path)), exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(payload, f, sort_keys=False, allow_unicode=True)
    except OSError as exc:
        raise ConfigurationError(f"Cannot write config: {exc}", file_path=config_path) from exc
    return config_path
