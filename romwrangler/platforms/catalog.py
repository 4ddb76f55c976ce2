"""System catalog: metadata, formats, device folders and folder-name aliases.

The catalog is loaded from ``systems.yaml`` by :func:`init_catalog`, which
must run once at process start before any scan. Loading happens in a fixed
order: systems (formats and folders) first, then the alias table, which is
derived partly from the folder names.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import jsonschema
import yaml

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SystemInfo:
    id: str
    display_name: str
    company: str
    is_disc_based: bool
    folder: str
    formats: Tuple[str, ...]


def _catalog_path() -> Path:
    override = os.environ.get("ROMWRANGLER_SYSTEMS", "").strip()
    if override:
        return Path(override)
    return Path(__file__).resolve().parent / "systems.yaml"


def _catalog_schema_path() -> Path:
    return Path(__file__).resolve().parent / "systems.schema.json"


def _normalize_alias(name: str) -> str:
    return str(name).strip().lower()


class SystemCatalog:
    """Immutable lookup tables built from one catalog document."""

    def __init__(
        self,
        systems: Dict[str, SystemInfo],
        aliases: Dict[str, str],
        unique_extensions: Dict[str, str],
    ) -> None:
        self._systems = systems
        self._aliases = aliases
        self._unique_extensions = unique_extensions

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SystemCatalog":
        systems: Dict[str, SystemInfo] = {}
        for system_id, raw in (data.get("systems") or {}).items():
            systems[str(system_id)] = SystemInfo(
                id=str(system_id),
                display_name=str(raw["name"]),
                company=str(raw.get("company") or ""),
                is_disc_based=bool(raw.get("disc_based")),
                folder=str(raw["folder"]),
                formats=tuple(str(ext).lower() for ext in raw.get("formats") or ()),
            )

        aliases: Dict[str, str] = {}
        for alias, system_id in (data.get("aliases") or {}).items():
            if system_id not in systems:
                raise ConfigurationError(
                    f"Alias {alias!r} points at unknown system {system_id!r}",
                    "CATALOG_ERROR",
                )
            aliases[_normalize_alias(alias)] = str(system_id)

        # Device folder names resolve to their system unless an explicit
        # alias already claims the name. A shared folder belongs to the
        # system whose id matches it.
        owners = sorted(systems, key=lambda sid: (systems[sid].folder != sid, sid))
        for system_id in owners:
            folder = _normalize_alias(systems[system_id].folder)
            aliases.setdefault(folder, system_id)

        unique: Dict[str, str] = {}
        for ext, system_id in (data.get("unique_extensions") or {}).items():
            if system_id not in systems:
                raise ConfigurationError(
                    f"Extension {ext!r} points at unknown system {system_id!r}",
                    "CATALOG_ERROR",
                )
            unique[str(ext).lower()] = str(system_id)

        return cls(systems, aliases, unique)

    @property
    def systems(self) -> Dict[str, SystemInfo]:
        return dict(self._systems)

    @property
    def default_aliases(self) -> Dict[str, str]:
        return dict(self._aliases)

    def get_system(self, system_id: str) -> Optional[SystemInfo]:
        return self._systems.get(system_id)

    def is_known(self, system_id: str) -> bool:
        return system_id in self._systems

    def is_disc_based(self, system_id: str) -> bool:
        info = self._systems.get(system_id)
        return bool(info and info.is_disc_based)

    def is_valid_format(self, system_id: str, ext: str) -> bool:
        info = self._systems.get(system_id)
        if info is None:
            return False
        return ext.lower() in info.formats

    def folder_for_system(self, system_id: str) -> Optional[str]:
        info = self._systems.get(system_id)
        return info.folder if info else None

    def device_folders(self) -> List[Tuple[str, str]]:
        """(system, folder) pairs sorted by folder, then system."""
        return sorted(
            ((sid, info.folder) for sid, info in self._systems.items()),
            key=lambda pair: (pair[1], pair[0]),
        )

    def resolve_alias(self, name: str, config_aliases: Optional[Mapping[str, str]] = None) -> Optional[str]:
        """Resolve a folder name to a system id.

        Config overrides are consulted first and only count when they name a
        known system; the built-in table is the fallback. Matching is
        case-insensitive and ignores surrounding whitespace.
        """
        normalized = _normalize_alias(name)
        if config_aliases:
            for alias, system_id in config_aliases.items():
                if _normalize_alias(alias) == normalized and system_id in self._systems:
                    return system_id
        return self._aliases.get(normalized)

    def detect_system_by_extension(self, filename: str) -> Optional[str]:
        ext = os.path.splitext(filename)[1].lower()
        return self._unique_extensions.get(ext)


_catalog: Optional[SystemCatalog] = None
_catalog_lock = threading.Lock()


def load_catalog(path: Optional[Path] = None) -> SystemCatalog:
    """Read, validate and build a catalog without installing it."""
    catalog_path = Path(path) if path is not None else _catalog_path()
    try:
        raw = catalog_path.read_text(encoding="utf-8")
        data = yaml.safe_load(raw)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read system catalog: {exc}", "CATALOG_ERROR",
                                 file_path=str(catalog_path)) from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in system catalog: {exc}", "CATALOG_ERROR",
                                 file_path=str(catalog_path)) from exc

    if not isinstance(data, dict):
        raise ConfigurationError("System catalog must be a mapping", "CATALOG_ERROR",
                                 file_path=str(catalog_path))

    schema = json.loads(_catalog_schema_path().read_text(encoding="utf-8"))
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        raise ConfigurationError(f"System catalog failed validation: {exc.message}", "CATALOG_ERROR",
                                 file_path=str(catalog_path)) from exc

    return SystemCatalog.from_mapping(data)


def init_catalog(path: Optional[Path] = None, *, force: bool = False) -> SystemCatalog:
    """Load the catalog once and install it as the process-wide instance."""
    global _catalog
    with _catalog_lock:
        if _catalog is not None and not force:
            return _catalog
        _catalog = load_catalog(path)
        logger.debug("System catalog loaded: %d systems", len(_catalog.systems))
        return _catalog


def get_catalog() -> SystemCatalog:
    if _catalog is None:
        raise ConfigurationError(
            "System catalog not initialized; call init_catalog() at startup",
            "CATALOG_NOT_INITIALIZED",
        )
    return _catalog


def resolve_alias(name: str, config_aliases: Optional[Mapping[str, str]] = None) -> Optional[str]:
    return get_catalog().resolve_alias(name, config_aliases)


def is_valid_format(system_id: str, ext: str) -> bool:
    return get_catalog().is_valid_format(system_id, ext)


def folder_for_system(system_id: str) -> Optional[str]:
    return get_catalog().folder_for_system(system_id)


def is_disc_based(system_id: str) -> bool:
    return get_catalog().is_disc_based(system_id)


def detect_system_by_extension(filename: str) -> Optional[str]:
    return get_catalog().detect_system_by_extension(filename)
