from .catalog import (
    SystemCatalog,
    SystemInfo,
    detect_system_by_extension,
    folder_for_system,
    get_catalog,
    init_catalog,
    is_disc_based,
    is_valid_format,
    load_catalog,
    resolve_alias,
)

__all__ = [
    "SystemCatalog",
    "SystemInfo",
    "detect_system_by_extension",
    "folder_for_system",
    "get_catalog",
    "init_catalog",
    "is_disc_based",
    "is_valid_format",
    "load_catalog",
    "resolve_alias",
]
