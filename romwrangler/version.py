"""Version utilities for ROM Wrangler."""

from __future__ import annotations

from importlib import metadata


def load_version() -> str:
    try:
        version = str(metadata.version("romwrangler") or "").strip()
        return version or "1.0.0"
    except metadata.PackageNotFoundError:
        return "1.0.0"
