"""ROM Wrangler: turn loose ROM and disc-image folders into a device-ready library."""

from .version import load_version

__version__ = load_version()

__all__ = ["__version__", "load_version"]
