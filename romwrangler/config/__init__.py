from .io import default_config_path, load_config, parse_config, save_config
from .models import DEFAULT_REGION_PRIORITY, EngineConfig

__all__ = [
    "DEFAULT_REGION_PRIORITY",
    "EngineConfig",
    "default_config_path",
    "load_config",
    "parse_config",
    "save_config",
]
