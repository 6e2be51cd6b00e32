from .config_loader import (
    get_config_path,
    load_unified_config,
    reload_configs,
    get_search_config,
    get_sandbox_config,
    get_router_config,
    get_config_value,
)

__all__ = [
    "get_config_path",
    "load_unified_config",
    "reload_configs",
    "get_search_config",
    "get_sandbox_config",
    "get_router_config",
    "get_config_value",
]
