from .setting import (
    DocSQLSettings,
    SearchSettings,
    SandboxSettings,
    RouterSettings,
    get_settings,
)

__all__ = [
    "DocSQLSettings",
    "SearchSettings",
    "SandboxSettings",
    "RouterSettings",
    "get_settings",
]
