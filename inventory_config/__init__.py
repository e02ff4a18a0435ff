"""
inventory_config -- engine settings.

Responsibility:
    Provides ``EngineSettings`` and the ways to build it: from a YAML file
    (``load_settings``), a mapping (``settings_from_dict``) or the
    environment (``settings_from_env``).  Services receive a settings
    object; they never read files or environment variables themselves.
"""

from inventory_config.loader import (
    load_settings,
    settings_from_dict,
    settings_from_env,
)
from inventory_config.settings import EngineSettings

__all__ = [
    "EngineSettings",
    "load_settings",
    "settings_from_dict",
    "settings_from_env",
]
