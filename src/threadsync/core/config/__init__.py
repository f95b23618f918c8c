"""
Configuration models and loading.

Pydantic models for threadsync configuration with multi-layer merging:
defaults < user < project < env vars.
"""

from .loader import (
    clear_cache,
    get_project_config_path,
    get_user_config_path,
    get_user_env_path,
    get_xdg_config_home,
    load_config,
)
from .models import IdentityConfig, SyncConfig

__all__ = [
    # Models
    "IdentityConfig",
    "SyncConfig",
    # Loader functions
    "clear_cache",
    "get_project_config_path",
    "get_user_config_path",
    "get_user_env_path",
    "get_xdg_config_home",
    "load_config",
]
