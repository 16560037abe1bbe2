"""Configuration management for provider-sync."""

from .models import ProvidersConfig, RetryConfig, StoreConfig, SyncConfig
from .parser import Config, ConfigValidationError

__all__ = [
    "ProvidersConfig",
    "RetryConfig",
    "StoreConfig",
    "SyncConfig",
    "Config",
    "ConfigValidationError",
]
