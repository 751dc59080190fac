"""
Config - Black Box Interface

Purpose: Application configuration
Interface: ConfigProvider protocol, EnvConfigProvider, StaticConfigProvider
Hidden: Environment parsing and defaults
"""

from .provider import (
    APIConfig,
    AuthConfig,
    ConfigProvider,
    EnvConfigProvider,
    ExecutionConfig,
    RateLimitConfig,
    StaticConfigProvider,
)

__all__ = [
    "APIConfig",
    "AuthConfig",
    "ConfigProvider",
    "EnvConfigProvider",
    "ExecutionConfig",
    "RateLimitConfig",
    "StaticConfigProvider",
]
