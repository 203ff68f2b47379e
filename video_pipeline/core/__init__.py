"""
Core Module
===========

Configuration, exceptions, logging and security helpers.
"""

from .config import (
    Config,
    ProvidersConfig,
    WorkerConfig,
    QualityConfig,
    AssemblySettings,
    StorageConfig,
    LoggingConfig,
    get_config,
    set_config,
    reset_config,
)
from .exceptions import (
    VideoPipelineError,
    ConfigurationError,
    ProviderError,
    RateLimitError,
    ValidationError,
    SecurityError,
    TimeoutError,
    ResourceNotFoundError,
    InvalidTransitionError,
    AssemblyError,
    StorageError,
)
from .logging_setup import setup_logging
from .security import PathValidator, sanitize_filename, sanitize_prompt, redact_api_key

__all__ = [
    # Configuration
    "Config",
    "ProvidersConfig",
    "WorkerConfig",
    "QualityConfig",
    "AssemblySettings",
    "StorageConfig",
    "LoggingConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Exceptions
    "VideoPipelineError",
    "ConfigurationError",
    "ProviderError",
    "RateLimitError",
    "ValidationError",
    "SecurityError",
    "TimeoutError",
    "ResourceNotFoundError",
    "InvalidTransitionError",
    "AssemblyError",
    "StorageError",
    # Logging
    "setup_logging",
    # Security
    "PathValidator",
    "sanitize_filename",
    "sanitize_prompt",
    "redact_api_key",
]
