"""Core modules for InfraLayer - centralized definitions and utilities."""

from infralayer.core.errors import (
    ConfigurationError,
    CycleError,
    ExitCode,
    InfraLayerError,
    NotFoundError,
    ProviderError,
    ReplaceRequired,
    StateCommitError,
    StateError,
    UnresolvedReference,
    UpdateUnsupported,
    ValidationError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "InfraLayerError",
    "ConfigurationError",
    "StateError",
    "ValidationError",
    "UnresolvedReference",
    "CycleError",
    "ProviderError",
    "NotFoundError",
    "ReplaceRequired",
    "UpdateUnsupported",
    "StateCommitError",
    "main_with_error_handling",
    "format_error_message",
]
