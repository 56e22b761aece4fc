"""
Unified error handling for InfraLayer.

This module provides the error taxonomy shared by the graph builder, the
planner and the executor, plus standardized CLI exit codes.

Exit Codes:
- 0: Success
- 1: Apply finished with failed or skipped entries
- 10: Configuration error (settings, state file)
- 11: Provider error (external service failure)
- 12: Validation error (declaration, references, cycles)
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    PARTIAL_FAILURE = 1
    CONFIG_ERROR = 10
    PROVIDER_ERROR = 11
    VALIDATION_ERROR = 12
    UNKNOWN_ERROR = 127


class InfraLayerError(Exception):
    """Base exception for InfraLayer errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(InfraLayerError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR


class StateError(ConfigurationError):
    """Raised when the state document cannot be read or is malformed."""


class ValidationError(InfraLayerError):
    """Raised for malformed or contradictory declarations."""

    exit_code = ExitCode.VALIDATION_ERROR


class UnresolvedReference(ValidationError):
    """Raised when an attribute references a resource missing from the graph."""

    def __init__(self, source: str, target: str, path: str = ""):
        location = f"{source}.{path}" if path else source
        super().__init__(
            f"{location} references undeclared resource {target}",
            {"source": source, "target": target, "path": path},
        )
        self.source = source
        self.target = target
        self.path = path


class CycleError(ValidationError):
    """Raised when references form a dependency cycle."""

    def __init__(self, cycle: list[Any]):
        path = " -> ".join(str(node) for node in cycle)
        super().__init__(f"Dependency cycle detected: {path}", {"cycle": path})
        self.cycle = cycle


class ProviderError(InfraLayerError):
    """Raised when an external provider/service fails."""

    exit_code = ExitCode.PROVIDER_ERROR


class NotFoundError(ProviderError):
    """Raised by a provider when the object no longer exists."""


class UpdateUnsupported(ProviderError):
    """Raised by a provider when an in-place update is impossible."""


class ReplaceRequired(UpdateUnsupported):
    """Raised when an object cannot be updated in place while others depend on it.

    Its dependents have to be deleted first and recreated afterwards, so the
    replacement must be planned rather than done inside the running entry.
    """


class StateCommitError(ProviderError):
    """Raised when a state commit keeps failing after a provider operation.

    ``details`` carries the provider id of the object that now exists
    remotely without a state record.
    """


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes with
    consistent error reporting.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog

    Exit codes:
        - InfraLayerError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except InfraLayerError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=e.exit_code,
                        **e.details,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130  # Standard exit code for SIGINT
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=ExitCode.UNKNOWN_ERROR,
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: InfraLayerError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
