"""Custom exceptions for the dataknobs_traverse package.

This module defines exception types for the traversal engine and the
migration layer, built on the common exception framework from
dataknobs_common. All of them derive from :class:`TraverseError`, and each
category also derives from the matching dataknobs_common category, so callers
can catch either.

Example:
    ```python
    from dataknobs_traverse import create_traverser
    from dataknobs_traverse.exceptions import HandlerError, TraverseError

    try:
        await create_traverser(collection).traverse(handle_batch)
    except HandlerError as e:
        logger.error(f"Batch {e.batch_index} failed: {e.__cause__}")
    except TraverseError as e:
        logger.error(f"Traversal failed: {e} ({e.context})")
    ```
"""

from __future__ import annotations

from dataknobs_common import (
    ConfigurationError as BaseConfigurationError,
    DataknobsError,
    OperationError as BaseOperationError,
    ValidationError as BaseValidationError,
)


class TraverseError(DataknobsError):
    """Base exception for all dataknobs_traverse errors."""

    pass


class ValidationError(TraverseError, BaseValidationError):
    """Raised when caller-supplied input fails validation."""

    pass


class OperationError(TraverseError, BaseOperationError):
    """Raised when a traversal or migration operation fails."""

    pass


class ConfigurationError(TraverseError, BaseConfigurationError):
    """Raised when a traversal configuration is invalid."""

    def __init__(self, parameter: str, message: str):
        self.parameter = parameter
        super().__init__(
            f"Configuration error for '{parameter}': {message}", context={"parameter": parameter}
        )


class FetchError(OperationError):
    """Raised when the traversable fails to produce a page."""

    def __init__(self, message: str, batch_index: int | None = None):
        self.batch_index = batch_index
        super().__init__(
            f"Failed to fetch batch {batch_index}: {message}",
            context={"batch_index": batch_index},
        )


class HandlerError(OperationError):
    """Raised when a dispatched batch handler fails.

    The original exception is available as ``__cause__`` and as ``cause``.
    """

    def __init__(self, batch_index: int, cause: BaseException):
        self.batch_index = batch_index
        self.cause = cause
        super().__init__(
            f"Handler for batch {batch_index} failed: {type(cause).__name__}: {cause}",
            context={"batch_index": batch_index, "error_type": type(cause).__name__},
        )


class CommitError(OperationError):
    """Raised when a write batch fails to commit."""

    def __init__(self, message: str, operation_count: int | None = None):
        self.operation_count = operation_count
        super().__init__(
            f"Write batch commit failed: {message}",
            context={"operation_count": operation_count},
        )


class UpdateArgumentError(ValidationError):
    """Raised when update arguments match none of the accepted call shapes."""

    pass


__all__ = [
    "TraverseError",
    "ValidationError",
    "OperationError",
    "ConfigurationError",
    "FetchError",
    "HandlerError",
    "CommitError",
    "UpdateArgumentError",
]
