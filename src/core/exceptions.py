# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Error taxonomy for the grade pipeline and aggregation engine.

Three failure families are distinguished:

- TransientStoreError: a storage dependency (database, cache) is
  temporarily unavailable. Event handlers log and abandon; the next
  event or reconciliation sweep repairs derived state.
- DataIntegrityError: an entity references a parent that does not exist.
  Aggregations degrade to empty results instead of failing.
- ConfigurationError: weights, granularities or scopes are invalid.
  Raised at settings load or when parsing user supplied identifiers.

Example:
    >>> from src.core.exceptions import TransientStoreError
    >>> try:
    ...     await store.list_grades(...)
    ... except TransientStoreError as e:
    ...     logger.warning("Store unavailable: %s", e)
"""

from typing import Any


class PipelineError(Exception):
    """Base exception for grade pipeline errors.

    Attributes:
        message: Human-readable error message.
        details: Additional structured context about the failure.
        original_error: Underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class TransientStoreError(PipelineError):
    """Raised when a backing store is temporarily unavailable."""

    pass


class DataIntegrityError(PipelineError):
    """Raised when an entity references a missing parent entity."""

    pass


class ConfigurationError(PipelineError):
    """Raised when weights, granularities or scopes are invalid."""

    pass
