"""Custom exceptions for core logic."""

from __future__ import annotations

from typing import Any


class DocfillError(Exception):
    """Base class for errors raised by the core workflow."""

    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(DocfillError):
    """Raised when caller input is missing or invalid."""

    error_code = "INVALID_ARGUMENT"


class NotFoundError(DocfillError):
    """Raised when a document or placeholder id is unknown."""

    error_code = "NOT_FOUND"


class InvalidContainerError(DocfillError):
    """Raised when an upload is not a readable Word document package."""

    error_code = "INVALID_CONTAINER"


class InvalidStateError(DocfillError):
    """Raised when an operation does not fit the current session state."""

    error_code = "INVALID_STATE"


class UpstreamServiceError(DocfillError):
    """Raised when the text-completion service fails or is not configured."""

    error_code = "UPSTREAM_ERROR"


class MissingValuesError(ValidationError):
    """Raised when finalize receives an incomplete value set."""

    def __init__(self, message: str, *, missing_labels: list[str], missing_ids: list[str]) -> None:
        super().__init__(
            message,
            detail={"missing_labels": missing_labels, "missing_ids": missing_ids},
        )
        self.missing_labels = missing_labels
        self.missing_ids = missing_ids
