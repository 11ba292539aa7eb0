"""Error taxonomy and the shared error-reporting channel."""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from .logging import get_logger


class ErrorCategory(str, Enum):
    FILESYSTEM = "filesystem"
    GENERATION = "generation"
    VALIDATION = "validation"
    NETWORK = "network"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class ModSpecError(Exception):
    """Base class for all modspec failures."""

    category = ErrorCategory.UNKNOWN


class FileSystemError(ModSpecError):
    """A document could not be read, written, or removed."""

    category = ErrorCategory.FILESYSTEM

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class DocumentNotFoundError(FileSystemError):
    """The requested document does not exist in the store."""


class GenerationError(ModSpecError):
    """The content generator failed for a specific module."""

    category = ErrorCategory.GENERATION

    def __init__(self, message: str, *, module_type: str | None = None) -> None:
        super().__init__(message)
        self.module_type = module_type


class ValidationError(ModSpecError):
    """Malformed metadata, legacy structure, or an illegal request."""

    category = ErrorCategory.VALIDATION


class WorkflowTransitionError(ValidationError):
    """A workflow state change is not permitted from the current state."""


class ConfigurationError(ModSpecError):
    """Workspace or configuration is missing or invalid."""

    category = ErrorCategory.CONFIGURATION


_RETRYABLE_MARKERS = (
    "timeout",
    "timed out",
    "network",
    "econnrefused",
    "econnreset",
    "connection refused",
    "connection reset",
    "temporar",
    "unavailable",
    "busy",
    "rate limit",
    "too many requests",
)

_CATEGORY_MARKERS: Sequence[tuple[ErrorCategory, tuple[str, ...]]] = (
    (ErrorCategory.NETWORK, ("network", "econnrefused", "connection", "timed out", "timeout")),
    (
        ErrorCategory.FILESYSTEM,
        ("enoent", "eacces", "no such file", "permission denied", "not found", "directory"),
    ),
    (ErrorCategory.GENERATION, ("generat", "model", "llm", "prompt")),
    (ErrorCategory.VALIDATION, ("invalid", "malformed", "validation", "schema")),
    (ErrorCategory.CONFIGURATION, ("config", "workspace", "setting")),
)

_USER_MESSAGES = {
    ErrorCategory.FILESYSTEM: "A design document could not be accessed.",
    ErrorCategory.GENERATION: "Module content generation failed.",
    ErrorCategory.VALIDATION: "The design data is invalid.",
    ErrorCategory.NETWORK: "The content generator could not be reached.",
    ErrorCategory.CONFIGURATION: "The workspace configuration is invalid.",
    ErrorCategory.UNKNOWN: "An unexpected error occurred.",
}


@dataclass
class ErrorContext:
    """Classified view of a surfaced error."""

    category: ErrorCategory
    operation: str
    retryable: bool
    user_message: str
    technical_details: str
    feature: Optional[str] = None
    module_type: Optional[str] = None


def classify_error(exc: BaseException) -> ErrorCategory:
    """Return the category of an exception, by type first and message second."""
    if isinstance(exc, ModSpecError) and exc.category is not ErrorCategory.UNKNOWN:
        return exc.category
    if isinstance(exc, (FileNotFoundError, PermissionError, IsADirectoryError)):
        return ErrorCategory.FILESYSTEM
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return ErrorCategory.NETWORK
    message = str(exc).lower()
    for category, markers in _CATEGORY_MARKERS:
        if any(marker in message for marker in markers):
            return category
    return ErrorCategory.UNKNOWN


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _RETRYABLE_MARKERS)


class ErrorHandler:
    """Classifies errors, logs a short message, and routes details to diagnostics."""

    def __init__(
        self,
        logger: logging.Logger | None = None,
        diagnostics: logging.Logger | None = None,
    ) -> None:
        self.logger = logger or get_logger("errors")
        self.diagnostics = diagnostics or get_logger("diagnostics")

    def handle(
        self,
        exc: BaseException,
        *,
        operation: str,
        feature: str | None = None,
        module_type: str | None = None,
    ) -> ErrorContext:
        category = classify_error(exc)
        retryable = is_retryable(exc)
        if module_type is None and isinstance(exc, GenerationError):
            module_type = exc.module_type
        user_message = self._user_message(category, feature, module_type, retryable)
        details = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        context = ErrorContext(
            category=category,
            operation=operation,
            retryable=retryable,
            user_message=user_message,
            technical_details=details.strip(),
            feature=feature,
            module_type=str(module_type) if module_type is not None else None,
        )
        self.logger.error("%s (%s)", user_message, operation)
        self.diagnostics.debug(
            "operation=%s category=%s feature=%s module=%s\n%s",
            operation,
            category.value,
            feature,
            context.module_type,
            context.technical_details,
        )
        return context

    def handle_batch(
        self, errors: Iterable[tuple[str, BaseException]], *, operation: str, feature: str | None = None
    ) -> List[ErrorContext]:
        contexts = [
            self.handle(exc, operation=operation, feature=feature, module_type=module_type)
            for module_type, exc in errors
        ]
        if contexts:
            retryable = sum(1 for context in contexts if context.retryable)
            self.logger.warning(
                "%s: %d module(s) failed, %d retryable", operation, len(contexts), retryable
            )
        return contexts

    @staticmethod
    def _user_message(
        category: ErrorCategory,
        feature: str | None,
        module_type: str | None,
        retryable: bool,
    ) -> str:
        message = _USER_MESSAGES[category]
        target = ""
        if module_type:
            target = f" [{module_type}]"
        if feature:
            target = f" [{feature}]{target}"
        suffix = " Retrying may help." if retryable else ""
        return f"{message}{target}{suffix}"


__all__ = [
    "ConfigurationError",
    "DocumentNotFoundError",
    "ErrorCategory",
    "ErrorContext",
    "ErrorHandler",
    "FileSystemError",
    "GenerationError",
    "ModSpecError",
    "ValidationError",
    "WorkflowTransitionError",
    "classify_error",
    "is_retryable",
]
