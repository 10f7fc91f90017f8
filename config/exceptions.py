"""Custom exception hierarchy for the book generation pipeline."""

from typing import Optional


class BookStudioError(Exception):
    """Base exception for all book studio errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# ---- Provider Errors ----

class ProviderError(BookStudioError):
    """A text or image generation call failed or returned unusable output."""


class ProviderRateLimitError(ProviderError):
    """Provider rate limit exceeded."""

    def __init__(self, message: str = "API rate limit exceeded", retry_after: Optional[float] = None):
        details = {}
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(message, details)
        self.retry_after = retry_after


class ProviderTimeoutError(ProviderError):
    """Provider request timed out."""


class ProviderResponseParseError(ProviderError):
    """Failed to parse a provider response."""

    def __init__(self, message: str = "Failed to parse provider response", raw_response: str = ""):
        details = {"raw_response": raw_response[:200]} if raw_response else {}
        super().__init__(message, details)
        self.raw_response = raw_response


class ImageGenerationError(ProviderError):
    """Cover image generation failed."""


# ---- Contract Violations ----

class ContractViolationError(BookStudioError):
    """Caller supplied invalid input. Never retried."""


class InvalidConfigError(ContractViolationError):
    """Generation config or outline is malformed."""


class UnknownModelError(ContractViolationError):
    """No provider adapter is registered for a model id."""

    def __init__(self, model_id: str):
        super().__init__(f"No provider registered for model: {model_id}", {"model_id": model_id})
        self.model_id = model_id


# ---- Persistence Errors ----

class PersistenceError(BookStudioError):
    """Database operation failed."""


# ---- Workflow Errors ----

class WorkflowError(BookStudioError):
    """Base exception for workflow orchestration errors."""


class StepFailedError(WorkflowError):
    """A durable step failed on every attempt."""

    def __init__(self, step_name: str, attempts: int, cause: Exception):
        super().__init__(
            f"Step '{step_name}' failed after {attempts} attempts: {cause}",
            {"step": step_name, "attempts": attempts},
        )
        self.step_name = step_name
        self.attempts = attempts
        self.cause = cause


class RunCancelledError(WorkflowError):
    """Raised inside a run when its cancellation signal is observed."""

    def __init__(self, book_id: int):
        super().__init__(f"Generation for book {book_id} was cancelled", {"book_id": book_id})
        self.book_id = book_id
