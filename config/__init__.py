"""Configuration package — settings, logging, and exceptions."""

from config.exceptions import (
    BookStudioError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderResponseParseError,
    ImageGenerationError,
    ContractViolationError,
    InvalidConfigError,
    UnknownModelError,
    PersistenceError,
    WorkflowError,
    StepFailedError,
    RunCancelledError,
)
from config.logging_config import setup_logging
from config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "BookStudioError",
    "ProviderError",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    "ProviderResponseParseError",
    "ImageGenerationError",
    "ContractViolationError",
    "InvalidConfigError",
    "UnknownModelError",
    "PersistenceError",
    "WorkflowError",
    "StepFailedError",
    "RunCancelledError",
]
