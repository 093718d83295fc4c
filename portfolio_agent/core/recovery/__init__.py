"""
Error Recovery Module

Error taxonomy and the backoff executor used around provider calls.
"""

from .errors import (
    ErrorCategory,
    ErrorContext,
    RecoverableError,
    UnrecoverableError,
    TransientProviderError,
    ProviderCallFailed,
    ProviderRateLimitError,
    ProviderAuthError,
    UnsupportedProvider,
    RetryExhausted,
    ChannelClosed,
    classify_error,
)
from .backoff import BackoffExecutor, RetryPolicy, is_retryable, retry_with_backoff

__all__ = [
    # Errors
    "ErrorCategory",
    "ErrorContext",
    "RecoverableError",
    "UnrecoverableError",
    "TransientProviderError",
    "ProviderCallFailed",
    "ProviderRateLimitError",
    "ProviderAuthError",
    "UnsupportedProvider",
    "RetryExhausted",
    "ChannelClosed",
    "classify_error",
    # Executor
    "BackoffExecutor",
    "RetryPolicy",
    "is_retryable",
    "retry_with_backoff",
]
