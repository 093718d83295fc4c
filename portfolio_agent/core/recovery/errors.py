"""
Error Classification

Defines error types for the recovery system.
Errors are classified as recoverable (can retry) or unrecoverable (needs a
configuration change or human attention).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of errors for recovery decisions."""

    NETWORK = "network"                # Network/connectivity issues
    RATE_LIMIT = "rate_limit"          # API rate limits
    TIMEOUT = "timeout"                # Operation timed out
    PROVIDER = "provider"              # Completion provider error
    AUTHENTICATION = "authentication"  # Auth/permission error
    CONFIGURATION = "configuration"    # Unknown provider, missing key
    TRANSPORT = "transport"            # Session transport closed
    EXHAUSTED = "exhausted"            # Retry budget spent
    UNKNOWN = "unknown"                # Unclassified error


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = True
    retry_after_seconds: Optional[float] = None
    suggested_action: Optional[str] = None
    provider: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class RecoverableError(Exception):
    """
    Base class for errors that can be retried.

    These errors are typically transient:
    - Network issues
    - Rate limits
    - Timeouts
    - Temporary provider outages
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        retry_after: Optional[float] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.retry_after = retry_after
        self.context = context or ErrorContext(
            category=category,
            recoverable=True,
            retry_after_seconds=retry_after,
        )


class UnrecoverableError(Exception):
    """
    Base class for errors that must not be retried.

    - Unsupported provider configuration
    - Exhausted retry budgets
    - Sends on a closed session channel
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext(category=category, recoverable=False)


class TransientProviderError(RecoverableError):
    """A completion provider call failed in a way that is worth retrying."""

    def __init__(
        self,
        message: str = "Transient provider error",
        provider: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PROVIDER,
        retry_after: Optional[float] = None,
    ):
        super().__init__(
            message,
            category=category,
            retry_after=retry_after,
            context=ErrorContext(
                category=category,
                recoverable=True,
                retry_after_seconds=retry_after,
                provider=provider,
                suggested_action="Retry with exponential backoff",
            ),
        )
        self.provider = provider


class ProviderCallFailed(TransientProviderError):
    """Network, HTTP or SDK failure while calling a provider."""


class ProviderRateLimitError(ProviderCallFailed):
    """Provider answered 429."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(
            message,
            provider=provider,
            category=ErrorCategory.RATE_LIMIT,
            retry_after=retry_after,
        )


class ProviderAuthError(ProviderCallFailed):
    """
    Provider rejected the credential.

    Still a ProviderCallFailed for callers that catch provider failures,
    but marked unrecoverable so the backoff executor gives up immediately.
    """

    def __init__(self, message: str = "Authentication failed", provider: Optional[str] = None):
        super().__init__(message, provider=provider, category=ErrorCategory.AUTHENTICATION)
        self.context = ErrorContext(
            category=ErrorCategory.AUTHENTICATION,
            recoverable=False,
            provider=provider,
            suggested_action="Check the provider API key",
        )


class UnsupportedProvider(UnrecoverableError):
    """The configured provider name does not map to a known backend."""

    def __init__(self, provider: str, available: Optional[list] = None):
        available_text = ", ".join(available or [])
        message = f"Unsupported AI provider: {provider}"
        if available_text:
            message = f"{message}. Available providers: {available_text}"
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            context=ErrorContext(
                category=ErrorCategory.CONFIGURATION,
                recoverable=False,
                provider=provider,
                suggested_action="Set LLM_PROVIDER to a supported provider",
            ),
        )
        self.provider = provider


class RetryExhausted(UnrecoverableError):
    """All attempts of a retried operation failed."""

    def __init__(self, message: str, last_error: Optional[BaseException], attempts: int):
        detail = str(last_error) if last_error is not None else "no error recorded"
        super().__init__(
            f"{message}: {detail}",
            category=ErrorCategory.EXHAUSTED,
            context=ErrorContext(
                category=ErrorCategory.EXHAUSTED,
                recoverable=False,
                details={"attempts": attempts, "last_error": detail},
            ),
        )
        self.last_error = last_error
        self.attempts = attempts


class ChannelClosed(UnrecoverableError):
    """A message was sent on a session channel that is not open."""

    def __init__(self, message: str = "Session channel is not open"):
        super().__init__(message, category=ErrorCategory.TRANSPORT)


def classify_error(error: BaseException) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Already-classified errors keep their own context; anything else is
    classified from its message.
    """
    if isinstance(error, (RecoverableError, UnrecoverableError)):
        return error.context

    message = str(error).lower()

    rate_limit_patterns = [
        "rate limit",
        "too many requests",
        "429",
        "throttl",
        "quota exceeded",
    ]
    if any(p in message for p in rate_limit_patterns):
        return ErrorContext(
            category=ErrorCategory.RATE_LIMIT,
            recoverable=True,
            retry_after_seconds=60.0,
            suggested_action="Wait before retrying",
        )

    auth_patterns = ["unauthorized", "forbidden", "invalid api key", "401", "403"]
    if any(p in message for p in auth_patterns):
        return ErrorContext(
            category=ErrorCategory.AUTHENTICATION,
            recoverable=False,
            suggested_action="Check credentials",
        )

    network_patterns = [
        "connection",
        "network",
        "unreachable",
        "refused",
        "dns",
        "socket",
        "ssl",
    ]
    if any(p in message for p in network_patterns):
        return ErrorContext(
            category=ErrorCategory.NETWORK,
            recoverable=True,
            retry_after_seconds=5.0,
            suggested_action="Check network connectivity",
        )

    timeout_patterns = ["timeout", "timed out", "deadline"]
    if any(p in message for p in timeout_patterns):
        return ErrorContext(
            category=ErrorCategory.TIMEOUT,
            recoverable=True,
            retry_after_seconds=10.0,
            suggested_action="Retry with longer timeout",
        )

    # Default to unknown but recoverable (safer to retry)
    return ErrorContext(
        category=ErrorCategory.UNKNOWN,
        recoverable=True,
        suggested_action="Retry operation",
    )
