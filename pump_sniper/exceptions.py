"""
Custom exception classes for the pump.fun sniper.

Provides typed exceptions for better error handling and debugging.
"""
from typing import Optional


class BotException(Exception):
    """Base exception for all bot-related errors."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self):
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class SwapException(BotException):
    """Raised when swap operations fail."""
    pass


class ConfigurationException(BotException):
    """Raised when configuration is invalid."""
    pass


class WalletException(BotException):
    """Raised when wallet operations fail."""
    pass


class NetworkException(BotException):
    """Raised when network/RPC operations fail."""
    pass


class RpcException(NetworkException):
    """
    A failed JSON-RPC round trip.

    Carries the endpoint that produced it so the retry loop can report
    the URL back to the endpoint pool.
    """

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status: Optional[int] = None,
        code: Optional[int] = None,
        retryable: Optional[bool] = None,
        **context
    ):
        if status is not None:
            context.setdefault("status", status)
        if code is not None:
            context.setdefault("code", code)
        super().__init__(message, **context)
        self.endpoint = endpoint
        self.status = status
        self.code = code
        self.retryable = retryable


class RetryExhausted(NetworkException):
    """Raised when a guarded call keeps failing with retryable errors."""

    def __init__(self, description: str, attempts: int, last_error: Exception):
        super().__init__(
            f"{description} failed after {attempts} attempts",
            last_error=last_error
        )
        self.description = description
        self.attempts = attempts
        self.last_error = last_error


class StateException(BotException):
    """Raised when state management operations fail."""
    pass
