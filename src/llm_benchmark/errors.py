"""
Exception taxonomy for benchmark execution and analysis.
"""

from typing import Optional


class BenchmarkError(Exception):
    """Base class for all toolkit errors."""
    pass


class CapacityError(BenchmarkError):
    """
    Raised when a provider rejects a request for lack of capacity, credits or quota.

    Carries the requested and available budget when the provider reports them.
    """

    def __init__(
        self,
        message: str,
        requested: Optional[int] = None,
        available: Optional[int] = None
    ):
        super().__init__(message)
        self.requested = requested
        self.available = available


class AuthError(BenchmarkError):
    """Raised when the provider rejects the credentials."""
    pass


class TransportError(BenchmarkError):
    """Raised on network failures and malformed provider responses."""
    pass


class ParseError(BenchmarkError):
    """Raised when structured data cannot be recovered from free-form model text."""
    pass


class DatasetValidationError(BenchmarkError):
    """Raised when a benchmark or dataset file is invalid."""
    pass
