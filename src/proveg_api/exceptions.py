"""
Custom exceptions for the ProVeg API library.

This module defines the exception hierarchy used throughout the library.
Every exception carries an ``error_code`` and a dict of ``extra_params`` so
that an operation boundary can turn it into a structured error envelope
without knowing which layer raised it.
"""

from typing import Any, Dict, List, Optional, Union

ErrorCode = Optional[Union[str, int]]

INVALID_FORMAT = "invalid_format"
MANDATORY_MISSING = "mandatory_missing"


class ProvegAPIError(Exception):
    """
    Base exception for all ProVeg API errors.

    Args:
        message: Human readable error message
        error_code: Machine readable error kind (``invalid_format``,
            ``mandatory_missing``, a host error code, or ``0`` when the
            condition is unclassified)
        extra_params: Additional structured details returned to the caller
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = None,
        extra_params: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self._extra_params = dict(extra_params or {})

    @property
    def extra_params(self) -> Dict[str, Any]:
        """
        Extra parameters of the error, always including ``error_code``.

        Returns:
            A fresh dict that callers may extend
        """
        params = dict(self._extra_params)
        params["error_code"] = self.error_code
        return params


class InvalidFormatError(ProvegAPIError):
    """Raised for malformed or inconsistent input and backend validation failures."""

    def __init__(
        self, message: str, extra_params: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, INVALID_FORMAT, extra_params)


class MandatoryMissingError(ProvegAPIError):
    """Raised when a (conditionally) required parameter is absent."""

    def __init__(
        self,
        fields: List[str],
        entity: Optional[str] = None,
        action: Optional[str] = None,
    ) -> None:
        extra: Dict[str, Any] = {"fields": list(fields)}
        if entity:
            extra["entity"] = entity
        if action:
            extra["action"] = action
        super().__init__(
            f"Mandatory key(s) missing from params array: {', '.join(fields)}",
            MANDATORY_MISSING,
            extra,
        )
        self.fields = list(fields)


class APIError(ProvegAPIError):
    """Raised when the CiviCRM host answers a call with ``is_error``."""

    pass


class CredentialError(ProvegAPIError):
    """Raised when credentials are missing or invalid."""

    pass


class ConnectionError(ProvegAPIError):
    """Raised when a connection cannot be established or a request fails."""

    pass


class AuthenticationError(ProvegAPIError):
    """Raised when authentication fails due to invalid credentials."""

    pass


class RateLimitError(ProvegAPIError):
    """Raised when the host rate limits the API user."""

    def __init__(self, message: str, retry_after: Optional[int] = None) -> None:
        """
        Initialize RateLimitError.

        Args:
            message: Error message
            retry_after: Seconds to wait before retrying (if provided by the host)
        """
        super().__init__(message)
        self.retry_after = retry_after


class ConfigurationError(ProvegAPIError):
    """Raised when configuration is invalid or missing."""

    pass
