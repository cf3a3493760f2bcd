"""
ProVeg API - donation and newsletter submissions for CiviCRM.

This library turns flat submissions from websites and fundraising tools into
CiviCRM contacts, contributions, SEPA mandates, memberships and newsletter
subscriptions, and records failed submissions for manual follow-up.
"""

from .api import ProvegAPI
from .config import ConfigManager, ProvegSettings
from .connectors.civicrm import CiviCRMConnector
from .core.credentials import CredentialManager, get_credential
from .donation import DonationSubmission
from .exceptions import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    ConnectionError,
    CredentialError,
    InvalidFormatError,
    MandatoryMissingError,
    ProvegAPIError,
    RateLimitError,
)
from .newsletter import NewsletterSubscription

__version__ = "0.1.0"

__all__ = [
    # Operations
    "ProvegAPI",
    "DonationSubmission",
    "NewsletterSubscription",
    # Host connector
    "CiviCRMConnector",
    # Configuration
    "ConfigManager",
    "ProvegSettings",
    # Credentials
    "CredentialManager",
    "get_credential",
    # Exceptions
    "ProvegAPIError",
    "InvalidFormatError",
    "MandatoryMissingError",
    "APIError",
    "CredentialError",
    "ConnectionError",
    "AuthenticationError",
    "RateLimitError",
    "ConfigurationError",
]
