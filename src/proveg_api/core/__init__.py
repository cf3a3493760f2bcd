"""Core functionality for the ProVeg API library."""

from .base import BaseConnection
from .credentials import CredentialManager, get_credential
from .retry import retry_civicrm_operation, retry_with_backoff
from .transaction import TransactionFrame, TransactionManager

__all__ = [
    "BaseConnection",
    "CredentialManager",
    "get_credential",
    "retry_civicrm_operation",
    "retry_with_backoff",
    "TransactionFrame",
    "TransactionManager",
]
