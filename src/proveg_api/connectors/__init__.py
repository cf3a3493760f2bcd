"""Connectors for host platforms."""

from .civicrm import CiviCRMConnector

__all__ = [
    "CiviCRMConnector",
]
