"""
Base class for host connectors.

Operations depend on this interface rather than on the REST transport, so a
connector can be swapped for an in-memory host in tests.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from .credentials import CredentialManager

logger = logging.getLogger(__name__)


class BaseConnection(ABC):
    """
    A session with a CiviCRM host.

    For the REST connector a session is the loaded endpoint URL and key pair;
    there is no server-side login, so ``connect`` only has to resolve
    credentials and ``health_check`` has to make a real API call to prove
    they work.

    Attributes:
        _is_connected: Whether the session credentials are loaded
        _credential_manager: Shared credential manager instance
    """

    def __init__(self) -> None:
        self._is_connected: bool = False
        self._credential_manager = CredentialManager()
        logger.debug(f"Initialized {self.__class__.__name__}")

    @abstractmethod
    def connect(self) -> None:
        """
        Load what the session needs to send API calls.

        Raises:
            ConnectionError: If the session cannot be set up
        """

    @abstractmethod
    def disconnect(self) -> None:
        """Forget the session; the next call sets it up again."""

    @abstractmethod
    def health_check(self) -> bool:
        """
        Check that the host answers API calls with the current session.

        Returns:
            True if a call succeeded, False otherwise
        """

    def is_connected(self) -> bool:
        return self._is_connected

    def __enter__(self) -> "BaseConnection":
        """
        Open the session for the duration of a ``with`` block.

        Examples:
            >>> with CiviCRMConnector() as civicrm:
            ...     civicrm.get("Campaign", external_identifier="SPRING")
        """
        self.connect()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.disconnect()

    def __repr__(self) -> str:
        status = "connected" if self._is_connected else "disconnected"
        return f"<{self.__class__.__name__} status={status}>"
