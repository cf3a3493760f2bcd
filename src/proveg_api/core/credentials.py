"""
Credential management for the ProVeg API library.

Credentials are read from environment variables following the
{CREDENTIAL_NAME}_PASSWORD naming convention. A local .env file is loaded
once so that development setups work without exporting variables.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from ..exceptions import CredentialError

logger = logging.getLogger(__name__)

CIVICRM_CREDENTIAL_KEYS = ("url", "api_key", "site_key")


class CredentialManager:
    """
    Manages credentials for host connections.

    Credentials are cached after the first successful read; call
    ``clear_cache`` after rotating keys.
    """

    _instance: Optional["CredentialManager"] = None
    _credentials_cache: Dict[str, Any] = {}
    _env_loaded: bool = False

    def __new__(cls) -> "CredentialManager":
        """Implement singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Initialize the credential manager."""
        if not self._env_loaded:
            load_dotenv()
            self._env_loaded = True
            logger.debug("Environment variables loaded")

    def get_credential(
        self, name: str, required: bool = True, is_json: bool = False
    ) -> Optional[Any]:
        """
        Get a credential by name using the {NAME}_PASSWORD pattern.

        Args:
            name: The credential name (e.g., 'CIVICRM_CREDENTIALS')
            required: Whether the credential is required (raises error if missing)
            is_json: Whether to parse the credential as JSON

        Returns:
            The credential value (string or parsed JSON)

        Raises:
            CredentialError: If a required credential is missing or invalid

        Examples:
            >>> manager = CredentialManager()
            >>> creds = manager.get_credential('CIVICRM_CREDENTIALS', is_json=True)
        """
        if name in self._credentials_cache:
            logger.debug(f"Retrieved credential from cache: {name}")
            return self._credentials_cache[name]

        env_var_name = f"{name}_PASSWORD"
        credential = os.getenv(env_var_name)

        if credential is None:
            if required:
                raise CredentialError(
                    f"Required credential not found: {env_var_name}\n"
                    f"Please set the environment variable {env_var_name} "
                    f"or add it to your .env file."
                )
            logger.debug(f"Optional credential not found: {name}")
            return None

        if is_json:
            try:
                credential = json.loads(credential)
                logger.debug(f"Parsed JSON credential: {name}")
            except json.JSONDecodeError as e:
                raise CredentialError(
                    f"Failed to parse JSON credential {env_var_name}: {str(e)}\n"
                    f"Ensure the credential is valid JSON."
                ) from e

        self._credentials_cache[name] = credential
        logger.debug(f"Loaded and cached credential: {name}")

        return credential

    def get_civicrm_credentials(self) -> Dict[str, Any]:
        """
        Get the CiviCRM REST credentials.

        Returns:
            Dict with 'url', 'api_key' and 'site_key' keys

        Raises:
            CredentialError: If the credential is missing, invalid JSON,
                or missing required keys
        """
        creds = self.get_credential("CIVICRM_CREDENTIALS", is_json=True)
        if not isinstance(creds, dict):
            raise CredentialError(
                "CIVICRM_CREDENTIALS_PASSWORD must be a valid JSON object"
            )
        missing = [k for k in CIVICRM_CREDENTIAL_KEYS if k not in creds]
        if missing:
            raise CredentialError(
                f"CIVICRM_CREDENTIALS_PASSWORD missing required keys: {', '.join(missing)}"
            )
        return creds

    def clear_cache(self) -> None:
        """Clear the credentials cache. Useful for testing or credential rotation."""
        self._credentials_cache.clear()
        logger.debug("Credentials cache cleared")

    def has_credential(self, name: str) -> bool:
        """
        Check if a credential is set without raising an error.

        Args:
            name: The credential name to check

        Returns:
            True if the credential exists, False otherwise
        """
        try:
            return self.get_credential(name, required=False) is not None
        except CredentialError:
            return False


_credential_manager = CredentialManager()


def get_credential(name: str, required: bool = True, is_json: bool = False) -> Optional[Any]:
    """
    Convenience function to get a credential using the global manager.

    Examples:
        >>> from proveg_api.core.credentials import get_credential
        >>> creds = get_credential('CIVICRM_CREDENTIALS', is_json=True)
    """
    return _credential_manager.get_credential(name, required, is_json)
