"""
Configuration management for the ProVeg API library.

``ProvegSettings`` is the explicit configuration object every operation is
constructed with. ``ConfigManager`` builds it from defaults, environment
variable overrides (``PROVEG_API_<KEY>``) and explicit overrides, and caches
the result for a configurable time.
"""

import logging
import os
import time
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ValidationError

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "PROVEG_API_"


class ProvegSettings(BaseModel):
    """
    Settings of the ProVeg API operations.

    Attributes:
        logging_enabled: Log raw requests and caught exceptions at DEBUG level
        financial_type_id: Financial type of created contributions
        sepa_creditor_id: SEPA creditor used for mandates
        paypal_instrument_id: Payment instrument of direct-capture contributions
        newsletter_group_id: Group that newsletter subscriptions are added to
        failed_contribution_assignee_id: Contact assigned to failure activities
        default_source: Source used when the request carries none
        start_date_offset_days: Days between submission and mandate/membership start
        xcm_profile: Contact matching profile passed to ``Contact.getorcreate``
    """

    logging_enabled: bool = False
    financial_type_id: int = 1
    sepa_creditor_id: int = 1
    paypal_instrument_id: int = 12
    newsletter_group_id: int = 1000
    failed_contribution_assignee_id: Optional[int] = None
    default_source: str = "ProVeg API"
    start_date_offset_days: int = 0
    xcm_profile: Optional[str] = None

    def get_source(self, params: Mapping[str, Any], key: str) -> str:
        """
        Get the source string for records created from a request.

        Args:
            params: The request parameters
            key: Parameter holding a caller-supplied source

        Returns:
            The supplied source, or ``default_source`` if it is empty
        """
        value = params.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
        return self.default_source


class ConfigManager:
    """
    Builds and caches ``ProvegSettings``.

    Values are applied in order: field defaults, ``PROVEG_API_<KEY>``
    environment variables, explicit ``overrides``.

    Examples:
        >>> config_mgr = ConfigManager(overrides={"newsletter_group_id": 42})
        >>> settings = config_mgr.get_settings()
        >>> settings.newsletter_group_id
        42
        >>> config_mgr.get("paypal_instrument_id")
        12
    """

    def __init__(
        self,
        overrides: Optional[Dict[str, Any]] = None,
        ttl: int = 300,
        auto_refresh: bool = True,
    ) -> None:
        """
        Initialize the ConfigManager.

        Args:
            overrides: Explicit setting values, taking precedence over the environment
            ttl: Time-to-live for cache in seconds (default: 300 = 5 minutes)
            auto_refresh: Whether to auto-refresh when cache expires (default: True)
        """
        self._overrides = dict(overrides or {})
        self._ttl = ttl
        self._auto_refresh = auto_refresh

        self._settings_cache: Optional[ProvegSettings] = None
        self._cache_timestamp: float = 0.0

        logger.debug(f"Initialized ConfigManager (TTL: {ttl}s)")

    def get_settings(self, refresh_if_expired: bool = True) -> ProvegSettings:
        """
        Get the settings.

        Args:
            refresh_if_expired: Whether to auto-refresh if cache expired (default: True)

        Returns:
            The validated settings object

        Raises:
            ConfigurationError: If no settings are available or they are invalid
        """
        current_time = time.time()

        if self._settings_cache is not None and not self._is_cache_expired(current_time):
            logger.debug("Returning cached settings")
            return self._settings_cache

        if self._auto_refresh and refresh_if_expired:
            logger.debug("Cache expired or empty, refreshing settings")
            self.refresh()
            if self._settings_cache is None:
                raise ConfigurationError("Failed to load settings")
            return self._settings_cache

        if self._settings_cache is not None:
            logger.warning("Returning expired cached settings")
            return self._settings_cache

        raise ConfigurationError("No settings available. Call refresh() to load them.")

    def refresh(self) -> None:
        """
        Rebuild the settings from the environment and the overrides.

        Raises:
            ConfigurationError: If a value does not validate
        """
        values: Dict[str, Any] = {}
        for name in ProvegSettings.model_fields:
            env_value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if env_value is not None and env_value != "":
                values[name] = env_value
                logger.debug(f"Applied env override: {ENV_PREFIX}{name.upper()}")
        values.update(self._overrides)

        try:
            settings = ProvegSettings(**values)
        except ValidationError as e:
            logger.error(f"Invalid ProVeg API settings: {e}")
            raise ConfigurationError(f"Invalid ProVeg API settings: {e}") from e

        self._settings_cache = settings
        self._cache_timestamp = time.time()
        logger.info("Settings refreshed successfully")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a single setting.

        Args:
            key: Setting name
            default: Value returned for unknown names or unset values

        Returns:
            The setting value or default
        """
        value = getattr(self.get_settings(), key, None)
        return default if value is None else value

    def clear_cache(self) -> None:
        """Clear the settings cache."""
        self._settings_cache = None
        self._cache_timestamp = 0.0
        logger.debug("Settings cache cleared")

    def _is_cache_expired(self, current_time: float) -> bool:
        age = current_time - self._cache_timestamp
        return age >= self._ttl

    @property
    def cache_age(self) -> float:
        """
        Get the age of the current cache in seconds.

        Returns:
            Cache age in seconds, or 0 if no cache
        """
        if self._cache_timestamp == 0:
            return 0.0
        return time.time() - self._cache_timestamp

    @property
    def is_cache_valid(self) -> bool:
        """True if settings are cached and not expired."""
        if self._settings_cache is None:
            return False
        return not self._is_cache_expired(time.time())
