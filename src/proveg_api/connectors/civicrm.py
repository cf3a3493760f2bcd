"""
CiviCRM connector for the ProVeg API library.

This module provides access to the CiviCRM APIv3 REST endpoint
(``civicrm/ajax/rest``) for the entities a submission touches: contacts,
contributions, recurring contributions, SEPA mandates, memberships, group
memberships, activities, campaigns, option values and custom fields.

Authenticates with the API user's key and the site key, sent with every
request, via direct HTTP through the requests library.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from ..core.base import BaseConnection
from ..core.retry import retry_civicrm_operation
from ..core.transaction import TransactionManager
from ..exceptions import (
    APIError,
    AuthenticationError,
    ConnectionError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

CIVICRM_REST_PATH = "/civicrm/ajax/rest"

# Keys of an APIv3 response that are not error details.
_RESULT_KEYS = ("is_error", "error_message", "error_code")


class CiviCRMConnector(BaseConnection):
    """
    CiviCRM connector for entity API calls.

    Credentials are stored as JSON in CIVICRM_CREDENTIALS_PASSWORD env var:
    {
        "url": "https://crm.example.org",
        "api_key": "...",
        "site_key": "..."
    }

    Every entity created through ``create`` while a transaction frame is open
    is registered in that frame so that it can be rolled back.

    Examples:
        >>> connector = CiviCRMConnector()
        >>> connector.connect()
        >>> contact_id = connector.get_or_create_contact(
        ...     "Individual", {"email": "jane@example.org"}
        ... )
        >>> connector.get_single("Contact", id=contact_id)
    """

    def __init__(self, transactions: Optional[TransactionManager] = None) -> None:
        """
        Initialize the CiviCRM connector.

        Args:
            transactions: Transaction manager to register created entities
                with (default: a new manager that deletes through this connector)
        """
        super().__init__()
        self._base_url: Optional[str] = None
        self._api_key: Optional[str] = None
        self._site_key: Optional[str] = None
        self._transactions = transactions or TransactionManager(self.delete)

    @property
    def transactions(self) -> TransactionManager:
        """The transaction manager created entities are registered with."""
        return self._transactions

    def connect(self) -> None:
        """
        Load the REST credentials.

        Raises:
            ConnectionError: If the credentials are missing or invalid
        """
        try:
            creds = self._credential_manager.get_civicrm_credentials()
            self._base_url = str(creds["url"]).rstrip("/")
            self._api_key = creds["api_key"]
            self._site_key = creds["site_key"]
            self._is_connected = True
            logger.info(f"Successfully connected to CiviCRM at {self._base_url}")
        except Exception as e:
            logger.error(f"Failed to connect to CiviCRM: {str(e)}")
            raise ConnectionError(f"Failed to connect to CiviCRM: {str(e)}") from e

    def disconnect(self) -> None:
        """Forget the CiviCRM credentials."""
        self._base_url = None
        self._api_key = None
        self._site_key = None
        self._is_connected = False
        logger.debug("Disconnected from CiviCRM")

    def health_check(self) -> bool:
        """
        Check if the CiviCRM connection is healthy via ``System.get``.

        Returns:
            True if connected and the API answers without error, False otherwise
        """
        if not self._is_connected:
            return False
        try:
            self.call("System", "get")
            return True
        except Exception:
            return False

    # ── HTTP helpers ──────────────────────────────────────────────────

    def _request(
        self, entity: str, action: str, params: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Send one APIv3 call to the REST endpoint.

        Args:
            entity: API entity (e.g. 'Contribution')
            action: API action (e.g. 'create')
            params: API parameters, sent JSON encoded

        Returns:
            The decoded APIv3 result array

        Raises:
            AuthenticationError: On 401/403 responses
            RateLimitError: On 429 responses
            ConnectionError: If the request fails or returns an error status
        """
        if not self._is_connected:
            self.connect()

        url = f"{self._base_url}{CIVICRM_REST_PATH}"

        try:
            resp = requests.post(
                url,
                data={
                    "entity": entity,
                    "action": action,
                    "api_key": self._api_key,
                    "key": self._site_key,
                    "json": json.dumps(params),
                },
                headers={"X-Requested-With": "XMLHttpRequest"},
                timeout=30,
            )
        except requests.RequestException as e:
            raise ConnectionError(f"CiviCRM API request failed: {e}") from e

        if resp.status_code in (401, 403):
            raise AuthenticationError(
                f"CiviCRM authentication failed ({resp.status_code}): {resp.text}"
            )

        if resp.status_code == 429:
            retry_after = int(resp.headers.get("Retry-After", 30))
            raise RateLimitError(
                f"CiviCRM rate limit exceeded, retry after {retry_after}s",
                retry_after=retry_after,
            )

        if resp.status_code >= 400:
            raise ConnectionError(
                f"CiviCRM API error {resp.status_code}: {resp.text}"
            )

        try:
            return resp.json()
        except ValueError as e:
            raise ConnectionError(
                f"CiviCRM returned a non-JSON response for {entity}.{action}"
            ) from e

    def call(
        self, entity: str, action: str, params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Call an API action and raise on host errors.

        Parameters whose value is None are not sent.

        Args:
            entity: API entity
            action: API action
            params: API parameters

        Returns:
            The APIv3 result array

        Raises:
            APIError: If the host reports ``is_error``
        """
        params = {k: v for k, v in (params or {}).items() if v is not None}
        result = self._request(entity, action, params)
        if result.get("is_error"):
            extra = {k: v for k, v in result.items() if k not in _RESULT_KEYS}
            raise APIError(
                str(result.get("error_message", f"{entity}.{action} failed")),
                error_code=result.get("error_code"),
                extra_params=extra,
            )
        logger.debug(f"CiviCRM {entity}.{action} succeeded")
        return result

    # ── Generic entity helpers ────────────────────────────────────────

    @retry_civicrm_operation
    def get(self, entity: str, **params: Any) -> List[Dict[str, Any]]:
        """
        Get all records of an entity matching the given filters.

        Examples:
            >>> connector.get("Campaign", external_identifier="SPRING")
        """
        params.setdefault("sequential", 1)
        result = self.call(entity, "get", params)
        return list(result.get("values") or [])

    @retry_civicrm_operation
    def get_single(self, entity: str, **params: Any) -> Dict[str, Any]:
        """
        Get exactly one record; the host errors on zero or several matches.

        Examples:
            >>> connector.get_single("Membership", id=12)
        """
        return self.call(entity, "getsingle", params)

    def create(self, entity: str, **params: Any) -> Dict[str, Any]:
        """
        Create (or, when ``id`` is given, update) a record.

        New records are registered in the open transaction frame.

        Returns:
            The APIv3 result array; ``values`` is a list

        Examples:
            >>> connector.create("Contribution", contact_id=1, total_amount=10)
        """
        params.setdefault("sequential", 1)
        result = self.call(entity, "create", params)
        if "id" not in params and result.get("id"):
            self.register_created(entity, result["id"])
        return result

    def delete(self, entity: str, entity_id: int) -> None:
        """Delete a record by id."""
        self.call(entity, "delete", {"id": entity_id, "check_permissions": 0})

    def register_created(self, entity: str, entity_id: Any) -> None:
        """Register an entity created outside ``create`` with the open frame."""
        frame = self._transactions.get_frame()
        if frame is not None:
            frame.register(entity, int(entity_id))

    # ── Contacts ──────────────────────────────────────────────────────

    def get_or_create_contact(
        self,
        contact_type: str,
        contact_data: Dict[str, Any],
        profile: Optional[str] = None,
    ) -> Optional[int]:
        """
        Get the id of the contact matching the data, creating it if needed.

        Matching is done by the host (``Contact.getorcreate``).

        Args:
            contact_type: Contact type, e.g. 'Individual'
            contact_data: Identifying fields
            profile: Optional matching profile name

        Returns:
            The contact id, or None if the host returned none
        """
        params: Dict[str, Any] = {"check_permissions": 0, "contact_type": contact_type}
        params.update({k: v for k, v in contact_data.items() if v is not None})
        if profile:
            params["xcm_profile"] = profile
        result = self.call("Contact", "getorcreate", params)
        contact_id = result.get("id")
        return int(contact_id) if contact_id else None

    # ── Option values ─────────────────────────────────────────────────

    @retry_civicrm_operation
    def get_option_values(self, option_group: str) -> Dict[str, str]:
        """
        Get the options of an option group.

        Returns:
            Mapping of option value to option name

        Examples:
            >>> connector.get_option_values("gender")
            {'1': 'Female', '2': 'Male', '3': 'Other'}
        """
        result = self.call(
            "OptionValue",
            "get",
            {
                "check_permissions": 0,
                "option_group_id": option_group,
                "sequential": 1,
                "options": {"limit": 0},
            },
        )
        return {
            str(option["value"]): option["name"]
            for option in result.get("values") or []
        }

    def get_option_value(self, option_group: str, name: str) -> Optional[str]:
        """
        Get the value of a named option.

        Returns:
            The option value, or None if the group has no such option
        """
        for value, option_name in self.get_option_values(option_group).items():
            if option_name == name:
                return value
        return None
