"""
``ProvegNewsletterSubscription.submit``: add a contact to, or remove it from,
the configured newsletter group.
"""

import json
import logging
from typing import Any, Dict, Mapping

from .config import ProvegSettings
from .connectors.civicrm import CiviCRMConnector
from .exceptions import InvalidFormatError, MandatoryMissingError, ProvegAPIError
from .models import NewsletterSubscriptionRequest
from .results import create_error, create_success
from .submission import get_contact

logger = logging.getLogger(__name__)


class NewsletterSubscription:
    """
    Newsletter subscription operation.

    Examples:
        >>> operation = NewsletterSubscription(connector, settings)
        >>> operation.submit({"email": "jane@example.org", "newsletter": 1})
    """

    ENTITY = "ProvegNewsletterSubscription"

    def __init__(self, connector: CiviCRMConnector, settings: ProvegSettings) -> None:
        self._connector = connector
        self._settings = settings

    def submit(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Set the newsletter group membership of a contact.

        The contact is taken from ``contact_id`` or, failing that, matched or
        created from ``email``. Subscribing twice, or unsubscribing a contact
        that is not subscribed, is not an error.

        Returns:
            Success envelope with the group contact result, or an error envelope
        """
        if self._settings.logging_enabled:
            logger.debug(f"{self.ENTITY}.submit: {json.dumps(dict(params), default=str)}")

        try:
            request = NewsletterSubscriptionRequest.from_params(params)

            if request.contact_id:
                contact_id = request.contact_id
            elif not request.email:
                raise MandatoryMissingError(["email"], self.ENTITY, "submit")
            else:
                contact_id = get_contact(
                    self._connector, self._settings, "Individual", {"email": request.email}
                )
                if not contact_id:
                    raise InvalidFormatError(
                        "Individual contact could not be found or created."
                    )

            status = "Added" if request.newsletter else "Removed"
            group_contact = self._connector.call(
                "GroupContact",
                "create",
                {
                    "check_permissions": 0,
                    "group_id": self._settings.newsletter_group_id,
                    "contact_id": contact_id,
                    "status": status,
                    "sequential": 1,
                },
            )
            logger.info(
                f"Newsletter status of contact {contact_id} set to {status}"
            )

            values = group_contact.get("values") or []
            if isinstance(values, Mapping):
                values = [values]
            return create_success(list(values), params)

        except ProvegAPIError as exception:
            if self._settings.logging_enabled:
                logger.debug(f"{self.ENTITY}:submit:Exception caught: {exception}")
            return create_error(exception.message, exception.extra_params)
