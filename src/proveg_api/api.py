"""
Entry point for remote callers.

``ProvegAPI`` dispatches ``(entity, action, params)`` calls to the operations
of this package, the way the host's API layer routes ``ProvegDonation.submit``
and ``ProvegNewsletterSubscription.submit``. Settings are read for every
call, so configuration changes apply without rebuilding the API object.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from .config import ConfigManager
from .connectors.civicrm import CiviCRMConnector
from .donation import DonationSubmission
from .exceptions import ProvegAPIError
from .models import DonationRequest, NewsletterSubscriptionRequest
from .newsletter import NewsletterSubscription
from .results import create_error, create_success

logger = logging.getLogger(__name__)

REQUEST_MODELS = {
    "ProvegDonation": DonationRequest,
    "ProvegNewsletterSubscription": NewsletterSubscriptionRequest,
}


class ProvegAPI:
    """
    Dispatcher for the ProVeg API entities.

    Examples:
        >>> api = ProvegAPI()
        >>> api.call("ProvegNewsletterSubscription", "submit",
        ...          {"email": "jane@example.org", "newsletter": 1})
        >>> api.call("ProvegDonation", "getfields")
    """

    def __init__(
        self,
        connector: Optional[CiviCRMConnector] = None,
        config: Optional[ConfigManager] = None,
    ) -> None:
        self._connector = connector or CiviCRMConnector()
        self._config = config or ConfigManager()

    def call(
        self,
        entity: str,
        action: str,
        params: Optional[Mapping[str, Any]] = None,
        request_time: Optional[datetime] = None,
        acting_contact_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Run an API action.

        Args:
            entity: 'ProvegDonation' or 'ProvegNewsletterSubscription'
            action: 'submit' or 'getfields'
            params: The caller's parameters
            request_time: Time of the request (default: now)
            acting_contact_id: Contact the request is performed for

        Returns:
            The operation's result envelope; unknown entities or actions
            yield an error envelope with error code 'not-found'
        """
        params = dict(params or {})
        model = REQUEST_MODELS.get(entity)
        if model is None or action not in ("submit", "getfields"):
            logger.warning(f"Unknown API call {entity}.{action}")
            return create_error(
                f"API ({entity}, {action}) does not exist", {"error_code": "not-found"}
            )

        if action == "getfields":
            return create_success(list(model.get_fields().values()), params)

        try:
            settings = self._config.get_settings()
        except ProvegAPIError as e:
            logger.error(f"Could not load settings for {entity}.{action}: {e}")
            return create_error(e.message, e.extra_params)

        if entity == "ProvegNewsletterSubscription":
            return NewsletterSubscription(self._connector, settings).submit(params)
        return DonationSubmission(self._connector, settings).submit(
            params, request_time=request_time, acting_contact_id=acting_contact_id
        )
