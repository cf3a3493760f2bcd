"""
Membership provisioning for donations.

A membership is created first and linked to its payment contract in a second
update, because the recurring contribution only exists once the payment side
of the submission is done.
"""

import json
import logging
from datetime import date
from typing import Any, Dict, Optional

from .config import ProvegSettings
from .connectors.civicrm import CiviCRMConnector
from .custom_data import CustomDataResolver
from .submission import DATE_FORMAT, get_end_date, get_start_date

logger = logging.getLogger(__name__)

SUBTYPE_FIELD = "membership_type.membership_subtype"
ANNUAL_AMOUNT_FIELD = "membership_info.membership_annual"
PAID_THROUGH_FIELD = "membership_info.membership_paid_through"


class MembershipService:
    """Creates memberships and links them to recurring contributions."""

    def __init__(
        self,
        connector: CiviCRMConnector,
        settings: ProvegSettings,
        custom_data: Optional[CustomDataResolver] = None,
    ) -> None:
        self._connector = connector
        self._settings = settings
        self._custom_data = custom_data or CustomDataResolver(connector)

    def create(
        self,
        contact_id: int,
        membership_type_id: str,
        today: date,
        source: str,
        campaign_id: Optional[int] = None,
        membership_subtype_id: Optional[str] = None,
        annual_amount: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Create a membership and reload it.

        The term starts on the configured start date and lasts one year;
        the join date is the submission date.

        Returns:
            The full membership record
        """
        start_date = get_start_date(self._settings, today)
        membership_data: Dict[str, Any] = {
            "check_permissions": 0,
            "membership_type_id": membership_type_id,
            "campaign_id": campaign_id,
            "contact_id": contact_id,
            "source": source,
            "start_date": start_date,
            "end_date": get_end_date(start_date),
            "join_date": today.strftime(DATE_FORMAT),
        }
        if membership_subtype_id:
            membership_data[SUBTYPE_FIELD] = membership_subtype_id
        if annual_amount:
            membership_data[ANNUAL_AMOUNT_FIELD] = annual_amount

        self._custom_data.resolve_custom_fields(membership_data)
        logger.debug(f"Membership create: {json.dumps(membership_data)}")
        result = self._connector.create("Membership", **membership_data)

        return self._connector.get_single("Membership", id=result["id"])

    def link_payment_contract(
        self, membership: Dict[str, Any], recurring_contribution_id: int
    ) -> Dict[str, Any]:
        """
        Set the recurring contribution that pays for a membership.

        Only the linkage field is sent, so nothing else on the membership changes.
        """
        membership_update: Dict[str, Any] = {
            "id": membership["id"],
            "contact_id": membership["contact_id"],
            PAID_THROUGH_FIELD: recurring_contribution_id,
        }
        self._custom_data.resolve_custom_fields(membership_update)
        logger.debug(f"Membership update: {json.dumps(membership_update)}")
        return self._connector.create("Membership", **membership_update)
