"""
Helpers shared by the ProVeg API submit operations.

Campaign extraction, contact resolution, gender lookup, and the date
conventions used for contributions, mandates and memberships.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from .config import ProvegSettings
from .connectors.civicrm import CiviCRMConnector
from .exceptions import ProvegAPIError

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
DATE_FORMAT = "%Y-%m-%d"

GENDER_NAMES = {"m": "Male", "f": "Female"}


def extract_campaign(
    connector: CiviCRMConnector,
    campaign_id: Optional[int],
    campaign_code: Optional[str],
) -> Optional[int]:
    """
    Resolve the campaign of a request.

    An explicit campaign id wins. Otherwise the campaign whose external
    identifier equals ``campaign_code`` is looked up.

    Returns:
        The campaign id, or None if there is none
    """
    if campaign_id or not campaign_code:
        return campaign_id

    campaigns = connector.get(
        "Campaign",
        check_permissions=0,
        external_identifier=campaign_code,
        **{"return": "id"},
    )
    if not campaigns:
        logger.warning(f"No campaign found for campaign code '{campaign_code}'")
        return None
    return int(campaigns[0]["id"])


def resolve_gender_id(connector: CiviCRMConnector, gender: str) -> Optional[str]:
    """
    Map a one-letter gender code to the host's gender option value.

    Raises:
        ProvegAPIError: With error code 0 for codes other than 'm' and 'f'

    Returns:
        The option value, or None if the host has no such option
    """
    genders = connector.get_option_values("gender")
    if gender not in GENDER_NAMES:
        raise ProvegAPIError("Could not determine option value from given gender.", 0)

    for value, name in genders.items():
        if name == GENDER_NAMES[gender]:
            return value
    logger.warning(f"Gender option '{GENDER_NAMES[gender]}' does not exist")
    return None


def get_contact(
    connector: CiviCRMConnector,
    settings: ProvegSettings,
    contact_type: str,
    contact_data: Dict[str, Any],
) -> Optional[int]:
    """
    Get the id of the contact matching the data, creating one if needed.

    Returns:
        The contact id, or None if the host could neither match nor create one
    """
    return connector.get_or_create_contact(
        contact_type, contact_data, profile=settings.xcm_profile
    )


def get_start_date(settings: ProvegSettings, today: date) -> str:
    """Start date of mandates and memberships submitted on ``today``."""
    start = today + timedelta(days=settings.start_date_offset_days)
    return start.strftime(DATE_FORMAT)


def get_end_date(start_date: str) -> str:
    """
    Last day of a one-year term starting on ``start_date``.

    A term starting on 29 February ends on 28 February of the next year.
    """
    start = datetime.strptime(start_date, DATE_FORMAT).date()
    try:
        anniversary = start.replace(year=start.year + 1)
    except ValueError:
        anniversary = date(start.year + 1, 3, 1)
    return (anniversary - timedelta(days=1)).strftime(DATE_FORMAT)


def format_timestamp(moment: datetime) -> str:
    """Format a point in time the way the host expects it (YYYYMMDDHHMMSS)."""
    return moment.strftime(TIMESTAMP_FORMAT)
