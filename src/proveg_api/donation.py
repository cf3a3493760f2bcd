"""
``ProvegDonation.submit``: turn a flat donation request into a contact, a
contribution (through a SEPA mandate or as a captured PayPal payment) and,
optionally, a membership and a newsletter subscription.

Any failure rolls back the entities the submission created, except the
contact, and leaves a scheduled "failed contribution processing" activity
for manual follow-up.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from .config import ProvegSettings
from .connectors.civicrm import CiviCRMConnector
from .exceptions import InvalidFormatError, ProvegAPIError
from .membership import MembershipService
from .models import PAYPAL, SEPA, DonationRequest
from .newsletter import NewsletterSubscription
from .payments import DirectCaptureBackend, SepaMandateBackend
from .results import create_error, create_success
from .submission import (
    extract_campaign,
    format_timestamp,
    get_contact,
    get_start_date,
    resolve_gender_id,
)

logger = logging.getLogger(__name__)

FAILED_ACTIVITY_TYPE = "provegapi_failed_contribution_processing"
FAILED_ACTIVITY_SUBJECT = "Failed ProVeg API contribution processing"
NO_ASSIGNEE_MESSAGE = (
    'No contact ID is configured for assigning an activity of the type '
    '"Failed contribution processing". The activity has not been assigned to a contact.'
)
ACTIVITY_FAILED_MESSAGE = (
    'Failed creating an activity of the type "Failed contribution processing".'
)


class DonationSubmission:
    """
    Donation submission operation.

    Examples:
        >>> operation = DonationSubmission(connector, settings)
        >>> result = operation.submit({
        ...     "amount": 5000, "frequency": 0, "payment_instrument_id": "paypal",
        ...     "first_name": "Jane", "last_name": "Doe", "email": "jane@example.org",
        ...     "street_address": "Main St 1", "postal_code": "10115",
        ...     "city": "Berlin", "country": "DE",
        ... })
        >>> result["values"][0]["total_amount"]
        50.0
    """

    ENTITY = "ProvegDonation"

    def __init__(
        self,
        connector: CiviCRMConnector,
        settings: ProvegSettings,
        newsletter: Optional[NewsletterSubscription] = None,
        memberships: Optional[MembershipService] = None,
    ) -> None:
        self._connector = connector
        self._settings = settings
        self._newsletter = newsletter or NewsletterSubscription(connector, settings)
        self._memberships = memberships or MembershipService(connector, settings)
        self._sepa = SepaMandateBackend(connector, settings)
        self._direct_capture = DirectCaptureBackend(connector, settings)

    def submit(
        self,
        params: Mapping[str, Any],
        request_time: Optional[datetime] = None,
        acting_contact_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Submit a donation.

        Args:
            params: The caller's parameters
            request_time: Time of the request (default: now)
            acting_contact_id: Contact recorded as source of a failure activity

        Returns:
            Success envelope with the contribution (or recurring contribution)
            and auxiliary outputs under ``extra``, or an error envelope
        """
        request_time = request_time or datetime.now()
        if self._settings.logging_enabled:
            logger.debug(f"{self.ENTITY}.submit: {json.dumps(dict(params), default=str)}")

        try:
            request = DonationRequest.from_params(params)
        except ProvegAPIError as exception:
            return create_error(exception.message, exception.extra_params)

        with self._connector.transactions.begin():
            return self._process(request, params, request_time, acting_contact_id)

    def _process(
        self,
        request: DonationRequest,
        params: Mapping[str, Any],
        request_time: datetime,
        acting_contact_id: Optional[int],
    ) -> Dict[str, Any]:
        contact_id = None
        campaign_id = request.campaign_id

        try:
            campaign_id = extract_campaign(
                self._connector, request.campaign_id, request.campaign_code
            )

            if request.frequency and request.payment_instrument_id != SEPA:
                raise InvalidFormatError(
                    "Recurring donations can only be submitted with SEPA."
                )

            contact_id = self._resolve_contact(request)

            contribution_data, annual_amount = self._build_contribution(
                request, params, campaign_id, contact_id, request_time
            )

            if request.payment_instrument_id == SEPA:
                contribution, recurring_contribution_id = self._sepa.submit(
                    contribution_data,
                    amount=request.amount,
                    recurring=bool(request.frequency),
                    iban=request.iban,
                    bic=request.bic,
                    start_date=get_start_date(self._settings, request_time.date()),
                    account_holder=request.account_holder,
                )
            elif request.payment_instrument_id == PAYPAL:
                contribution = self._direct_capture.submit(contribution_data)
                recurring_contribution_id = None
            else:
                raise InvalidFormatError("Invalid payment instrument.")

            if request.membership_type_id:
                membership = self._memberships.create(
                    contact_id,
                    request.membership_type_id,
                    today=request_time.date(),
                    source=self._settings.get_source(params, "contribution_source"),
                    campaign_id=campaign_id,
                    membership_subtype_id=request.membership_subtype_id,
                    annual_amount=annual_amount,
                )
                if recurring_contribution_id:
                    self._memberships.link_payment_contract(
                        membership, recurring_contribution_id
                    )
                # The membership itself is not part of the response.

            extra: Dict[str, Any] = {}
            if request.newsletter:
                extra["ProvegNewsletterSubscription"] = self._subscribe_newsletter(
                    contact_id
                )

            values = [contribution] if contribution else []
            return create_success(values, params, extra=extra)

        except ProvegAPIError as exception:
            return self._handle_failure(
                exception, params, contact_id, campaign_id, request_time, acting_contact_id
            )
        except Exception as e:
            logger.exception(f"Unexpected error in {self.ENTITY}.submit: {e}")
            exception = ProvegAPIError(str(e) or e.__class__.__name__, 0)
            return self._handle_failure(
                exception, params, contact_id, campaign_id, request_time, acting_contact_id
            )

    def _resolve_contact(self, request: DonationRequest) -> int:
        contact_data: Dict[str, Any] = {
            "first_name": request.first_name,
            "last_name": request.last_name,
            "email": request.email,
            "street_address": request.street_address,
            "city": request.city,
            "postal_code": request.postal_code,
            "country": request.country,
        }
        if request.gender:
            contact_data["gender_id"] = resolve_gender_id(self._connector, request.gender)

        contact_id = get_contact(self._connector, self._settings, "Individual", contact_data)
        if not contact_id:
            raise InvalidFormatError("Individual contact could not be found or created.")
        return contact_id

    def _build_contribution(
        self,
        request: DonationRequest,
        params: Mapping[str, Any],
        campaign_id: Optional[int],
        contact_id: int,
        request_time: datetime,
    ) -> Tuple[Dict[str, Any], Optional[float]]:
        """
        Assemble the contribution draft.

        For recurring donations the flat total is replaced by a monthly
        schedule. The schedule amount is divided by 100 a second time; the
        SEPA backend overwrites it with the once-divided amount.

        Returns:
            The draft and, for recurring donations, the annual amount
        """
        received = request_time
        if request.receive_date:
            try:
                received = datetime.fromtimestamp(request.receive_date)
            except (ValueError, OverflowError, OSError) as e:
                raise InvalidFormatError(
                    f"Invalid value for 'receive_date': {e}"
                ) from e
        data: Dict[str, Any] = {
            "financial_type_id": self._settings.financial_type_id,
            "campaign_id": campaign_id,
            "contact_id": contact_id,
            "total_amount": request.amount / 100,
            "source": self._settings.get_source(params, "contribution_source"),
            "receive_date": format_timestamp(received),
        }

        annual_amount = None
        if request.frequency:
            interval = 12 / request.frequency
            data["frequency_unit"] = "month"
            data["frequency_interval"] = int(interval) if interval.is_integer() else interval
            data["amount"] = data.pop("total_amount") / 100
            annual_amount = float(request.amount) * float(request.frequency) / 100

        return data, annual_amount

    def _subscribe_newsletter(self, contact_id: int) -> Dict[str, Any]:
        result = self._newsletter.submit(
            {"check_permissions": 0, "contact_id": contact_id, "newsletter": 1}
        )
        if result.get("is_error"):
            extra = {
                k: v
                for k, v in result.items()
                if k not in ("is_error", "error_message", "error_code")
            }
            raise ProvegAPIError(result["error_message"], result.get("error_code"), extra)
        return result

    def _handle_failure(
        self,
        exception: ProvegAPIError,
        params: Mapping[str, Any],
        contact_id: Optional[int],
        campaign_id: Optional[int],
        request_time: datetime,
        acting_contact_id: Optional[int],
    ) -> Dict[str, Any]:
        """
        Roll back the submission and record a failure activity.

        The activity is created after the rollback so that it is kept. Its
        own failure is reported as a notice and never replaces the original
        error.
        """
        if self._settings.logging_enabled:
            logger.debug(f"{self.ENTITY}:submit:Exception caught: {exception}")

        extra_params = exception.extra_params

        frame = self._connector.transactions.get_frame()
        if frame is not None:
            frame.force_rollback()

        notice: Dict[str, Any] = {}
        assignee_id = self._settings.failed_contribution_assignee_id
        try:
            activity_data = {
                "check_permissions": 0,
                "assignee_id": assignee_id,
                "activity_type_id": self._connector.get_option_value(
                    "activity_type", FAILED_ACTIVITY_TYPE
                ),
                "subject": FAILED_ACTIVITY_SUBJECT,
                "activity_date_time": format_timestamp(request_time),
                "source_contact_id": acting_contact_id,
                "status_id": self._connector.get_option_value(
                    "activity_status", "Scheduled"
                ),
                "target_id": contact_id,
                "campaign_id": campaign_id,
                "details": json.dumps(dict(params), default=str),
            }
            notice["result"] = self._connector.create("Activity", **activity_data)
            if assignee_id is None:
                logger.warning("Failure activity created without assignee")
                notice.setdefault("messages", []).append(NO_ASSIGNEE_MESSAGE)
        except ProvegAPIError as activity_exception:
            logger.error(f"Failed to create failure activity: {activity_exception}")
            notice.setdefault("messages", []).append(ACTIVITY_FAILED_MESSAGE)
            notice["result"] = create_error(
                activity_exception.message, activity_exception.extra_params
            )

        notices = extra_params.setdefault("additional_notices", {})
        notices["activity"] = notice
        if frame is not None and frame.rollback_errors:
            notices["rollback"] = {"messages": list(frame.rollback_errors)}

        return create_error(exception.message, extra_params)
