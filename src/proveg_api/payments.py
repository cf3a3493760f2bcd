"""
Payment backends for donation submissions.

``SepaMandateBackend`` creates a SEPA direct debit mandate together with its
contribution (one-off) or recurring contribution. ``DirectCaptureBackend``
records a payment that was already captured online (PayPal) as a completed
contribution.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from .config import ProvegSettings
from .connectors.civicrm import CiviCRMConnector
from .exceptions import InvalidFormatError
from .results import first_value
from .sepa import verify_bic, verify_iban

logger = logging.getLogger(__name__)

CONTRIBUTION_TABLE = "civicrm_contribution"
CONTRIBUTION_RECUR_TABLE = "civicrm_contribution_recur"

# Entities behind a mandate's entity_table.
LINKED_ENTITIES = {
    CONTRIBUTION_TABLE: "Contribution",
    CONTRIBUTION_RECUR_TABLE: "ContributionRecur",
}


class SepaMandateBackend:
    """Creates SEPA mandates through ``SepaMandate.createfull``."""

    def __init__(self, connector: CiviCRMConnector, settings: ProvegSettings) -> None:
        self._connector = connector
        self._settings = settings

    def validate(self, iban: Optional[str], bic: Optional[str]) -> None:
        """
        Check that IBAN and BIC are present and well-formed.

        Raises:
            InvalidFormatError: On the first missing or invalid value
        """
        if not iban:
            raise InvalidFormatError("For donations via SEPA, the IBAN must be provided.")
        error = verify_iban(iban)
        if error:
            raise InvalidFormatError(error)

        if not bic:
            raise InvalidFormatError(
                "For donations via SEPA, the SWIFT code (BIC) must be provided."
            )
        error = verify_bic(bic)
        if error:
            raise InvalidFormatError(error)

    def submit(
        self,
        contribution_data: Dict[str, Any],
        amount: int,
        recurring: bool,
        iban: str,
        bic: str,
        start_date: str,
        account_holder: Optional[str] = None,
    ) -> Tuple[Optional[Dict[str, Any]], Optional[int]]:
        """
        Create the mandate and load the contribution it is linked to.

        Args:
            contribution_data: Contribution draft
            amount: Donation amount in cents
            recurring: Whether to create a recurring (RCUR) mandate
            iban: Debtor IBAN
            bic: Debtor BIC
            start_date: Mandate start date (YYYY-MM-DD)
            account_holder: Account holder, if different from the contact

        Returns:
            The linked contribution or recurring contribution (None if the
            mandate is not linked), and the recurring contribution id if any

        Raises:
            InvalidFormatError: If a linked contribution cannot be loaded
        """
        self.validate(iban, bic)

        mandate_data = dict(contribution_data)
        mandate_data["type"] = "RCUR" if recurring else "OOFF"
        mandate_data["iban"] = iban
        mandate_data["bic"] = bic
        mandate_data["creditor_id"] = self._settings.sepa_creditor_id
        mandate_data["amount"] = amount / 100
        mandate_data["start_date"] = start_date
        mandate_data["check_permissions"] = 0
        if account_holder:
            mandate_data["account_holder"] = account_holder

        result = self._connector.call("SepaMandate", "createfull", mandate_data)
        mandate = first_value(result)
        logger.info(f"Created SEPA mandate {mandate.get('id')} ({mandate_data['type']})")

        entity_table = mandate.get("entity_table")
        entity_id = mandate.get("entity_id")
        if entity_id and entity_table in LINKED_ENTITIES:
            self._connector.register_created(LINKED_ENTITIES[entity_table], entity_id)
        if mandate.get("id"):
            self._connector.register_created("SepaMandate", mandate["id"])

        if not entity_id:
            return None, None

        contribution = None
        recurring_contribution_id = None
        if entity_table == CONTRIBUTION_TABLE:
            contribution = self._connector.get_single(
                "Contribution", check_permissions=0, id=entity_id
            )
        elif entity_table == CONTRIBUTION_RECUR_TABLE:
            recurring_contribution_id = int(entity_id)
            contribution = self._connector.get_single(
                "ContributionRecur", check_permissions=0, id=entity_id
            )

        if contribution is None:
            raise InvalidFormatError("Could not load contribution for SEPA mandate.")
        return contribution, recurring_contribution_id


class DirectCaptureBackend:
    """Records payments captured by an online processor."""

    def __init__(self, connector: CiviCRMConnector, settings: ProvegSettings) -> None:
        self._connector = connector
        self._settings = settings

    def submit(self, contribution_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a completed contribution from the draft.

        Returns:
            The created contribution
        """
        data = dict(contribution_data)
        data["payment_instrument_id"] = self._settings.paypal_instrument_id
        data["contribution_status_id"] = "Completed"
        data["check_permissions"] = 0
        result = self._connector.create("Contribution", **data)
        contribution = first_value(result)
        logger.info(f"Created contribution {contribution.get('id')}")
        return contribution
