"""
Request models for the ProVeg API operations.

The models describe the parameters each operation accepts, which of them are
required, and how they are typed. Validation failures are translated into the
library's error taxonomy so that callers get ``mandatory_missing`` or
``invalid_format`` errors instead of pydantic's.
"""

from typing import Any, ClassVar, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .exceptions import InvalidFormatError, MandatoryMissingError

SEPA = "sepa"
PAYPAL = "paypal"


class SubmitRequest(BaseModel):
    """Common behaviour of submit requests."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    ENTITY: ClassVar[str] = ""

    @model_validator(mode="before")
    @classmethod
    def drop_empty_values(cls, data: Any) -> Any:
        # The host treats empty values as absent.
        if isinstance(data, Mapping):
            return {k: v for k, v in data.items() if v is not None and v != ""}
        return data

    @classmethod
    def from_params(cls, params: Mapping[str, Any], action: str = "submit"):
        """
        Validate raw API parameters.

        Args:
            params: The caller's parameters
            action: API action, reported in missing-field errors

        Returns:
            The validated request

        Raises:
            MandatoryMissingError: If required parameters are absent
            InvalidFormatError: If a parameter has the wrong type
        """
        try:
            return cls.model_validate(dict(params))
        except ValidationError as e:
            errors = e.errors()
            missing = [str(err["loc"][0]) for err in errors if err["type"] == "missing"]
            if missing:
                raise MandatoryMissingError(missing, cls.ENTITY, action) from e
            err = errors[0]
            field = ".".join(str(part) for part in err["loc"])
            raise InvalidFormatError(f"Invalid value for '{field}': {err['msg']}") from e

    @classmethod
    def get_fields(cls) -> Dict[str, Dict[str, Any]]:
        """
        Describe the accepted parameters.

        Returns:
            Mapping of parameter name to name, title, description and
            whether it is required
        """
        fields = {}
        for name, info in cls.model_fields.items():
            fields[name] = {
                "name": name,
                "title": info.title or name,
                "description": info.description or "",
                "api.required": 1 if info.is_required() else 0,
            }
        return fields


class DonationRequest(SubmitRequest):
    """Parameters of ``ProvegDonation.submit``."""

    ENTITY: ClassVar[str] = "ProvegDonation"

    amount: int = Field(
        ..., title="Amount (in Euro cents)", description="The donation amount in Euro cents."
    )
    frequency: int = Field(
        ...,
        title="Frequency",
        description="The number of installments per year, or 0 for one-off.",
    )
    first_name: str = Field(..., title="First Name", description="The contact's first name.")
    last_name: str = Field(..., title="Last Name", description="The contact's last name.")
    email: str = Field(..., title="Email", description="The contact's email.")
    street_address: str = Field(
        ..., title="Street address", description="The contact's street address."
    )
    postal_code: str = Field(
        ..., title="Postal / ZIP code", description="The contact's postal code."
    )
    city: str = Field(..., title="City", description="The contact's city.")
    country: str = Field(..., title="Country", description="The contact's country.")
    payment_instrument_id: str = Field(
        ...,
        title="Payment instrument",
        description="The payment method used for the donation: sepa or paypal",
    )
    gender: Optional[str] = Field(None, title="Gender", description="The contact's gender.")
    iban: Optional[str] = Field(
        None, title="IBAN", description="The IBAN to register the SEPA mandate for."
    )
    bic: Optional[str] = Field(
        None,
        title="BIC",
        description="The SWIFT code (BIC) to register the SEPA mandate for.",
    )
    account_holder: Optional[str] = Field(
        None,
        title="Account holder",
        description="The bank account holder's full name (when different from contact).",
    )
    membership_type_id: Optional[str] = Field(
        None,
        title="Membership type",
        description="The ID of the membership type to assign to the contact.",
    )
    membership_subtype_id: Optional[str] = Field(
        None,
        title="Membership sub type",
        description="The ID of the membership sub type to assign to the contact.",
    )
    newsletter: Optional[int] = Field(
        None,
        title="Newsletter",
        description="Whether to subscribe the contact to the configured newsletter group.",
    )
    campaign_id: Optional[int] = Field(
        None, title="Campaign", description="The ID of the campaign."
    )
    campaign_code: Optional[str] = Field(
        None, title="Campaign Code", description="External identifier for a campaign"
    )
    receive_date: Optional[int] = Field(
        None, title="Receive date", description="A timestamp when the donation was issued."
    )
    contribution_source: Optional[str] = Field(
        None,
        title="Contribution source",
        description="Text to identify the origin of the contribution.",
    )


class NewsletterSubscriptionRequest(SubmitRequest):
    """Parameters of ``ProvegNewsletterSubscription.submit``."""

    ENTITY: ClassVar[str] = "ProvegNewsletterSubscription"

    newsletter: int = Field(
        ...,
        title="Newsletter",
        description=(
            "Whether to subscribe to or remove the contact from the "
            "configured newsletter group."
        ),
    )
    email: Optional[str] = Field(None, title="Email", description="The contact's email.")
    contact_id: Optional[int] = Field(None, title="Contact ID", description="The contact's ID.")
