"""
IBAN and BIC verification for SEPA mandates.

The checks mirror what the mandate backend enforces before a mandate is
created: IBAN structure plus ISO 7064 mod 97-10 checksum, and the ISO 9362
BIC layout.
"""

import re
from typing import Optional

IBAN_ERROR = "IBAN is not correct"
BIC_ERROR = "BIC is not correct"

_IBAN_PATTERN = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z0-9]{11,30}$")
_BIC_PATTERN = re.compile(r"^[A-Z]{6}[A-Z2-9][A-NP-Z0-9]([A-Z0-9]{3})?$")


def normalize(value: str) -> str:
    """Strip whitespace and upper-case an account identifier."""
    return re.sub(r"\s+", "", value or "").upper()


def verify_iban(iban: str) -> Optional[str]:
    """
    Verify an IBAN.

    Returns:
        None if the IBAN is valid, otherwise an error message
    """
    iban = normalize(iban)
    if not _IBAN_PATTERN.match(iban):
        return IBAN_ERROR

    rearranged = iban[4:] + iban[:4]
    digits = "".join(str(int(char, 36)) for char in rearranged)
    if int(digits) % 97 != 1:
        return IBAN_ERROR
    return None


def verify_bic(bic: str) -> Optional[str]:
    """
    Verify a BIC (8 or 11 characters).

    Returns:
        None if the BIC is valid, otherwise an error message
    """
    if not _BIC_PATTERN.match(normalize(bic)):
        return BIC_ERROR
    return None
