"""Phone identifier validation for pairing-code requests."""

import re
from typing import Iterable, Optional

from pairbridge.errors import ValidationError
from pairbridge.pairing.calling_codes import CALLING_CODES

NON_DIGITS = re.compile(r"[^0-9]")

MISSING_NUMBER_MESSAGE = "Please provide a phone number with country code."
UNKNOWN_CODE_MESSAGE = (
    "Start with the country code of your number, for example +48459088092"
)


class PhoneValidator:
    """Normalize phone numbers and check them against calling-code prefixes."""

    def __init__(self, calling_codes: Optional[Iterable[str]] = None):
        """Initialize validator.

        Args:
            calling_codes: Accepted prefixes. Defaults to the E.164 table.
        """
        codes = CALLING_CODES if calling_codes is None else calling_codes
        self.calling_codes = frozenset(codes)

    def validate(self, raw: Optional[str]) -> str:
        """Return the digits of ``raw`` if they start with a known prefix.

        Args:
            raw: User-supplied phone number, any formatting.

        Returns:
            Digits-only phone number.

        Raises:
            ValidationError: If the number is missing or has no known prefix.
        """
        digits = NON_DIGITS.sub("", raw or "")

        if not digits:
            raise ValidationError(ValidationError.MISSING_NUMBER, MISSING_NUMBER_MESSAGE)

        if not any(digits.startswith(code) for code in self.calling_codes):
            raise ValidationError(
                ValidationError.UNKNOWN_COUNTRY_CODE, UNKNOWN_CODE_MESSAGE
            )

        return digits
