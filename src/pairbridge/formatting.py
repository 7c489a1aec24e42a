"""Formatting utilities for status messages and CLI output."""

PAIRING_CODE_BLOCK = 4
PAIRING_CODE_SEPARATOR = "-"


def format_pairing_code(code: str) -> str:
    """Group a pairing code into 4-character blocks.

    Args:
        code: Raw code as returned by the session service.

    Returns:
        Code split into blocks joined by "-".

    Examples:
        >>> format_pairing_code("ABCD1234")
        'ABCD-1234'
        >>> format_pairing_code("ABCDE")
        'ABCD-E'
    """
    if not code:
        return code
    blocks = [
        code[i:i + PAIRING_CODE_BLOCK] for i in range(0, len(code), PAIRING_CODE_BLOCK)
    ]
    return PAIRING_CODE_SEPARATOR.join(blocks)


def mask_phone(phone: str) -> str:
    """Hide all but the last four digits of a phone number for logs."""
    if len(phone) <= 4:
        return phone
    return "*" * (len(phone) - 4) + phone[-4:]
