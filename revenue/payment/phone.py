"""
Phone number normalisation for Philippine mobile numbers.
"""

import re

NON_DIGITS = re.compile(r"[^0-9]")


def format_phone_number(phone: str) -> str | None:
    """Normalise a mobile number to the 11-digit 09XXXXXXXXX form.

    Accepts 9123456789, 09123456789, 639123456789 and +639123456789 (with
    any spacing or punctuation).

    Args:
        phone: Raw phone number

    Returns:
        Normalised number, or None when the format is not recognised
    """
    digits = NON_DIGITS.sub("", phone or "")

    if len(digits) == 10:
        return "0" + digits
    if len(digits) == 11 and digits.startswith("0"):
        return digits
    if len(digits) == 12 and digits.startswith("63"):
        return "0" + digits[2:]

    return None
