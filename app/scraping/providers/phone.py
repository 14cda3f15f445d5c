"""
Phone number clean-up for South African numbers.
"""

from __future__ import annotations

import re

_NON_DIGITS = re.compile(r"[^\d+]")
PLACEHOLDER_PHONES = {"", "no phone", "n/a"}


def normalize_phone(raw: str | None) -> str:
    """
    Return the national (0-prefixed) digit form of a phone number.

    ``+27 82 123 4567`` and ``27821234567`` both become ``0821234567``.
    Placeholders such as "No phone" normalize to an empty string.
    """

    if raw is None:
        return ""
    stripped = raw.strip()
    if stripped.lower() in PLACEHOLDER_PHONES:
        return ""

    digits = _NON_DIGITS.sub("", stripped)
    if digits.startswith("+27"):
        return "0" + digits[3:]
    digits = digits.lstrip("+")
    if digits.startswith("27") and len(digits) > 10:
        return "0" + digits[2:]
    return digits
