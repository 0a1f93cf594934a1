"""Contact field helpers shared by every booking form."""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional, Tuple

COUNTRY_CODES: Tuple[Tuple[str, str], ...] = (
    ("+62", "ID (+62)"),
    ("+65", "SG (+65)"),
    ("+60", "MY (+60)"),
    ("+61", "AU (+61)"),
    ("+1", "US (+1)"),
    ("+44", "UK (+44)"),
    ("+81", "JP (+81)"),
    ("+82", "KR (+82)"),
)

DEFAULT_COUNTRY_CODE = "+62"

_NON_DIGITS = re.compile(r"[^0-9]")
_LOCAL_PREFIX = re.compile(r"^\+?62|^0")


def split_phone_number(
    full_number: Optional[str], default_code: str = DEFAULT_COUNTRY_CODE
) -> Tuple[str, str]:
    """Split a stored phone number into ``(country_code, local_digits)``."""
    number = (full_number or "").strip()
    # Longest first so "+1" never shadows a longer code.
    for code, _label in sorted(COUNTRY_CODES, key=lambda item: len(item[0]), reverse=True):
        if number.startswith(code):
            return code, _NON_DIGITS.sub("", number[len(code) :])
    return default_code, _NON_DIGITS.sub("", _LOCAL_PREFIX.sub("", number))


def compose_phone_number(country_code: str, local_number: str) -> str:
    return f"{country_code}{_NON_DIGITS.sub('', local_number or '')}"


def prefill_contact(
    user: Optional[Mapping[str, Any]], default_code: str = DEFAULT_COUNTRY_CODE
) -> Dict[str, str]:
    """Contact fields for a freshly opened form, taken from the signed-in user."""
    user = user or {}
    phone = user.get("phone_number") or user.get("phone") or ""
    country_code, local_phone = split_phone_number(phone, default_code)
    return {
        "full_name": user.get("name") or "",
        "email": user.get("email") or "",
        "phone_code": country_code,
        "local_phone": local_phone,
    }


__all__ = [
    "COUNTRY_CODES",
    "DEFAULT_COUNTRY_CODE",
    "compose_phone_number",
    "prefill_contact",
    "split_phone_number",
]
