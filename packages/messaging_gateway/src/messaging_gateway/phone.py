"""Phone number helpers."""

import re

_NON_DIGITS = re.compile(r"\D+")


def normalize_phone(phone: str | None) -> str:
    """Strip everything but digits (``+57 300-123`` -> ``57300123``)."""
    if not phone:
        return ""
    return _NON_DIGITS.sub("", phone)
