"""Email normalization and validation shared by every component."""

import re
from typing import Optional

from plan2tasks.exceptions import InputValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(value: Optional[str]) -> str:
    """Trim and lowercase an email; None becomes ''."""
    if value is None:
        return ""
    return str(value).strip().lower()


def is_plausible_email(value: Optional[str]) -> bool:
    return bool(_EMAIL_RE.match(normalize_email(value)))


def require_email(value: Optional[str], field: str = "email") -> str:
    """
    Normalize an email and reject anything that is not plausibly one.

    Raises:
        InputValidationError: If the value is missing or malformed
    """
    email = normalize_email(value)
    if not email:
        raise InputValidationError(f"Missing {field}")
    if not _EMAIL_RE.match(email):
        raise InputValidationError(f"Invalid {field}: {email}")
    return email
