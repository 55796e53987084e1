"""Input validation helpers.

Functions:
- normalize_email(email) -> str: Trim and lowercase, raising on bad shape
- validate_pin(pin) -> str: Ensure a 4-digit student PIN
- validate_structured_content(content) -> list[dict]: Normalize paragraphs
"""

import re

from noteearly.core.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PIN_PATTERN = re.compile(r"^\d{4}$")


def normalize_email(email: str) -> str:
    """Normalize an email address for storage and lookup.

    Args:
        email: Raw email as typed by the user

    Returns:
        Lowercased, trimmed email

    Raises:
        ValidationError: If the email is not shaped like an address
    """
    normalized = email.strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValidationError("Invalid email address.")
    return normalized


def validate_pin(pin: str) -> str:
    """Ensure a student PIN is exactly four digits.

    Raises:
        ValidationError: If the PIN is malformed
    """
    if not PIN_PATTERN.match(pin):
        raise ValidationError("PIN must be exactly 4 digits.")
    return pin


def validate_structured_content(content: list[dict]) -> list[dict]:
    """Normalize a module's paragraphs into 1-based {index, text} entries.

    Paragraphs are kept in the order given; missing or inconsistent indexes
    are rewritten so that index == position + 1.

    Args:
        content: List of paragraph dicts with at least a "text" key

    Returns:
        Normalized list of {"index": int, "text": str}

    Raises:
        ValidationError: If the list is empty or any paragraph is blank
    """
    if not content:
        raise ValidationError("Module must contain at least one paragraph.")

    normalized = []
    for position, paragraph in enumerate(content, start=1):
        text = str(paragraph.get("text", "")).strip()
        if not text:
            raise ValidationError(f"Paragraph {position} is empty.")
        normalized.append({"index": position, "text": text})

    return normalized
