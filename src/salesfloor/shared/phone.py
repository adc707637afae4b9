"""
Phone number normalization.
"""

import re

# E.164 phone number pattern
E164_PATTERN = re.compile(r"^\+[1-9]\d{6,14}$")


def normalize_phone_number(phone: str | None) -> str | None:
    """Normalize phone number to E.164 format.

    Args:
        phone: Raw phone number string.

    Returns:
        Normalized phone number or None if invalid.
    """
    if not phone:
        return None

    # Remove common formatting characters
    cleaned = re.sub(r"[\s\-\.\(\)]", "", phone.strip())

    if E164_PATTERN.match(cleaned):
        return cleaned

    # If starts with 00, replace with +
    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]
        if E164_PATTERN.match(cleaned):
            return cleaned

    # Bare digits: country code cannot be determined reliably
    return None
