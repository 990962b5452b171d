"""Free-text normalisation driven by a question's content hint.

Phone numbers are checked against the ``phonenumbers`` metadata and stored
in E.164 (``+<country code><number>``).  Email addresses are checked for
syntax with ``email_validator`` (no DNS lookups) and lower-cased.  Each
normaliser returns ``None`` when the text cannot be interpreted, leaving
the error message to the caller.
"""

import email_validator
import phonenumbers

from screening_db.models.enums import ContentHint

from screening_engine.constants import DEFAULT_PHONE_COUNTRY_CODE


def normalize_phone_number(
    text: str, default_country_code: str = DEFAULT_PHONE_COUNTRY_CODE
) -> str | None:
    """Normalise a phone number to E.164.

    Numbers starting with ``+`` or ``00`` are taken as international.
    Anything else is parsed as a national number of the region that owns
    ``default_country_code``.  The number must be valid for its region,
    not merely the right length.
    """
    candidate = text.strip()
    if candidate.startswith("00"):
        candidate = "+" + candidate[2:]
    region = phonenumbers.region_code_for_country_code(int(default_country_code))
    try:
        number = phonenumbers.parse(candidate, region)
    except phonenumbers.NumberParseException:
        return None
    if not phonenumbers.is_valid_number(number):
        return None
    return phonenumbers.format_number(number, phonenumbers.PhoneNumberFormat.E164)


def normalize_email_address(text: str) -> str | None:
    try:
        validated = email_validator.validate_email(text.strip(), check_deliverability=False)
    except email_validator.EmailNotValidError:
        return None
    return validated.normalized.lower()


def normalize_free_text(text: str, content_hint: ContentHint | str) -> str | None:
    """Apply the normaliser for ``content_hint``; unhinted text is only trimmed."""
    hint = ContentHint(content_hint)
    if hint == ContentHint.PHONE_NUMBER:
        return normalize_phone_number(text)
    if hint == ContentHint.EMAIL_ADDRESS:
        return normalize_email_address(text)
    return text.strip()
