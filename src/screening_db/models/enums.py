"""Database-level enumerations for screening content."""

import enum


class AnswerFormat(str, enum.Enum):
    """How a screening question is answered.

    single_select: exactly one option per submission
    multi_select:  one or more options per submission
    free_text:     one option carrying participant-entered text
    """

    SINGLE_SELECT = "single_select"
    MULTI_SELECT = "multi_select"
    FREE_TEXT = "free_text"


class ContentHint(str, enum.Enum):
    """Expected shape of free-text answers.  Hinted text is normalised on write."""

    NONE = "none"
    PHONE_NUMBER = "phone_number"
    EMAIL_ADDRESS = "email_address"
