"""
Input Sanitizer
Version: 1.0

Cleans free text coming from public forms and masks PII before logging.
NO DEPENDENCIES on other services.
"""

import re
from typing import Optional

TAG_PATTERN = re.compile(r'<[^>]*>?', re.MULTILINE)
EMAIL_PATTERN = re.compile(r'([a-zA-Z0-9._%+-])[a-zA-Z0-9._%+-]*@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})')


def strip_tags(text: Optional[str]) -> Optional[str]:
    """
    Remove HTML tags, including an unterminated trailing tag.

    >>> strip_tags("<b>Late</b> arrival <script")
    'Late arrival '
    """
    if text is None:
        return None
    return TAG_PATTERN.sub('', text)


def normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    return email.strip().lower()


def mask_email(text: Optional[str]) -> str:
    """'jane.doe@example.com' -> 'j***@example.com' for log lines."""
    if not text:
        return "***"
    return EMAIL_PATTERN.sub(lambda m: f"{m.group(1)}***@{m.group(2)}", text)
