"""Shared utility functions used across services and route modules."""
import math
import re
from datetime import datetime, timezone

from slugify import slugify

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
TAG_RE = re.compile(r"<[^>]*>")
WORDS_PER_MINUTE = 200
SLUG_MAX_LENGTH = 200


def utc_now_naive():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() if value else None


def clean_text(value, max_length=255):
    if value is None:
        return ''
    return str(value).strip()[:max_length]


def is_valid_email(value):
    return bool(EMAIL_RE.match(value or ''))


def generate_slug(title):
    """Lowercase ASCII words joined by single hyphens.

    Applying it to its own output returns the same value.
    """
    return slugify(clean_text(title, 1000), max_length=SLUG_MAX_LENGTH, word_boundary=True, save_order=True)


def strip_tags(value):
    return TAG_RE.sub(' ', value or '')


def count_words(text):
    return len(strip_tags(text).split())


def calculate_reading_time(text):
    minutes = max(1, math.ceil(count_words(text) / WORDS_PER_MINUTE))
    return f"{minutes} min read"
