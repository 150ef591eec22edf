"""Validation of click-tracking redirect targets.

Only absolute http(s) URLs are accepted so the click endpoint cannot be
used as an open redirect to other schemes. Purely syntactic, no network.
"""
import re
from typing import Optional
from urllib.parse import quote, unquote, urlsplit

from pydantic import HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from little_bell.exceptions import ValidationError

ALLOWED_SCHEMES = ("http", "https")
MAX_URL_LENGTH = 2083

# Whitespace, control characters and backslashes are never valid in a target
_UNSAFE_CHARS = re.compile(r"[\x00-\x20\x7f\\]")

_http_url = TypeAdapter(HttpUrl)


def resolve(raw: Optional[str]) -> str:
    """Percent-decode a raw ``url`` query value and validate the result."""
    if raw is None or not raw.strip():
        raise ValidationError("Missing redirect URL")
    try:
        decoded = unquote(raw, errors="strict")
    except UnicodeDecodeError as exc:
        raise ValidationError("Redirect URL is not valid percent-encoded UTF-8", {"url": raw}) from exc
    return validate(decoded)


def validate(url: Optional[str]) -> str:
    """Check that ``url`` is an absolute http(s) URL and return it unchanged."""
    if not url:
        raise ValidationError("Missing redirect URL")
    if len(url) > MAX_URL_LENGTH:
        raise ValidationError("Redirect URL is too long", {"max_length": MAX_URL_LENGTH})
    if _UNSAFE_CHARS.search(url):
        raise ValidationError("Redirect URL contains whitespace or control characters", {"url": url})

    try:
        parts = urlsplit(url)
        parts.port  # raises ValueError for a non-numeric or out of range port
    except ValueError as exc:
        raise ValidationError("Redirect URL is malformed", {"url": url}) from exc

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise ValidationError("Redirect URL must use http or https", {"scheme": parts.scheme})
    if not parts.netloc or not parts.hostname:
        raise ValidationError("Redirect URL must be absolute", {"url": url})

    try:
        _http_url.validate_python(url)
    except PydanticValidationError as exc:
        raise ValidationError("Redirect URL is malformed", {"url": url}) from exc

    return url


def encode(url: str) -> str:
    """Percent-encode every reserved character; the inverse of ``resolve``."""
    return quote(url, safe="")
