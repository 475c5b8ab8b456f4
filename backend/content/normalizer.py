"""
Content normalization helpers.

Classify received text and derive deep-link URL schemes that open the
matching native app on the phone instead of the browser.
"""

import re

_YOUTUBE_RE = re.compile(
    r"^(https?://)?(www\.)?(youtube\.com|youtu\.be)/.+", re.IGNORECASE
)
_REDDIT_RE = re.compile(
    r"^(https?://)?(www\.)?(reddit\.com|old\.reddit\.com)/.+", re.IGNORECASE
)
_SCHEME_PREFIX_RE = re.compile(r"^https?://", re.IGNORECASE)


def is_youtube_url(text: str) -> bool:
    return bool(text) and _YOUTUBE_RE.match(text.strip()) is not None


def is_reddit_url(text: str) -> bool:
    return bool(text) and _REDDIT_RE.match(text.strip()) is not None


def is_web_link(text: str) -> bool:
    """True for text that starts with an http(s) scheme."""
    return bool(text) and _SCHEME_PREFIX_RE.match(text.strip()) is not None


def generate_url_scheme(url: str, scheme_name: str) -> str:
    """``https://youtu.be/x`` + ``youtube`` -> ``youtube://youtu.be/x``."""
    rest = _SCHEME_PREFIX_RE.sub("", url.strip(), count=1)
    return f"{scheme_name}://{rest}"


def derive_url_scheme(text: str) -> str | None:
    """Return the deep link for a recognized URL, or None for anything else."""
    if is_youtube_url(text):
        return generate_url_scheme(text, "youtube")
    if is_reddit_url(text):
        return generate_url_scheme(text, "reddit")
    return None
