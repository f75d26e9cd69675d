"""URL-safe slugs for tenant names."""

from __future__ import annotations

import re
import unicodedata

from uuid_extensions import uuid7

from src.core.constants import SLUG_FALLBACK_PREFIX, SLUG_SEPARATOR

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def generate_slug(name: str) -> str:
    """Lower-case, strip accents, collapse non-alphanumerics into one separator.

    >>> generate_slug("  Esporte Clube São José!! ")
    'esporte-clube-sao-jose'

    Names with nothing usable left (``""``, ``"!!!"``, ``"東京"``) get a
    generated ``club-<id>`` slug instead.
    """
    decomposed = unicodedata.normalize("NFD", name or "")
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    slug = _NON_ALNUM.sub(SLUG_SEPARATOR, ascii_only.lower()).strip(SLUG_SEPARATOR)
    if slug:
        return slug
    return f"{SLUG_FALLBACK_PREFIX}{SLUG_SEPARATOR}{uuid7().hex[-12:]}"
