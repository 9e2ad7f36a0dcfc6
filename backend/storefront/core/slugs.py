"""Slugs - URL-safe identifiers for products and categories."""

import re
import unicodedata
from collections.abc import Container

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """ASCII-fold, lower-case, collapse everything else into single hyphens."""
    folded = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    return _NON_ALNUM.sub("-", folded.lower()).strip("-")


def unique_slug(base: str, taken: Container[str]) -> str:
    """Return base, or base-2, base-3, ... whichever is not taken."""
    candidate = base
    suffix = 2
    while candidate in taken:
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate
