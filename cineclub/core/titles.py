from __future__ import annotations

import re

# Colon, underscore and the hyphen/dash family.
_STRIP_CHARS = re.compile(r"[:_\-‐‑‒–—―]")
_TRAILING_PARENTHETICAL = re.compile(r"\s*\([^()]*\)\s*$")
_WHITESPACE = re.compile(r"\s+")


def normalize_title(raw: str | None) -> str:
    """Fold a free-text title into a comparison key.

    ``"The Thing (1982)"`` and ``"the   thing"`` both become ``"the thing"``.
    Only the last parenthetical is treated as a disambiguator; any other
    brackets are dropped as plain punctuation so a second pass is a no-op.
    An empty result means "no key" and must never be used for matching.
    """
    if not raw:
        return ""
    text = str(raw).lower().strip()
    text = _TRAILING_PARENTHETICAL.sub("", text)
    text = text.replace("(", " ").replace(")", " ")
    text = _STRIP_CHARS.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()
