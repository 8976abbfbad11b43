# libs/regexes.py
"""Single point of truth for the slash-command text patterns and a helper
that turns free text such as ``"ChatGPT Plus 20,000원"`` into
:class:`libs.models.ParsedInput`.

A new input format only needs a pattern added to the table below; patterns
are tried in order and the first successful one wins.
"""
from __future__ import annotations

import re
from typing import Optional

from pydantic import ValidationError

from libs.models import ParsedInput

# ---------------------------------------------------------------------------
# Regex patterns
# ---------------------------------------------------------------------------
ITEM_RE = r"(?P<item>.+?)"
CURRENCY_WORDS = ("달러", "원", "USD", "KRW")
CURRENCY_RE = "|".join(CURRENCY_WORDS)

# --- 1. Amount with optional "$", thousands separators and currency word ----
AMOUNT_WITH_CURRENCY_RE = re.compile(
    rf"""
    ^{ITEM_RE}\s+
    (?P<amount>\$?[\d,]+(?:\.\d{{2}})?)\s*
    (?:{CURRENCY_RE})?$
    """,
    re.VERBOSE | re.ASCII,
)

# --- 2. Plain decimal number --------------------------------------------------
PLAIN_AMOUNT_RE = re.compile(
    rf"""
    ^{ITEM_RE}\s+
    (?P<amount>\d+(?:\.\d{{2}})?)\s*$
    """,
    re.VERBOSE | re.ASCII,
)

_PATTERNS: list[re.Pattern[str]] = [
    AMOUNT_WITH_CURRENCY_RE,
    PLAIN_AMOUNT_RE,
]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def parse_purchase_text(text: str) -> Optional[ParsedInput]:
    """Split *text* into an item name and a trailing amount.

    Returns
    -------
    ParsedInput | None
        * Instance of ParsedInput if one of the patterns matched.
        * `None` when nothing matched or the amount is not a number.
    """
    text = text.strip()
    for pattern in _PATTERNS:
        match = pattern.match(text)
        if not match:
            continue
        amount = parse_amount(match["amount"])
        if amount is None:
            continue
        try:
            return ParsedInput(item=match["item"], amount=amount)
        except ValidationError:
            continue
    return None


def parse_amount(raw: str) -> Optional[float]:
    """``"$20,000.50"`` → ``20000.5``; ``None`` when nothing numeric remains."""
    cleaned = re.sub(r"[$,]", "", raw).strip()
    try:
        return float(cleaned)
    except ValueError:
        return None


__all__ = [
    "CURRENCY_WORDS",
    "parse_amount",
    "parse_purchase_text",
]
