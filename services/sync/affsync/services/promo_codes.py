"""Promo code normalization.

Networks fill the coupon-code field with placeholders when a deal needs no
code ("N/A", "No Code Necessary", "none"). Those must never count as a real
code. When the field is a placeholder, the code is often embedded in the
description instead ("Use code SAVE20 at checkout").

Rules:
- Normalize: trim, collapse whitespace, compare case-insensitively
- Reject known sentinels and anything phrased as "no code ..."
- Real codes are 3-30 chars of letters/digits/dash/underscore with at least
  one letter or digit
"""

import re

SENTINEL_CODES = frozenset(
    {
        "",
        "-",
        "--",
        "n/a",
        "na",
        "n.a.",
        "none",
        "null",
        "nil",
        "undefined",
        "no code",
        "no code required",
        "no code needed",
        "no code necessary",
        "no coupon code",
        "no coupon code required",
        "no coupon needed",
        "no promo code",
        "no promo code required",
        "not required",
        "not needed",
        "code not required",
        "see site",
        "see website",
        "see details",
        "click to reveal",
        "auto applied",
        "auto-applied",
        "automatically applied",
        "no voucher code",
        "no voucher required",
    }
)

_WHITESPACE_RE = re.compile(r"\s+")
_CODE_SHAPE_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{2,29}$")
_NO_CODE_RE = re.compile(r"^no\b.*\bcode\b", re.IGNORECASE)

# "use code SAVE20", "promo code: SAVE20", "coupon code 'SAVE20'", "with code SAVE-20"
# The keyword is case-insensitive; the code itself must be upper-case/digits so
# that prose like "no code required" never yields "required".
_EMBEDDED_CODE_RE = re.compile(
    r"(?i:\b(?:promo|coupon|discount|voucher|offer)?\s*code)\s*[:\-]?\s*[\"'“”]?([A-Z0-9][A-Z0-9_-]{2,29})\b"
)


def normalize_code(code: str | None) -> str:
    """Trim and collapse whitespace."""
    if code is None:
        return ""
    return _WHITESPACE_RE.sub(" ", str(code)).strip()


def is_real_code(code: str | None) -> bool:
    """Check whether a coupon-code field holds a redeemable code."""
    normalized = normalize_code(code)
    lowered = normalized.lower()
    if lowered in SENTINEL_CODES:
        return False
    if _NO_CODE_RE.match(lowered):
        return False
    if not _CODE_SHAPE_RE.match(normalized):
        return False
    return any(ch.isalnum() for ch in normalized)


def extract_code_from_text(text: str | None) -> str | None:
    """Find a code embedded in free text (e.g. "Use code SAVE20 for 20% off")."""
    if not text:
        return None
    for match in _EMBEDDED_CODE_RE.finditer(text):
        candidate = match.group(1)
        if is_real_code(candidate):
            return candidate
    return None


def effective_code(code: str | None, description: str | None = None) -> str | None:
    """Real code for an offer: the normalized code field, else one from the description."""
    if is_real_code(code):
        return normalize_code(code)
    return extract_code_from_text(description)
