"""Search keywords for products.

The storefront searches products with an array-contains lookup on the first
query token, so each product stores a bounded keyword set derived from its
name: whole tokens, token prefixes (typing-as-you-go), and adjacent-word
bigrams ("running shoes").
"""

import re

MAX_KEYWORDS = 100
MIN_PREFIX_LENGTH = 3
MIN_TOKEN_LENGTH = 2

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def tokenize(text: str | None) -> list[str]:
    """Lower-case alphanumeric tokens, in order."""
    if not text:
        return []
    return [t for t in _TOKEN_RE.findall(text.lower()) if len(t) >= MIN_TOKEN_LENGTH]


def build_search_keywords(name: str | None, limit: int = MAX_KEYWORDS) -> list[str]:
    """Compute the capped keyword set for a product name.

    Whole tokens come first, then bigrams, then prefixes, so truncation drops
    the least specific entries. Output is sorted for stable comparisons.
    """
    tokens = tokenize(name)
    if not tokens:
        return []

    ordered: list[str] = []
    seen: set[str] = set()

    def add(value: str) -> None:
        if value not in seen:
            seen.add(value)
            ordered.append(value)

    for token in tokens:
        add(token)
    for first, second in zip(tokens, tokens[1:]):
        add(f"{first} {second}")
    for token in tokens:
        for end in range(MIN_PREFIX_LENGTH, len(token)):
            add(token[:end])

    return sorted(ordered[:limit])
