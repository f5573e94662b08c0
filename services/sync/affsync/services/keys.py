"""Document key derivation.

Keys are deterministic so re-ingesting the same upstream record always lands
on the same document:
- Advertiser: "{network}-{network_id}"
- Offer: "{network}-{network_id}", else md5(link + network)
- Product: "{network}-{network_id}", else "{network}-{sku}", else md5(link + network)

"/" is not allowed inside keys (it breaks the admin advertiser URLs), so it is
replaced with "_".
"""

import hashlib
from enum import Enum


class EntityKind(str, Enum):
    """Synced collections."""

    ADVERTISERS = "advertisers"
    OFFERS = "offers"
    PRODUCTS = "products"


class KeyDerivationError(ValueError):
    pass


def _clean(value: object) -> str:
    return str(value).strip()


def network_key(network: str, identifier: object) -> str:
    """Key for a record with a network-provided identifier."""
    return f"{network}-{_clean(identifier)}".replace("/", "_")


def link_hash_key(link: str | None, network: str) -> str:
    """Key for a record without a stable id: md5 of link + network."""
    return hashlib.md5(f"{link or ''}{network}".encode()).hexdigest()


def advertiser_key(network: str, network_id: object) -> str:
    if network_id is None or not _clean(network_id):
        raise KeyDerivationError(f"Advertiser from {network} has no id")
    return network_key(network, network_id)


def offer_key(network: str, network_id: object | None, link: str | None) -> str:
    if network_id is not None and _clean(network_id):
        return network_key(network, network_id)
    if not link:
        raise KeyDerivationError(f"Offer from {network} has neither id nor link")
    return link_hash_key(link, network)


def product_key(network: str, network_id: object | None, sku: object | None, link: str | None) -> str:
    for identifier in (network_id, sku):
        if identifier is not None and _clean(identifier):
            return network_key(network, identifier)
    if not link:
        raise KeyDerivationError(f"Product from {network} has no id, sku or link")
    return link_hash_key(link, network)


def derive_key(kind: EntityKind, candidate: dict) -> str:
    """Derive the document key for a candidate document of the given kind."""
    network = candidate.get("network")
    if not network:
        raise KeyDerivationError("Candidate is missing 'network'")
    if kind == EntityKind.ADVERTISERS:
        return advertiser_key(network, candidate.get("network_id"))
    if kind == EntityKind.OFFERS:
        return offer_key(network, candidate.get("network_id"), candidate.get("link"))
    return product_key(network, candidate.get("network_id"), candidate.get("sku"), candidate.get("link"))
