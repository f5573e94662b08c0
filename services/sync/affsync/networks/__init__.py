"""Affiliate network adapters.

Networks are synced in registry order: Rakuten, CJ, AWIN, Pepperjam.
"""

from affsync.networks.awin import AwinAdapter
from affsync.networks.base import (
    AdvertiserRecord,
    NetworkAdapter,
    OfferRecord,
    ProductRecord,
    SyncContext,
)
from affsync.networks.cj import CJAdapter
from affsync.networks.pepperjam import PepperjamAdapter
from affsync.networks.rakuten import RakutenAdapter

ADAPTER_CLASSES: tuple[type[NetworkAdapter], ...] = (
    RakutenAdapter,
    CJAdapter,
    AwinAdapter,
    PepperjamAdapter,
)

NETWORKS: tuple[str, ...] = tuple(cls.network for cls in ADAPTER_CLASSES)


def build_adapters() -> dict[str, NetworkAdapter]:
    """One adapter per network, configured from settings."""
    return {cls.network: cls() for cls in ADAPTER_CLASSES}


__all__ = [
    "ADAPTER_CLASSES",
    "NETWORKS",
    "AdvertiserRecord",
    "AwinAdapter",
    "CJAdapter",
    "NetworkAdapter",
    "OfferRecord",
    "PepperjamAdapter",
    "ProductRecord",
    "RakutenAdapter",
    "SyncContext",
    "build_adapters",
]
