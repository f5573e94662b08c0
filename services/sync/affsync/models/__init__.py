"""SQLAlchemy ORM models.

Models represent database tables:
- advertisers: Brands per network, with denormalized counters
- offers: Coupons/promotions per network
- products: Catalog items per network
- sync_logs: Append-only history of completed sync runs
- settings: Operator settings blob
"""

from affsync.models.advertiser import Advertiser
from affsync.models.offer import Offer
from affsync.models.product import Product
from affsync.models.setting import Setting
from affsync.models.sync_log import SyncLog

__all__ = ["Advertiser", "Offer", "Product", "Setting", "SyncLog"]
