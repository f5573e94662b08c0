"""Data stores for persistence, caching and object storage.

Stores handle:
- PostgreSQL: engine, sessions, ORM base
- Redis: caching, locks, TTL policies
- Objects: content-addressed image storage (S3-compatible or local disk)

No sync/business logic in stores - that belongs in services.
"""
