"""Sync engine services.

Pure helpers (keys, change detection, promo codes, pricing, keywords) plus
the stateful pieces built on them: the record store, image cache, brand
lookup, pruning, reconciliation and the orchestrator.
"""
