"""Shared key-value store adapters.

Rate limit records and the cache health probe both go through this
interface, so Redis can be swapped for the in-memory store in local
development and tests without touching callers.
"""
