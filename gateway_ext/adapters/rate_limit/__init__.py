"""Rate limiting adapters.

The limiter keeps no state in process memory: every decision reads and
writes one record in the shared key-value store, so limits hold across
workers and instances that share the same store.
"""
