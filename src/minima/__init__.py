"""Minima - resilience layer for the Minima hotel inventory client.

Error classification and recovery advice, retries with backoff, stock
conflict resolution, optimistic updates and session lifecycle management.
"""

__version__ = "0.1.0"
