"""Outbound sync of row changes.

Provides the HTTP client that filters, sanitizes and posts change records to
the configured sync endpoint.
"""

from .sync_client import Operation, SyncClient, SyncPayload

__all__ = ["Operation", "SyncClient", "SyncPayload"]
