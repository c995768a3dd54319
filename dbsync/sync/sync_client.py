"""Sync client that forwards row changes to the sync endpoint.

Each change is filtered by table, stripped of denied fields and sent as a
single HTTP POST. There is no retry or queueing: a failed send is logged and
dropped.
"""

import base64
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

import httpx

from ..config import SyncConfig

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Kind of write being forwarded."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class SyncPayload:
    """Body of one sync request."""

    table_name: str
    operation: Operation
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for transport."""
        return {
            "table_name": self.table_name,
            "operation": self.operation.value,
            "data": self.data,
        }

    def to_json(self) -> str:
        """Serialize to JSON, stringifying values json can't encode."""
        return json.dumps(self.to_dict(), default=_json_default)


def _json_default(value: Any) -> Any:
    """Fallback encoder for column values."""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, (set, frozenset)):
        return list(value)
    return str(value)


class SyncClient:
    """Client posting change records to the sync endpoint.

    Configuration is read from the SyncConfig on every send, so changes
    made to that object (or a new one passed to ``reload``) take effect for
    the next record.
    """

    def __init__(
        self,
        config: SyncConfig,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the sync client.

        Args:
            config: Sync settings (endpoint, timeout, filters).
            transport: Optional httpx transport, mainly for tests.
        """
        self.config = config
        self._transport = transport
        self._client: httpx.Client | None = None
        self._client_timeout: float | None = None

    def reload(self, config: SyncConfig) -> None:
        """Swap in a new configuration snapshot.

        Args:
            config: Replacement sync settings.
        """
        self.config = config
        logger.info(f"Sync endpoint set to {config.endpoint}")

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client for the current timeout."""
        timeout = self.config.timeout
        if self._client is not None and self._client_timeout != timeout:
            self.close()
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(timeout),
                transport=self._transport,
            )
            self._client_timeout = timeout
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "SyncClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def should_send(self, table_name: str) -> bool:
        """Apply the enabled flag and table allow/deny lists.

        Args:
            table_name: Table the change belongs to.

        Returns:
            True if a request should be made for this table.
        """
        if not self.config.enabled:
            return False

        # Skip if table is in skip list
        if table_name in self.config.skip_tables:
            return False

        # Only sync specified tables if configured
        if self.config.tables and table_name not in self.config.tables:
            return False

        return True

    def sanitize(self, data: dict[str, Any]) -> dict[str, Any]:
        """Remove denied fields before sending.

        Args:
            data: Field map of the affected row.

        Returns:
            New dict without any key listed in skip_fields.
        """
        skip_fields = set(self.config.skip_fields)
        return {key: value for key, value in data.items() if key not in skip_fields}

    def send(
        self,
        table_name: str,
        operation: Operation | str,
        data: dict[str, Any],
    ) -> bool:
        """Send one change record to the sync endpoint.

        Filtered-out records count as success since there is nothing to do.

        Args:
            table_name: Table the change belongs to.
            operation: INSERT, UPDATE or DELETE.
            data: Field map of the affected row.

        Returns:
            True on success or when filtered out, False if the send failed.
        """
        if not self.should_send(table_name):
            return True

        operation = Operation(operation)
        payload = SyncPayload(
            table_name=table_name,
            operation=operation,
            data=self.sanitize(data),
        )

        try:
            response = self._get_client().post(
                self.config.endpoint,
                content=payload.to_json(),
                headers={"Content-Type": "application/json"},
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Sync error: {table_name} - {operation.value} - {e}")
            return False

        if response.is_success:
            logger.debug(f"Sync record sent: {table_name} - {operation.value}")
            return True

        logger.warning(
            f"Sync failed: {table_name} - {operation.value} - "
            f"HTTP {response.status_code}"
        )
        return False

    def record_insert(self, table_name: str, data: dict[str, Any]) -> bool:
        """Record insert operation."""
        return self.send(table_name, Operation.INSERT, data)

    def record_update(self, table_name: str, data: dict[str, Any]) -> bool:
        """Record update operation."""
        return self.send(table_name, Operation.UPDATE, data)

    def record_delete(self, table_name: str, data: dict[str, Any]) -> bool:
        """Record delete operation."""
        return self.send(table_name, Operation.DELETE, data)

    def get_sync_status(self) -> dict[str, Any]:
        """Get current client settings.

        Returns:
            Dictionary with the settings that drive send().
        """
        return {
            "enabled": self.config.enabled,
            "endpoint": self.config.endpoint,
            "timeout": self.config.timeout,
            "tables": list(self.config.tables),
            "skip_tables": list(self.config.skip_tables),
            "skip_fields": list(self.config.skip_fields),
        }
