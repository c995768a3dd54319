"""Attach sync listeners to mapped model classes.

The registrar owns the set of registered models. Create one at application
startup (``setup_sync`` does this) and keep a reference to it for status
queries or later registrations.
"""

import logging
from typing import Any, Callable

from sqlalchemy import event
from sqlalchemy.orm import object_session

from .config import Config
from .discovery import (
    ModelDiscovery,
    is_model_class,
    model_descriptor,
    resolve_model,
)
from .models import get_model_data, primary_key_data
from .sync import Operation, SyncClient

logger = logging.getLogger(__name__)

# Mapper event name -> operation forwarded when it fires
MAPPER_EVENTS: dict[str, Operation] = {
    "after_insert": Operation.INSERT,
    "after_update": Operation.UPDATE,
    "after_delete": Operation.DELETE,
}


class AutoSyncRegistrar:
    """Registers model classes so their writes are forwarded to SyncClient."""

    def __init__(self, client: SyncClient, discovery: ModelDiscovery) -> None:
        """Initialize the registrar.

        Args:
            client: Sync client that receives each change.
            discovery: Source of model descriptors for register_all().
        """
        self.client = client
        self.discovery = discovery
        self._registered: list[str] = []
        self._listeners: dict[str, tuple[type, dict[str, Callable]]] = {}

    def register_all(self) -> None:
        """Register every discovered model."""
        for descriptor in sorted(self.discovery.discover()):
            self.register(descriptor)

        logger.info(
            f"Database sync registered for {len(self._registered)} models"
        )

    def register(self, model: str | type) -> None:
        """Register a single model for sync.

        Registering an already registered model does nothing. If attaching
        the listeners fails the model stays unregistered, so a later call
        can retry.

        Args:
            model: Model descriptor or the model class itself.
        """
        descriptor = model if isinstance(model, str) else model_descriptor(model)

        if descriptor in self._registered:
            return

        try:
            model_class = resolve_model(model) if isinstance(model, str) else model
            if not is_model_class(model_class):
                raise TypeError(f"{descriptor} is not a mapped model class")
            self._attach_listeners(descriptor, model_class)
        except Exception as e:
            logger.error(f"Failed to register sync for model {descriptor}: {e}")
            return

        self._registered.append(descriptor)
        logger.debug(f"Registered sync for model: {descriptor}")

    def unregister(self, model: str | type) -> None:
        """Detach the sync listeners from a registered model.

        Args:
            model: Model descriptor or the model class itself.
        """
        descriptor = model if isinstance(model, str) else model_descriptor(model)
        entry = self._listeners.get(descriptor)
        if entry is None:
            return

        # Drop each listener record only after it is detached
        model_class, listeners = entry
        for event_name in list(listeners):
            event.remove(model_class, event_name, listeners[event_name])
            del listeners[event_name]

        del self._listeners[descriptor]
        self._registered.remove(descriptor)
        logger.debug(f"Unregistered sync for model: {descriptor}")

    def unregister_all(self) -> None:
        """Detach listeners from every registered model."""
        for descriptor in list(self._registered):
            try:
                self.unregister(descriptor)
            except Exception as e:
                logger.error(
                    f"Error unregistering {descriptor}: {e}", exc_info=True
                )

    def _attach_listeners(self, descriptor: str, model_class: type) -> None:
        """Listen for insert/update/delete on one mapped class.

        Raises:
            sqlalchemy.exc.InvalidRequestError: If the class is not mapped.
        """
        listeners: dict[str, Callable] = {}
        try:
            for event_name, operation in MAPPER_EVENTS.items():
                listener = self._make_listener(operation)
                event.listen(model_class, event_name, listener)
                listeners[event_name] = listener
        except Exception:
            # Leave nothing half-attached
            for event_name, listener in listeners.items():
                event.remove(model_class, event_name, listener)
            raise

        self._listeners[descriptor] = (model_class, listeners)

    def _make_listener(self, operation: Operation) -> Callable:
        def listener(mapper: Any, connection: Any, target: Any) -> None:
            self._handle(operation, mapper, target)

        return listener

    def _handle(self, operation: Operation, mapper: Any, target: Any) -> None:
        """Forward one change; never raises into the flush."""
        try:
            if self.client.config.respect_should_sync and not _wants_sync(target):
                logger.debug(
                    f"Skipping {operation.value} for {type(target).__name__}: "
                    f"should_sync() is False"
                )
                return

            # after_update also fires for rows with only relationship changes
            if operation is Operation.UPDATE and not _has_column_changes(target):
                return

            table_name = mapper.local_table.name
            if operation is Operation.DELETE:
                data = primary_key_data(target)
            else:
                data = get_model_data(target)

            self.client.send(table_name, operation, data)
        except Exception as e:
            logger.error(
                f"Sync handler error for {type(target).__name__} "
                f"({operation.value}): {e}",
                exc_info=True,
            )

    @property
    def registered_models(self) -> list[str]:
        """Registered model descriptors, in registration order."""
        return list(self._registered)

    def is_registered(self, model: str | type) -> bool:
        descriptor = model if isinstance(model, str) else model_descriptor(model)
        return descriptor in self._registered

    def get_status(self) -> dict[str, Any]:
        """Get current registrar status.

        Returns:
            Dict with sync settings and registered models.
        """
        return {
            "enabled": self.client.config.enabled,
            "endpoint": self.client.config.endpoint,
            "registered_count": len(self._registered),
            "registered_models": self.registered_models,
        }


def _has_column_changes(target: Any) -> bool:
    session = object_session(target)
    if session is None:
        return True
    return session.is_modified(target, include_collections=False)


def _wants_sync(target: Any) -> bool:
    should_sync = getattr(target, "should_sync", None)
    if callable(should_sync):
        return bool(should_sync())
    return True


def setup_sync(config: Config, transport: Any = None) -> AutoSyncRegistrar:
    """Build the sync components and register models if sync is enabled.

    Args:
        config: Loaded configuration.
        transport: Optional httpx transport for the sync client.

    Returns:
        The registrar, owning the registered-model set.
    """
    client = SyncClient(config.sync, transport=transport)
    discovery = ModelDiscovery(config.discovery)
    registrar = AutoSyncRegistrar(client, discovery)

    if config.sync.enabled:
        registrar.register_all()
    else:
        logger.info("Database sync disabled, no models registered")

    return registrar
