"""Forward SQLAlchemy model changes to an external sync endpoint."""

from .config import Config, ConfigError, DiscoveryConfig, SyncConfig, load_config
from .discovery import ModelDiscovery
from .models import SyncableMixin, SyncableModel
from .registrar import AutoSyncRegistrar, setup_sync
from .sync import Operation, SyncClient, SyncPayload

__version__ = "0.1.0"

__all__ = [
    "AutoSyncRegistrar",
    "Config",
    "ConfigError",
    "DiscoveryConfig",
    "ModelDiscovery",
    "Operation",
    "SyncClient",
    "SyncConfig",
    "SyncPayload",
    "SyncableMixin",
    "SyncableModel",
    "load_config",
    "setup_sync",
]
