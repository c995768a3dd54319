"""Model-side contract for customizing what gets synchronized."""

from .syncable import (
    SyncableMixin,
    SyncableModel,
    get_model_data,
    is_syncable,
    model_to_dict,
    primary_key_data,
)

__all__ = [
    "SyncableMixin",
    "SyncableModel",
    "get_model_data",
    "is_syncable",
    "model_to_dict",
    "primary_key_data",
]
