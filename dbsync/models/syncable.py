"""Syncable model contract and default row serialization."""

from typing import Any

from sqlalchemy import inspect as sa_inspect


def model_to_dict(instance: Any) -> dict[str, Any]:
    """Dump the loaded column attributes of a mapped instance.

    Attributes that are not loaded (deferred or expired) are left out so
    that reading them never triggers a query from inside a flush. The
    primary key is always included.

    Args:
        instance: A SQLAlchemy mapped object.

    Returns:
        Mapping of attribute name to current value.
    """
    state = sa_inspect(instance)
    data = primary_key_data(instance)
    for attr in state.mapper.column_attrs:
        if attr.key in state.dict:
            data[attr.key] = state.dict[attr.key]
    return data


def primary_key_data(instance: Any) -> dict[str, Any]:
    """Return only the primary key attribute(s) of a mapped instance.

    Falls back to the identity key when a key attribute has been expired.
    """
    state = sa_inspect(instance)
    mapper = state.mapper
    identity = state.identity
    data = {}
    for index, column in enumerate(mapper.primary_key):
        key = mapper.get_property_by_column(column).key
        if key in state.dict:
            data[key] = state.dict[key]
        elif identity is not None:
            data[key] = identity[index]
        else:
            data[key] = None
    return data


class SyncableModel:
    """Interface for models that control their own sync representation.

    Not an ABC: ABCMeta conflicts with the declarative base metaclass.

    Example:
        class User(SyncableMixin, Base):
            __tablename__ = "users"
            __sync_hidden__ = ("password_hash",)
    """

    def get_syncable_data(self) -> dict[str, Any]:
        """Data that should be synchronized for this record.

        Returns:
            Field map used in place of the default column dump.
        """
        raise NotImplementedError

    def should_sync(self) -> bool:
        """Whether this record should be synchronized at all."""
        return True


class SyncableMixin(SyncableModel):
    """Default SyncableModel implementation for declarative models.

    Class attributes:
        __sync_hidden__: Attribute names never included in synced data.
        __sync_disabled__: Set to True to opt the model out of sync.
    """

    __sync_hidden__ = ()
    __sync_disabled__ = False

    def get_syncable_data(self) -> dict[str, Any]:
        data = model_to_dict(self)

        # Remove sensitive fields
        for name in self.__sync_hidden__:
            data.pop(name, None)

        return data

    def should_sync(self) -> bool:
        return not self.__sync_disabled__


def is_syncable(instance: Any) -> bool:
    """Check whether an instance provides custom sync data.

    Explicit SyncableModel subclasses qualify, as do objects that simply
    define a callable ``get_syncable_data``.
    """
    if isinstance(instance, SyncableModel):
        return True
    return callable(getattr(instance, "get_syncable_data", None))


def get_model_data(instance: Any) -> dict[str, Any]:
    """Build the field map forwarded for an insert or update."""
    if is_syncable(instance):
        return dict(instance.get_syncable_data())
    return model_to_dict(instance)
