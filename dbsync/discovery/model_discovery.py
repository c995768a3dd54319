"""Model discovery for mapped SQLAlchemy classes."""

import hashlib
import importlib
import importlib.util
import inspect
import logging
import sys
from pathlib import Path
from types import ModuleType
from typing import Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapper

from ..config import DiscoveryConfig

logger = logging.getLogger(__name__)


def model_descriptor(cls: type) -> str:
    """Fully qualified name used to identify a model class."""
    return f"{cls.__module__}.{cls.__qualname__}"


def resolve_model(descriptor: str) -> type:
    """Import and return the class named by a model descriptor.

    Args:
        descriptor: Dotted name like "app.models.user.User".

    Returns:
        The class object.

    Raises:
        ImportError: If no module prefix of the descriptor can be imported.
        AttributeError: If the class is missing from the module.
    """
    parts = descriptor.split(".")
    # Walk back from the longest module prefix so nested classes resolve
    for split in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:split])
        try:
            obj: Any = importlib.import_module(module_name)
        except ImportError:
            continue
        for attr in parts[split:]:
            obj = getattr(obj, attr)
        if not inspect.isclass(obj):
            raise TypeError(f"{descriptor} is not a class")
        return obj
    raise ImportError(f"Cannot import module for {descriptor}")


def table_name_for(cls: type) -> str:
    """Name of the table a mapped class writes to."""
    mapper = sa_inspect(cls)
    return mapper.local_table.name


def is_model_class(obj: Any, base: type | None = None) -> bool:
    """Check if an object is a concrete mapped model class.

    Args:
        obj: Object to test.
        base: Optional base class the model must inherit from.

    Returns:
        True for mapped, non-abstract classes (subclassing base if given).
    """
    if not inspect.isclass(obj) or inspect.isabstract(obj):
        return False

    # Declarative abstract bases are not mapped themselves
    if obj.__dict__.get("__abstract__", False):
        return False

    if base is not None and (obj is base or not issubclass(obj, base)):
        return False

    mapper = sa_inspect(obj, raiseerr=False)
    return isinstance(mapper, Mapper) and mapper.class_ is obj


class ModelDiscovery:
    """Finds mapped model classes from configured sources.

    Sources, all optional:
    - Directories scanned recursively; each module is imported and its
      classes inspected (several models per file are fine).
    - Explicit dotted class names from config.
    - The declarative registry of the configured base model.
    """

    def __init__(self, config: DiscoveryConfig) -> None:
        """Initialize model discovery.

        Args:
            config: Discovery settings (paths, explicit models, base).
        """
        self.config = config
        self._base: type | None = None
        self._base_resolved = False

    @property
    def base_model(self) -> type | None:
        """Resolved base model class, or None if not configured."""
        if not self._base_resolved:
            self._base_resolved = True
            if self.config.base_model:
                try:
                    self._base = resolve_model(self.config.base_model)
                except Exception as e:
                    logger.error(
                        f"Cannot resolve base model {self.config.base_model}: {e}"
                    )
        return self._base

    def discover(self) -> set[str]:
        """Discover all model descriptors.

        Returns:
            Set of fully qualified model class names.
        """
        models: set[str] = set()

        for path_str in self.config.model_paths:
            path = Path(path_str).expanduser().resolve()
            if path.is_dir():
                models.update(self._scan_directory(path))
            else:
                logger.debug(f"Model path is not a directory: {path}")

        # Also check for explicitly defined models
        for name in self.config.models:
            try:
                cls = resolve_model(name)
            except (Exception, SystemExit) as e:
                logger.debug(f"Skipping configured model {name}: {e}")
                continue
            if is_model_class(cls, self.base_model):
                models.add(model_descriptor(cls))
            else:
                logger.debug(f"Configured model {name} is not a mapped model")

        if self.base_model is not None:
            models.update(self._scan_registry(self.base_model))

        logger.info(f"Discovered {len(models)} models")
        return models

    def _scan_registry(self, base: type) -> set[str]:
        """Collect models already mapped on a declarative base's registry."""
        registry = getattr(base, "registry", None)
        if registry is None:
            return set()

        return {
            model_descriptor(mapper.class_)
            for mapper in registry.mappers
            if is_model_class(mapper.class_, base)
        }

    def _scan_directory(self, directory: Path) -> set[str]:
        """Scan a directory tree for model modules.

        Args:
            directory: Directory to scan.

        Returns:
            Descriptors of the models defined under the directory.
        """
        models: set[str] = set()

        for file_path in sorted(directory.rglob("*.py")):
            if "__pycache__" in file_path.parts:
                continue

            module = self._load_module(file_path)
            if module is None:
                continue

            models.update(self._discover_in_module(module))

        return models

    def _load_module(self, file_path: Path) -> ModuleType | None:
        """Import a model module, reusing it if already imported.

        Files that are not importable under their own name are loaded from
        disk under a name derived from their directory, so same-named files
        in different directories stay separate.

        Args:
            file_path: Path to the Python file.

        Returns:
            The module, or None if it could not be loaded.
        """
        module_name = module_name_for(file_path)
        if not module_name:
            return None

        module = sys.modules.get(module_name)
        if module is not None and _is_loaded_from(module, file_path):
            return module

        if module is None:
            try:
                module = importlib.import_module(module_name)
            except ImportError:
                module = None
            except (Exception, SystemExit) as e:
                logger.debug(f"Failed to import {module_name}: {e}")
                return None

            if module is not None and _is_loaded_from(module, file_path):
                return module

        # Not importable by name: load from the file location
        fallback_name = standalone_module_name(file_path)
        module = sys.modules.get(fallback_name)
        if module is not None and _is_loaded_from(module, file_path):
            return module

        try:
            spec = importlib.util.spec_from_file_location(fallback_name, file_path)
            if spec is None or spec.loader is None:
                logger.debug(f"Cannot load module spec from {file_path}")
                return None

            module = importlib.util.module_from_spec(spec)
            sys.modules[fallback_name] = module
            spec.loader.exec_module(module)
            return module
        except (Exception, SystemExit) as e:
            sys.modules.pop(fallback_name, None)
            logger.debug(f"Failed to load {file_path}: {e}")
            return None

    def _discover_in_module(self, module: ModuleType) -> set[str]:
        """Collect model classes defined in a loaded module."""
        found = set()
        for _name, obj in inspect.getmembers(module, inspect.isclass):
            # Only classes defined here, not imported ones
            if obj.__module__ != module.__name__:
                continue

            if is_model_class(obj, self.base_model):
                found.add(model_descriptor(obj))
                logger.debug(f"Discovered model: {model_descriptor(obj)}")

        return found


def module_name_for(file_path: Path) -> str:
    """Dotted module name for a file, following enclosing packages.

    Args:
        file_path: Path to a ``.py`` file.

    Returns:
        Name such as "app.models.user", or "" for an unnamed file.
    """
    parts = [] if file_path.stem == "__init__" else [file_path.stem]
    parent = file_path.parent
    while (parent / "__init__.py").exists():
        parts.insert(0, parent.name)
        if parent.parent == parent:
            break
        parent = parent.parent
    return ".".join(parts)


def standalone_module_name(file_path: Path) -> str:
    """Module name for a file loaded directly from disk.

    Args:
        file_path: Path to a ``.py`` file.

    Returns:
        Name such as "dbsync_models_user_3f9a0c12".
    """
    digest = hashlib.sha1(str(file_path.resolve().parent).encode()).hexdigest()[:8]
    return f"dbsync_models_{file_path.stem}_{digest}"


def _is_loaded_from(module: ModuleType, file_path: Path) -> bool:
    module_file = getattr(module, "__file__", None)
    if not module_file:
        return False
    return Path(module_file).resolve() == file_path.resolve()
