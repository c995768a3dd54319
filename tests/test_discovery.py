"""Tests for model discovery."""

import textwrap
import uuid
from collections import OrderedDict
from pathlib import Path

import pytest

from dbsync.config import DiscoveryConfig
from dbsync.discovery import (
    ModelDiscovery,
    is_model_class,
    model_descriptor,
    module_name_for,
    resolve_model,
    standalone_module_name,
    table_name_for,
)
from sample_models import Base, Comment, NotAModel, Timestamped, User


def _write(path: Path, source: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(source))


@pytest.fixture
def app_package(tmp_path, monkeypatch):
    """Create an importable application package with a models directory.

    Returns:
        Tuple of (models_dir, package_name).
    """
    name = f"app_{uuid.uuid4().hex[:8]}"
    root = tmp_path / name

    _write(root / "__init__.py", "")
    _write(
        root / "db.py",
        """
        from sqlalchemy.orm import DeclarativeBase


        class Base(DeclarativeBase):
            pass
        """,
    )
    _write(root / "models" / "__init__.py", "")
    _write(
        root / "models" / "user.py",
        f"""
        from abc import ABC, abstractmethod

        from sqlalchemy.orm import Mapped, mapped_column

        from {name}.db import Base


        class Record(Base):
            __abstract__ = True

            id: Mapped[int] = mapped_column(primary_key=True)


        class User(Record):
            __tablename__ = "users"

            name: Mapped[str]


        class Helper:
            pass


        class Exporter(ABC):
            @abstractmethod
            def export(self):
                pass
        """,
    )
    _write(
        root / "models" / "shop" / "__init__.py",
        "",
    )
    _write(
        root / "models" / "shop" / "catalog.py",
        f"""
        from sqlalchemy.orm import Mapped, mapped_column

        from {name}.db import Base


        class Product(Base):
            __tablename__ = "products"

            id: Mapped[int] = mapped_column(primary_key=True)


        class Order(Base):
            __tablename__ = "orders"

            id: Mapped[int] = mapped_column(primary_key=True)
        """,
    )
    _write(root / "models" / "broken.py", "raise RuntimeError('cannot import')\n")
    _write(root / "models" / "README.txt", "class Fake: pass\n")

    monkeypatch.syspath_prepend(str(tmp_path))
    return root / "models", name


class TestModelHelpers:
    """Tests for descriptor and class helpers."""

    def test_model_descriptor(self):
        assert model_descriptor(User) == "sample_models.User"

    def test_resolve_model(self):
        assert resolve_model("sample_models.User") is User

    def test_resolve_missing_module(self):
        with pytest.raises(ImportError):
            resolve_model("no_such_module_xyz.Model")

    def test_resolve_missing_class(self):
        with pytest.raises(AttributeError):
            resolve_model("sample_models.Missing")

    def test_table_name_for(self):
        assert table_name_for(User) == "users"
        assert table_name_for(Comment) == "comments"

    def test_is_model_class(self):
        assert is_model_class(User) is True
        assert is_model_class(Comment) is True

    def test_is_model_class_rejects_non_models(self):
        assert is_model_class(Base) is False
        assert is_model_class(Timestamped) is False
        assert is_model_class(NotAModel) is False
        assert is_model_class(OrderedDict) is False
        assert is_model_class(User(id=1)) is False

    def test_is_model_class_with_base(self):
        assert is_model_class(User, Base) is True
        assert is_model_class(User, NotAModel) is False

    def test_module_name_for(self, app_package):
        models_dir, name = app_package

        assert module_name_for(models_dir / "user.py") == f"{name}.models.user"
        assert module_name_for(models_dir / "__init__.py") == f"{name}.models"

    def test_module_name_for_standalone(self, tmp_path):
        assert module_name_for(tmp_path / "thing.py") == "thing"


class TestModelDiscovery:
    """Tests for ModelDiscovery.discover()."""

    def test_discovers_models_in_paths(self, app_package):
        models_dir, name = app_package
        discovery = ModelDiscovery(DiscoveryConfig(model_paths=[str(models_dir)]))

        models = discovery.discover()

        assert models == {
            f"{name}.models.user.User",
            f"{name}.models.shop.catalog.Product",
            f"{name}.models.shop.catalog.Order",
        }

    def test_skips_abstract_and_plain_classes(self, app_package):
        models_dir, name = app_package
        discovery = ModelDiscovery(DiscoveryConfig(model_paths=[str(models_dir)]))

        models = discovery.discover()

        assert f"{name}.models.user.Record" not in models
        assert f"{name}.models.user.Helper" not in models
        assert f"{name}.models.user.Exporter" not in models
        assert f"{name}.db.Base" not in models

    def test_discovered_models_resolve(self, app_package):
        models_dir, _ = app_package
        discovery = ModelDiscovery(DiscoveryConfig(model_paths=[str(models_dir)]))

        tables = {table_name_for(resolve_model(m)) for m in discovery.discover()}

        assert tables == {"users", "products", "orders"}

    def test_missing_path_ignored(self, tmp_path):
        discovery = ModelDiscovery(
            DiscoveryConfig(model_paths=[str(tmp_path / "does-not-exist")])
        )

        assert discovery.discover() == set()

    def test_scan_is_repeatable(self, app_package):
        """Scanning again reuses imported modules instead of redefining tables."""
        models_dir, _ = app_package
        discovery = ModelDiscovery(DiscoveryConfig(model_paths=[str(models_dir)]))

        assert discovery.discover() == discovery.discover()

    def test_explicit_models(self):
        discovery = ModelDiscovery(
            DiscoveryConfig(
                model_paths=[],
                models=[
                    "sample_models.User",
                    "sample_models.NotAModel",
                    "collections.OrderedDict",
                    "no_such_module_xyz.Model",
                ],
            )
        )

        assert discovery.discover() == {"sample_models.User"}

    def test_base_model_filters_paths(self, app_package):
        """Models under a different base are excluded."""
        models_dir, _ = app_package
        discovery = ModelDiscovery(
            DiscoveryConfig(
                model_paths=[str(models_dir)],
                models=["sample_models.User"],
                base_model="sample_models.Base",
            )
        )

        models = discovery.discover()

        assert "sample_models.User" in models
        assert not any(m.startswith("app_") for m in models)

    def test_base_model_registry(self):
        """Models mapped on the configured base are found without paths."""
        discovery = ModelDiscovery(
            DiscoveryConfig(model_paths=[], base_model="sample_models.Base")
        )

        models = discovery.discover()

        assert {
            "sample_models.User",
            "sample_models.Post",
            "sample_models.AuditEntry",
            "sample_models.Invoice",
            "sample_models.Comment",
        } <= models
        assert "sample_models.Timestamped" not in models

    def test_unresolvable_base_model(self, app_package):
        models_dir, _ = app_package
        discovery = ModelDiscovery(
            DiscoveryConfig(
                model_paths=[str(models_dir)], base_model="no_such_module_xyz.Base"
            )
        )

        assert discovery.base_model is None
        assert len(discovery.discover()) == 3

    def test_standalone_file_outside_sys_path(self, tmp_path):
        """Files that are not importable by name are loaded from disk."""
        name = f"standalone_{uuid.uuid4().hex[:8]}"
        path = tmp_path / "models" / f"{name}.py"
        _write(
            path,
            """
            from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


            class Base(DeclarativeBase):
                pass


            class Widget(Base):
                __tablename__ = "widgets"

                id: Mapped[int] = mapped_column(primary_key=True)
            """,
        )
        discovery = ModelDiscovery(
            DiscoveryConfig(model_paths=[str(tmp_path / "models")])
        )

        models = discovery.discover()

        descriptor = f"{standalone_module_name(path)}.Widget"
        assert models == {descriptor}
        assert table_name_for(resolve_model(descriptor)) == "widgets"

    def test_file_named_like_stdlib_module(self, tmp_path):
        """models/email.py is scanned, not the already imported email package."""
        path = tmp_path / "models" / "email.py"
        _write(path, _standalone_model("Email", f"emails_{uuid.uuid4().hex[:8]}"))
        discovery = ModelDiscovery(
            DiscoveryConfig(model_paths=[str(tmp_path / "models")])
        )

        models = discovery.discover()

        assert models == {f"{standalone_module_name(path)}.Email"}

    def test_same_file_name_in_two_directories(self, tmp_path):
        stem = f"user_{uuid.uuid4().hex[:8]}"
        first = tmp_path / "a" / f"{stem}.py"
        second = tmp_path / "b" / f"{stem}.py"
        _write(first, _standalone_model("UserA", f"{stem}_a"))
        _write(second, _standalone_model("UserB", f"{stem}_b"))
        discovery = ModelDiscovery(
            DiscoveryConfig(model_paths=[str(tmp_path / "a"), str(tmp_path / "b")])
        )

        models = discovery.discover()

        assert models == {
            f"{standalone_module_name(first)}.UserA",
            f"{standalone_module_name(second)}.UserB",
        }
        assert discovery.discover() == models

    def test_module_calling_sys_exit_is_skipped(self, app_package):
        models_dir, name = app_package
        _write(models_dir / "script.py", "import sys\n\nsys.exit(2)\n")
        loose = models_dir.parent.parent / "loose"
        _write(loose / "exits.py", "raise SystemExit(1)\n")
        discovery = ModelDiscovery(
            DiscoveryConfig(model_paths=[str(models_dir), str(loose)])
        )

        models = discovery.discover()

        assert models == {
            f"{name}.models.user.User",
            f"{name}.models.shop.catalog.Product",
            f"{name}.models.shop.catalog.Order",
        }

    def test_configured_model_exiting_on_import_is_skipped(self, app_package):
        models_dir, name = app_package
        _write(models_dir / "script.py", "import sys\n\nsys.exit(2)\n")
        discovery = ModelDiscovery(
            DiscoveryConfig(model_paths=[], models=[f"{name}.models.script.Thing"])
        )

        assert discovery.discover() == set()


def _standalone_model(class_name: str, table: str) -> str:
    return f"""
        from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


        class Base(DeclarativeBase):
            pass


        class {class_name}(Base):
            __tablename__ = "{table}"

            id: Mapped[int] = mapped_column(primary_key=True)
        """
