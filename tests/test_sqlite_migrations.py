"""The Alembic revision builds the same schema as the ORM models on SQLite."""

import importlib.util
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from paylink.db.base import Base

REVISION_PATH = Path(__file__).resolve().parents[1] / "alembic" / "versions" / "0001_payment_links_schema.py"


def _build_test_engine(db_file: Path) -> Engine:
    return create_engine(f"sqlite:///{db_file}", connect_args={"check_same_thread": False})


def _upgrade(engine: Engine) -> None:
    module_spec = importlib.util.spec_from_file_location("payment_links_schema", REVISION_PATH)
    revision = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(revision)
    with engine.begin() as connection:
        with Operations.context(MigrationContext.configure(connection)):
            revision.upgrade()


def _indexes(engine: Engine, table: str) -> dict[str, bool]:
    return {index["name"]: bool(index["unique"]) for index in inspect(engine).get_indexes(table)}


def test_revision_creates_every_model_table(tmp_path: Path) -> None:
    engine = _build_test_engine(tmp_path / "migrated.db")
    _upgrade(engine)

    assert set(Base.metadata.tables) <= set(inspect(engine).get_table_names())


def test_username_index_is_unique_like_the_model(tmp_path: Path) -> None:
    migrated = _build_test_engine(tmp_path / "migrated.db")
    _upgrade(migrated)
    created = _build_test_engine(tmp_path / "created.db")
    Base.metadata.create_all(bind=created)

    assert _indexes(migrated, "users")["ix_users_username"] is True
    assert _indexes(created, "users")["ix_users_username"] is True

    insert = text(
        "INSERT INTO users (username, password_hash, role, is_active, created_at) "
        "VALUES ('merchant', 'x', 'merchant', 1, '2024-01-01 00:00:00')"
    )
    with migrated.begin() as connection:
        connection.execute(insert)
    with pytest.raises(IntegrityError):
        with migrated.begin() as connection:
            connection.execute(insert)
