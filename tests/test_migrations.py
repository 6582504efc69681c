"""Tests — the initial migration builds the same schema as the models."""

import importlib.util
from pathlib import Path

import pytest
import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations

from app.models import db as _db

VERSIONS = Path(__file__).resolve().parent.parent / "migrations" / "versions"


def _load_revision(name):
    spec = importlib.util.spec_from_file_location(name, VERSIONS / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture()
def migrated():
    """A fresh SQLite engine upgraded to the initial revision."""
    engine = sa.create_engine("sqlite://")
    revision = _load_revision("a7c3e91d2b40_initial_schema")
    with engine.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            revision.upgrade()
    yield engine, revision
    engine.dispose()


def test_tables_and_columns_match_models(migrated):
    engine, _ = migrated
    inspector = sa.inspect(engine)

    assert set(inspector.get_table_names()) == set(_db.metadata.tables)
    for name, table in _db.metadata.tables.items():
        migrated_cols = {c["name"] for c in inspector.get_columns(name)}
        assert migrated_cols == {c.name for c in table.columns}, name


def test_entity_tables_never_reuse_ids(migrated):
    engine, revision = migrated
    with engine.connect() as conn:
        for table in revision.ENTITY_TABLES:
            sql = conn.execute(
                sa.text("SELECT sql FROM sqlite_master WHERE type = 'table' AND name = :n"), {"n": table},
            ).scalar()
            assert "AUTOINCREMENT" in sql, table


def test_entity_numbers_unique(migrated):
    engine, revision = migrated
    inspector = sa.inspect(engine)
    for table in revision.ENTITY_TABLES:
        uniques = [u["column_names"] for u in inspector.get_unique_constraints(table)]
        assert ["number"] in uniques, table


def test_downgrade_drops_everything(migrated):
    engine, revision = migrated
    with engine.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            revision.downgrade()
    assert sa.inspect(engine).get_table_names() == []
