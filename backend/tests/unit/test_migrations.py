"""Tests for the initial schema migration."""

import importlib.util
from pathlib import Path

import pytest
import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations

from app.models.base import Base

VERSIONS_DIR = Path(__file__).resolve().parents[2] / "alembic" / "versions"


def load_migration(name: str):
    path = next(VERSIONS_DIR.glob(f"*_{name}.py"))
    spec = importlib.util.spec_from_file_location(path.stem, path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def connection():
    engine = sa.create_engine("sqlite://")
    with engine.begin() as conn:
        yield conn
    engine.dispose()


def run(connection, step) -> None:
    with Operations.context(MigrationContext.configure(connection)):
        step()


class TestInitialSchema:
    """Migration 001 builds the same schema as the models."""

    def test_revision_chain(self):
        migration = load_migration("001_initial_schema")
        assert migration.revision == "001"
        assert migration.down_revision is None

    def test_tables_match_models(self, connection):
        run(connection, load_migration("001_initial_schema").upgrade)
        inspector = sa.inspect(connection)

        assert set(inspector.get_table_names()) == set(Base.metadata.tables)
        for name, table in Base.metadata.tables.items():
            reflected = {column["name"] for column in inspector.get_columns(name)}
            assert reflected == set(table.columns.keys()), name

    def test_indexes_match_models(self, connection):
        run(connection, load_migration("001_initial_schema").upgrade)
        inspector = sa.inspect(connection)

        for name, table in Base.metadata.tables.items():
            reflected = {index["name"] for index in inspector.get_indexes(name)}
            assert reflected == {index.name for index in table.indexes}, name

    @pytest.mark.parametrize(
        "table,index_name",
        [
            ("patients", "ix_patients_mrn"),
            ("studies", "ix_studies_study_instance_uid"),
            ("series", "ix_series_series_instance_uid"),
            ("images", "ix_images_sop_instance_uid"),
        ],
    )
    def test_natural_keys_are_unique(self, connection, table, index_name):
        run(connection, load_migration("001_initial_schema").upgrade)
        indexes = {index["name"]: index for index in sa.inspect(connection).get_indexes(table)}
        assert bool(indexes[index_name]["unique"]) is True

    def test_one_report_per_study(self, connection):
        run(connection, load_migration("001_initial_schema").upgrade)
        constraints = sa.inspect(connection).get_unique_constraints("reports")
        assert [c["column_names"] for c in constraints] == [["study_id_fk"]]

    def test_downgrade_drops_everything(self, connection):
        migration = load_migration("001_initial_schema")
        run(connection, migration.upgrade)
        run(connection, migration.downgrade)
        assert sa.inspect(connection).get_table_names() == []
