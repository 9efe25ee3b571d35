"""Tests for the alembic schema migration."""

import importlib.util
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

import fee_ledger.database

MIGRATION = Path(fee_ledger.database.__file__).parent / "migrations" / "versions" / "001_initial.py"


@pytest.fixture
def migration():
    spec = importlib.util.spec_from_file_location("migration_001_initial", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def connection(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'migrate.db'}")
    with engine.begin() as conn:
        yield conn
    engine.dispose()


def run(connection, step):
    with Operations.context(MigrationContext.configure(connection)):
        step()


class TestInitialMigration:
    """Tests for 001_initial."""

    def test_upgrade_matches_models(self, migration, connection):
        """The migrated schema has every column the models map."""
        run(connection, migration.upgrade)

        inspector = inspect(connection)
        assert set(inspector.get_table_names()) >= {"fee_accounts", "payment_entries"}
        for table in fee_ledger.database.Base.metadata.sorted_tables:
            columns = {c["name"] for c in inspector.get_columns(table.name)}
            assert columns == {c.name for c in table.columns}

        unique = inspector.get_unique_constraints("payment_entries")
        assert any(
            c["column_names"] == ["fee_account_id", "gateway_order_id", "gateway_payment_id"]
            for c in unique
        )

    def test_downgrade_drops_tables(self, migration, connection):
        """Downgrade removes both tables."""
        run(connection, migration.upgrade)
        run(connection, migration.downgrade)

        tables = set(inspect(connection).get_table_names())
        assert "fee_accounts" not in tables
        assert "payment_entries" not in tables
