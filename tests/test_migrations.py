import importlib.util
import io
from pathlib import Path

from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext
from sqlalchemy import create_engine, inspect

VERSIONS = Path(__file__).resolve().parents[1] / "lotledger" / "migrations" / "versions"


def _load(filename: str):
    spec = importlib.util.spec_from_file_location(f"lotledger_revision_{filename[:4]}", VERSIONS / filename)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_initial_revision_creates_and_drops_ledger_tables():
    revision = _load("0001_create_ledger_tables.py")
    engine = create_engine("sqlite://")

    with engine.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            revision.upgrade()
            # Existing tables are skipped on re-run
            revision.upgrade()
        inspector = inspect(conn)
        assert set(inspector.get_table_names()) == {
            "purchase_lot",
            "corporate_action_adjustment",
            "ledger_trade",
            "account_fee",
        }
        lot_indexes = {index["name"] for index in inspector.get_indexes("purchase_lot")}
        assert "ix_purchase_lot_key_open" in lot_indexes

        with Operations.context(MigrationContext.configure(conn)):
            revision.downgrade()
        assert inspect(conn).get_table_names() == []

        # Enum drops are no-ops on SQLite, so the cycle repeats cleanly
        with Operations.context(MigrationContext.configure(conn)):
            revision.upgrade()
            revision.downgrade()
        assert inspect(conn).get_table_names() == []

    engine.dispose()


def test_downgrade_drops_postgres_enum_types_after_tables():
    revision = _load("0001_create_ledger_tables.py")
    buffer = io.StringIO()
    context = MigrationContext.configure(
        dialect_name="postgresql",
        opts={"as_sql": True, "output_buffer": buffer},
    )

    with Operations.context(context):
        revision.downgrade()

    sql = buffer.getvalue()
    for type_name in ("fee_kind", "trade_side", "adjustment_kind"):
        assert f"DROP TYPE {type_name}" in sql
    assert sql.index("DROP TABLE purchase_lot") < sql.index("DROP TYPE adjustment_kind")
