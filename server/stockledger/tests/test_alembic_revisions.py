from pathlib import Path


def test_alembic_revision_ids_fit_version_table_limit():
    """Postgres alembic_version.version_num is varchar(32) in this project."""
    versions_dir = Path(__file__).resolve().parents[2] / "alembic" / "versions"
    too_long: list[tuple[str, str, int]] = []

    for migration_file in versions_dir.glob("*.py"):
        text = migration_file.read_text(encoding="utf-8")
        marker = 'revision = "'
        idx = text.find(marker)
        if idx == -1:
            continue
        start = idx + len(marker)
        end = text.find('"', start)
        revision = text[start:end]
        if len(revision) > 32:
            too_long.append((migration_file.name, revision, len(revision)))

    assert not too_long, (
        "Alembic revision IDs must be <= 32 chars to fit alembic_version.version_num. "
        f"Found: {too_long}"
    )


def test_migrations_create_every_mapped_table():
    from stockledger.db import Base
    from stockledger import models  # noqa: F401

    versions_dir = Path(__file__).resolve().parents[2] / "alembic" / "versions"
    migration_text = "\n".join(path.read_text(encoding="utf-8") for path in versions_dir.glob("*.py"))

    missing = [name for name in Base.metadata.tables if f'"{name}"' not in migration_text]
    assert not missing, f"Tables without a migration: {missing}"


def test_document_tables_never_reuse_sqlite_row_ids():
    from stockledger.db import Base
    from stockledger import models  # noqa: F401

    document_tables = (
        "purchase_orders",
        "item_receipts",
        "sales_orders",
        "item_fulfillments",
        "inventory_adjustments",
    )
    for name in document_tables:
        assert Base.metadata.tables[name].kwargs.get("sqlite_autoincrement") is True, name

    versions_dir = Path(__file__).resolve().parents[2] / "alembic" / "versions"
    migration_text = (versions_dir / "0001_inventory_ledger.py").read_text(encoding="utf-8")
    assert migration_text.count("sqlite_autoincrement=True") == len(document_tables)
