"""
Tests for the migration runner against a throwaway SQLite database.
"""
from __future__ import annotations

from sqlalchemy import create_engine, inspect

import migrate


def test_upgrade_creates_schema(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path / 'migrated.db'}"
    monkeypatch.setenv("DATABASE_URL", db_url)

    assert migrate.run_migrations() == 0

    inspector = inspect(create_engine(db_url))
    assert {"users", "folders", "notes", "alembic_version"} <= set(inspector.get_table_names())
    note_indexes = {ix["name"] for ix in inspector.get_indexes("notes")}
    assert {"idx_notes_author_id", "idx_notes_author_folder", "idx_notes_author_updated"} <= note_indexes


def test_upgrade_refuses_to_guess_database_in_production(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("FLASK_ENV", "production")

    assert migrate.run_migrations() == 1
