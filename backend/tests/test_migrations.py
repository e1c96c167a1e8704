from sqlalchemy import create_engine, inspect

from app.core.migrations import CurrentRevision, HeadRevision, RunMigrations


def test_migrations_build_the_notes_schema(tmp_path, monkeypatch):
    monkeypatch.setenv("MIGRATIONS_PROGRESS_LOG_SECONDS", "1")
    url = f"sqlite:///{tmp_path / 'migrated.db'}"

    RunMigrations(url)

    engine = create_engine(url)
    try:
        tables = set(inspect(engine).get_table_names())
        assert {"users", "refresh_tokens", "notes", "note_versions", "note_shares", "note_media"} <= tables
        with engine.connect() as connection:
            assert CurrentRevision(connection) == HeadRevision()
    finally:
        engine.dispose()


def test_current_revision_is_none_without_alembic(session_factory):
    db = session_factory()
    try:
        assert CurrentRevision(db.connection()) is None
    finally:
        db.close()
