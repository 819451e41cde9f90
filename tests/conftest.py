from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import roster.db as roster_db
from roster import models  # noqa


@pytest.fixture(autouse=True)
def reset_database(tmp_path, monkeypatch):
    db_file = tmp_path / "test_roster.db"
    db_url = f"sqlite:///{db_file}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("ROSTER_BACKUP_DIR", str(tmp_path / "backups"))

    # Rebuild DB bindings per test so every test gets its own writable SQLite file.
    roster_db.engine.dispose()
    roster_db.DATABASE_URL = roster_db.get_database_url()
    roster_db.engine = create_engine(
        roster_db.DATABASE_URL,
        connect_args={"check_same_thread": False},
        pool_pre_ping=True,
    )
    roster_db.SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=roster_db.engine,
        expire_on_commit=False,
    )

    roster_db.Base.metadata.drop_all(bind=roster_db.engine)
    roster_db.Base.metadata.create_all(bind=roster_db.engine)
    yield
    roster_db.Base.metadata.drop_all(bind=roster_db.engine)
    roster_db.engine.dispose()
