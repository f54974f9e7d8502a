import pytest
from sqlalchemy import create_engine

from app.regdesk import REQUIRED_TABLES
from app.regdesk.models import Base
from scripts import release, start


@pytest.fixture()
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path/'release.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setattr(release, "_migrate", lambda _url: None)
    return url


def test_release_refuses_when_review_tables_missing(db_url):
    assert release._missing_tables(db_url) == list(REQUIRED_TABLES)
    with pytest.raises(RuntimeError, match="business_applications"):
        release.run_release(seed=False)


def test_release_passes_once_schema_exists(db_url, capsys):
    engine = create_engine(db_url)
    Base.metadata.create_all(bind=engine)
    engine.dispose()

    assert release._missing_tables(db_url) == []
    release.run_release(seed=False)
    assert "Seed skipped." in capsys.readouterr().out


def test_release_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        release.run_release()


def test_start_worker_count_from_env(monkeypatch):
    monkeypatch.delenv("WEB_CONCURRENCY", raising=False)
    assert start._int_env("WEB_CONCURRENCY", 2, low=1, high=32) == 2
    monkeypatch.setenv("WEB_CONCURRENCY", "4")
    assert start._int_env("WEB_CONCURRENCY", 2, low=1, high=32) == 4
    monkeypatch.setenv("WEB_CONCURRENCY", "lots")
    with pytest.raises(SystemExit):
        start._int_env("WEB_CONCURRENCY", 2, low=1, high=32)
