import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

TEST_JWT_SECRET = "unit-test-jwt-secret-with-at-least-32-bytes"


@pytest.fixture(autouse=True)
def _test_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("JWT_ALGORITHM", "HS256")
    monkeypatch.setenv("APP_ENV", "development")
    monkeypatch.setenv("AUDIT_LOG_PATH", str(tmp_path / "audit.log"))
    monkeypatch.setenv("ALLOWED_ORIGINS", "*")
    for var in ("SESSION_LIFETIME", "PUBLIC_RATE_LIMIT", "RATE_LIMIT_WINDOW"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def audit_path(tmp_path):
    return tmp_path / "audit.log"


@pytest.fixture
def temp_db(monkeypatch, tmp_path):
    import db

    db_path = tmp_path / "test.db"
    monkeypatch.setattr(db, "DB_PATH", str(db_path))

    # Reset the connection pool for each test
    db._pool = db.SQLiteConnectionPool(str(db_path), max_connections=10)
    db.init()
    yield str(db_path)
    db._pool.close_all()


@pytest.fixture
def database(temp_db):
    import db

    handle = db.Database(db._pool)
    yield handle
    handle.close()
