import sys
import pytest
from pathlib import Path

# Ensure project root on sys.path
_THIS_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _THIS_DIR.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from phonebook.db import Settings, SharedDb, get_conn  # noqa: E402
from phonebook.repository import record_repo  # noqa: E402


@pytest.fixture()
def tmp_db_path(tmp_path, monkeypatch):
    path = tmp_path / "db" / "phonebook_test.db"
    # Point the CLI to this temp DB and away from any real config
    monkeypatch.setenv("PHONEBOOK_DB_PATH", str(path))
    monkeypatch.setenv("PHONEBOOK_CONFIG", str(tmp_path / "missing.yaml"))
    return str(path)


@pytest.fixture()
def conn(tmp_db_path):
    with get_conn(Settings(db_path=tmp_db_path)) as c:
        record_repo.ensure_schema(c)
        yield c


@pytest.fixture()
def client(conn):
    # Import app factory after DB ready
    from phonebook.api import create_app
    from fastapi.testclient import TestClient
    return TestClient(create_app(SharedDb(conn)))
