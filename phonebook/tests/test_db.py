from __future__ import annotations

from unittest.mock import MagicMock, patch

import psycopg
import pytest

from phonebook import db
from phonebook.errors import ConfigError, StoreConnectionError, StoreError

PG_CFG = {
    "host": "db.local",
    "port": 5432,
    "sslmode": "disable",
    "dbname": "phonebook",
    "user": "pb",
    "pass": "secret",
}


def _write(tmp_path, text):
    p = tmp_path / "phonebookrc"
    p.write_text(text, encoding="utf-8")
    return str(p)


def test_parse_params_ok():
    p = db.parse_params(dict(PG_CFG, port="5433"))
    assert p == db.ConnectParams("db.local", 5433, "disable", "phonebook", "pb", "secret")


def test_parse_params_is_frozen():
    p = db.parse_params(PG_CFG)
    with pytest.raises(Exception):
        p.host = "other"


@pytest.mark.parametrize("sslmode, msg", [("enable", "not supported"), ("require", "wrong sslmode")])
def test_parse_params_sslmode(sslmode, msg):
    with pytest.raises(ConfigError, match=msg):
        db.parse_params(dict(PG_CFG, sslmode=sslmode))


def test_parse_params_missing_and_bad_port():
    cfg = dict(PG_CFG)
    del cfg["pass"]
    with pytest.raises(ConfigError, match="pass"):
        db.parse_params(cfg)
    with pytest.raises(ConfigError, match="port"):
        db.parse_params(dict(PG_CFG, port="abc"))


def test_load_settings_precedence(tmp_path, monkeypatch):
    path = _write(tmp_path, "db_path: /tmp/from_cfg.db\nhost: h\n")
    monkeypatch.setenv("PHONEBOOK_DB_PATH", str(tmp_path / "env.db"))
    assert db.load_settings(path).db_path == str(tmp_path / "env.db")

    monkeypatch.delenv("PHONEBOOK_DB_PATH")
    assert db.load_settings(path).db_path == "/tmp/from_cfg.db"


def test_load_settings_postgres(tmp_path, monkeypatch):
    monkeypatch.delenv("PHONEBOOK_DB_PATH", raising=False)
    text = "".join(f"{k}: {v}\n" for k, v in PG_CFG.items()) + "log_level: info\n"
    s = db.load_settings(_write(tmp_path, text))
    assert s.db_path is None
    assert s.params.port == 5432 and s.params.password == "secret"
    assert s.log_level == "INFO"


def test_load_settings_uses_env_config_path(tmp_path, monkeypatch):
    monkeypatch.delenv("PHONEBOOK_DB_PATH", raising=False)
    monkeypatch.setenv("PHONEBOOK_CONFIG", _write(tmp_path, "db_path: x.db\n"))
    assert db.load_settings().db_path == "x.db"


def test_load_settings_errors(tmp_path, monkeypatch):
    monkeypatch.delenv("PHONEBOOK_DB_PATH", raising=False)
    with pytest.raises(ConfigError):
        db.load_settings(str(tmp_path / "nope"))
    with pytest.raises(ConfigError):
        db.load_settings(_write(tmp_path, "- just\n- a list\n"))
    with pytest.raises(ConfigError, match="log_level"):
        db.load_settings(_write(tmp_path, "db_path: x.db\nlog_level: loud\n"))


def test_sqlite_creates_parent_dirs(tmp_path):
    path = tmp_path / "a" / "b" / "pb.db"
    with db.get_conn(db.Settings(db_path=str(path))) as conn:
        assert conn.dialect is db.SQLITE
    assert path.exists()


def test_postgres_translation_and_wrapping():
    raw = MagicMock()
    handle = db.DbHandle(raw, db.POSTGRES)
    handle.execute("SELECT id FROM phonebook WHERE id=? AND name=?", (1, "a"))
    raw.execute.assert_called_once_with("SELECT id FROM phonebook WHERE id=%s AND name=%s", (1, "a"))

    raw.execute.side_effect = psycopg.OperationalError("boom")
    with pytest.raises(StoreError, match="boom"):
        handle.execute("SELECT 1")


def test_postgres_connect_arguments():
    params = db.parse_params(PG_CFG)
    with patch("phonebook.db.psycopg.connect") as connect:
        handle = db.open_db(db.Settings(params=params))
    assert handle.dialect is db.POSTGRES
    kwargs = connect.call_args.kwargs
    assert kwargs["host"] == "db.local" and kwargs["port"] == 5432
    assert kwargs["sslmode"] == "disable" and kwargs["password"] == "secret"
    assert kwargs["autocommit"] is True


def test_postgres_connect_failure():
    params = db.parse_params(PG_CFG)
    with patch("phonebook.db.psycopg.connect", side_effect=psycopg.OperationalError("refused")):
        with pytest.raises(StoreConnectionError, match="refused"):
            db.open_db(db.Settings(params=params))


def test_shared_db_holds_lock_while_acquired(conn):
    shared = db.SharedDb(conn)
    with shared.acquire() as handle:
        assert handle is conn
        assert shared._lock.locked()
    assert not shared._lock.locked()

    with pytest.raises(StoreError):
        with shared.acquire() as handle:
            handle.execute("SELECT * FROM no_such_table")
    assert not shared._lock.locked()
