from __future__ import annotations

# phonebook/db.py
import os
import sqlite3
import threading
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Sequence

import psycopg
import yaml

from .errors import ConfigError, StoreConnectionError, StoreError

# 配置文件路径解析顺序：
# 1) 显式传入（CLI --config）
# 2) 环境变量 PHONEBOOK_CONFIG
# 3) 当前目录下的 .phonebookrc
DEFAULT_CONFIG_PATH = ".phonebookrc"

_REQUIRED_KEYS = ("host", "port", "sslmode", "dbname", "user", "pass")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DB_ERRORS = (sqlite3.Error, psycopg.Error)


@dataclass(frozen=True)
class ConnectParams:
    host: str
    port: int
    sslmode: str
    dbname: str
    user: str
    password: str


@dataclass(frozen=True)
class Settings:
    params: Optional[ConnectParams] = None
    db_path: Optional[str] = None
    log_level: str = "WARNING"


@dataclass(frozen=True)
class Dialect:
    name: str
    placeholder: str
    id_column: str
    contains: str


SQLITE = Dialect(
    name="sqlite",
    placeholder="?",
    id_column="INTEGER PRIMARY KEY AUTOINCREMENT",
    contains="instr(name, ?) > 0",
)

POSTGRES = Dialect(
    name="postgres",
    placeholder="%s",
    id_column="SERIAL PRIMARY KEY",
    contains="strpos(name, ?) > 0",
)


def config_path(explicit: str | None = None) -> str:
    return explicit or os.environ.get("PHONEBOOK_CONFIG") or DEFAULT_CONFIG_PATH


def _read_config_yaml(path: str) -> dict:
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise ConfigError(f"config {path} must be a mapping of keys to values")
    return cfg


def parse_params(cfg: dict) -> ConnectParams:
    """
    从配置字典构造 PostgreSQL 连接参数。
    sslmode 只支持 disable；enable 未实现，其余取值视为配置错误。
    """
    missing = [k for k in _REQUIRED_KEYS if cfg.get(k) in (None, "")]
    if missing:
        raise ConfigError("missing config keys: " + ", ".join(missing))

    sslmode = str(cfg["sslmode"]).strip()
    if sslmode == "enable":
        raise ConfigError("sslmode 'enable' is not supported")
    if sslmode != "disable":
        raise ConfigError(f"wrong sslmode: {sslmode}")

    try:
        port = int(str(cfg["port"]).strip())
    except ValueError as e:
        raise ConfigError(f"port must be an integer, got {cfg['port']!r}") from e

    return ConnectParams(
        host=str(cfg["host"]).strip(),
        port=port,
        sslmode=sslmode,
        dbname=str(cfg["dbname"]).strip(),
        user=str(cfg["user"]).strip(),
        password=str(cfg["pass"]),
    )


def load_settings(path: str | None = None) -> Settings:
    """
    加载一次进程级配置。优先级与 SQLite 路径选择：
    PHONEBOOK_DB_PATH > 配置中的 db_path > PostgreSQL 连接参数。
    """
    cfg_file = config_path(path)
    cfg = _read_config_yaml(cfg_file)
    log_level = str(cfg.get("log_level") or "WARNING").upper()
    if log_level not in _LOG_LEVELS:
        raise ConfigError(f"unknown log_level: {log_level}")

    env_path = os.environ.get("PHONEBOOK_DB_PATH")
    cfg_db = cfg.get("db_path")
    if env_path:
        return Settings(db_path=env_path, log_level=log_level)
    if isinstance(cfg_db, str) and cfg_db.strip():
        return Settings(db_path=cfg_db.strip(), log_level=log_level)

    if not cfg:
        raise ConfigError(f"config file {cfg_file} not found or empty")
    return Settings(params=parse_params(cfg), log_level=log_level)


class DbHandle:
    """
    一个已打开的数据库连接及其方言。
    语句统一用 ? 占位符书写，执行时按方言转换；驱动异常统一包装为 StoreError。
    """

    def __init__(self, raw: Any, dialect: Dialect):
        self.raw = raw
        self.dialect = dialect

    def _translate(self, sql: str) -> str:
        if self.dialect.placeholder == "?":
            return sql
        return sql.replace("?", self.dialect.placeholder)

    def execute(self, sql: str, params: Sequence[Any] = ()):
        try:
            if params:
                return self.raw.execute(self._translate(sql), tuple(params))
            return self.raw.execute(sql)
        except DB_ERRORS as e:
            raise StoreError(str(e).strip() or e.__class__.__name__) from e

    @contextmanager
    def transaction(self) -> Iterator["DbHandle"]:
        self.execute("BEGIN")
        try:
            yield self
            self.execute("COMMIT")
        except BaseException:
            with suppress(StoreError):
                self.execute("ROLLBACK")
            raise

    def close(self) -> None:
        try:
            self.raw.close()
        except DB_ERRORS as e:
            raise StoreError(str(e)) from e


def _open_sqlite(path: str) -> DbHandle:
    # 确保目录存在
    dirn = os.path.dirname(path) or "."
    try:
        os.makedirs(dirn, exist_ok=True)
        conn = sqlite3.connect(
            path,
            check_same_thread=False,
            isolation_level=None,
        )
    except (OSError, sqlite3.Error) as e:
        raise StoreConnectionError(f"cannot open sqlite database {path}: {e}") from e
    return DbHandle(conn, SQLITE)


def _open_postgres(params: ConnectParams) -> DbHandle:
    try:
        conn = psycopg.connect(
            host=params.host,
            port=params.port,
            dbname=params.dbname,
            user=params.user,
            password=params.password,
            sslmode=params.sslmode,
            autocommit=True,
        )
    except psycopg.Error as e:
        raise StoreConnectionError(
            f"cannot connect to {params.host}:{params.port}/{params.dbname}: {e}"
        ) from e
    return DbHandle(conn, POSTGRES)


def open_db(settings: Settings) -> DbHandle:
    if settings.db_path:
        return _open_sqlite(settings.db_path)
    if settings.params is None:
        raise ConfigError("no database configured")
    return _open_postgres(settings.params)


@contextmanager
def get_conn(settings: Settings) -> Iterator[DbHandle]:
    """
    获取数据库连接，退出时关闭。CLI 单次命令使用。
    """
    db = open_db(settings)
    try:
        yield db
    finally:
        db.close()


class SharedDb:
    """
    HTTP 服务共用的唯一连接，所有访问经由互斥锁串行化。
    """

    def __init__(self, handle: DbHandle):
        self._handle = handle
        self._lock = threading.Lock()

    @contextmanager
    def acquire(self) -> Iterator[DbHandle]:
        with self._lock:
            yield self._handle

    def close(self) -> None:
        with self._lock:
            self._handle.close()
