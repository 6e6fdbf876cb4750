from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..db import DbHandle
from ..errors import NotFoundError

TABLE = "phonebook"

# 列顺序固定，扫描时按位置绑定
COLUMNS = "id, name, phone"


@dataclass
class Record:
    name: str
    phone: str
    id: Optional[int] = None

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "phone": self.phone}


def _to_record(row) -> Record:
    return Record(id=int(row[0]), name=row[1], phone=row[2])


def ensure_schema(conn: DbHandle) -> None:
    conn.execute(
        f"CREATE TABLE IF NOT EXISTS {TABLE} ("
        f"id {conn.dialect.id_column}, "
        "name VARCHAR(50), "
        "phone VARCHAR(100))"
    )


def insert_record(conn: DbHandle, name: str, phone: str) -> int:
    cur = conn.execute(f"INSERT INTO {TABLE}(name, phone) VALUES(?, ?)", (name, phone))
    return cur.rowcount


def delete_records(conn: DbHandle, ids: Iterable[int]) -> None:
    """Delete by id, one statement per id; missing ids are a no-op and the first failure stops the loop."""
    for record_id in ids:
        conn.execute(f"DELETE FROM {TABLE} WHERE id=?", (int(record_id),))


def update_record(conn: DbHandle, record_id: int, name: str, phone: str) -> int:
    with conn.transaction():
        cur = conn.execute(
            f"UPDATE {TABLE} SET name=?, phone=? WHERE id=?",
            (name, phone, int(record_id)),
        )
    return cur.rowcount


def list_records(conn: DbHandle, name_substring: Optional[str] = None) -> List[Record]:
    sql = f"SELECT {COLUMNS} FROM {TABLE}"
    params: list = []
    if name_substring is not None:
        sql += f" WHERE {conn.dialect.contains}"
        params.append(name_substring)
    sql += " ORDER BY id"
    return [_to_record(r) for r in conn.execute(sql, params).fetchall()]


def get_record(conn: DbHandle, record_id: int) -> Record:
    rows = conn.execute(f"SELECT {COLUMNS} FROM {TABLE} WHERE id=?", (int(record_id),)).fetchall()
    if len(rows) != 1:
        raise NotFoundError(f"record {record_id} not found")
    return _to_record(rows[0])


def record_dicts(records: Iterable[Record]) -> list[dict]:
    return [r.to_dict() for r in records]
