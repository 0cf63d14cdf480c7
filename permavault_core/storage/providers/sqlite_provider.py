from __future__ import annotations
from typing import Dict, Iterator, List, Mapping
import sqlite3, os
from permavault_core import constants as C
from permavault_core.errors import GatewayError, RecordNotFoundError
from permavault_core.logger import get_logger
from permavault_core.storage.provider import StorageGateway
from permavault_core.storage.models import StoredRecord
from permavault_core.utils import new_id, now_ms

log = get_logger("Permavault.Storage.SQLite")


class SQLiteGateway(StorageGateway):
    """
    Local append-only record store with the same contract as the network
    gateway. Only INSERT and SELECT are ever issued.
    """

    def __init__(self, path="db/permavault.db"):
        # If no directory, default to current working directory
        dir_path = os.path.dirname(path) or "."
        os.makedirs(dir_path, exist_ok=True)
        self.db = sqlite3.connect(path, check_same_thread=False)

        self._init()

    def execute(self, sql: str, params: tuple = None):
        if params:
            return self.db.execute(sql, params)
        return self.db.execute(sql)

    def fetch_one(self, sql: str, params: tuple = None):
        cur = self.execute(sql, params)
        row = cur.fetchone()
        if row is None:
            return None
        # map tuple to column names
        columns = [col[0] for col in cur.description]
        return {columns[i]: row[i] for i in range(len(columns))}

    def _init(self) -> None:
        c = self.db.cursor()

        c.execute("""CREATE TABLE IF NOT EXISTS records(
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT NOT NULL UNIQUE,
            payload BLOB NOT NULL,
            created_at_ms INTEGER NOT NULL
        )""")
        c.execute("""CREATE TABLE IF NOT EXISTS record_tags(
            record_id TEXT NOT NULL,
            position INTEGER NOT NULL,
            name TEXT NOT NULL,
            value TEXT NOT NULL,
            PRIMARY KEY (record_id, name)
        )""")
        c.execute("CREATE INDEX IF NOT EXISTS idx_tags_name_value ON record_tags(name, value)")

        self.db.commit()

    def put(self, payload: bytes, metadata: Mapping[str, str]) -> str:
        record_id = new_id()
        try:
            with self.db:
                self.db.execute(
                    "INSERT INTO records(id,payload,created_at_ms) VALUES(?,?,?)",
                    (record_id, sqlite3.Binary(bytes(payload)), now_ms()),
                )
                self.db.executemany(
                    "INSERT INTO record_tags(record_id,position,name,value) VALUES(?,?,?,?)",
                    [(record_id, i, k, v) for i, (k, v) in enumerate(metadata.items())],
                )
        except sqlite3.Error as e:
            raise GatewayError(f"sqlite put failed: {e}") from e
        log.debug(f"[SQLITE PUT] id={record_id} bytes={len(payload)} tags={len(metadata)}")
        return record_id

    def get(self, record_id: str) -> StoredRecord:
        row = self.fetch_one(
            "SELECT seq, id, payload, created_at_ms FROM records WHERE id=?", (record_id,)
        )
        if row is None:
            raise RecordNotFoundError(record_id)
        return self._to_record(row)

    def _tags(self, record_id: str) -> Dict[str, str]:
        cur = self.db.execute(
            "SELECT name, value FROM record_tags WHERE record_id=? ORDER BY position",
            (record_id,),
        )
        return {name: value for name, value in cur.fetchall()}

    def _to_record(self, row: dict) -> StoredRecord:
        return StoredRecord(
            id=row["id"],
            payload=bytes(row["payload"]),
            metadata=self._tags(row["id"]),
            seq=row["seq"],
            created_at_ms=row["created_at_ms"],
        )

    def records(self) -> Iterator[StoredRecord]:
        cur = self.db.execute("SELECT seq, id, payload, created_at_ms FROM records ORDER BY seq")
        columns = [col[0] for col in cur.description]
        rows = [dict(zip(columns, r)) for r in cur.fetchall()]
        return iter([self._to_record(r) for r in rows])

    def annotations_for(self, original_id: str) -> List[StoredRecord]:
        cur = self.db.execute(
            "SELECT DISTINCT r.seq, r.id, r.payload, r.created_at_ms FROM records r "
            "JOIN record_tags t ON t.record_id = r.id "
            "WHERE t.name IN (?, ?) AND t.value = ? ORDER BY r.seq",
            (C.ORIGINAL_TRANSACTION, C.BACKUP_OF, original_id),
        )
        columns = [col[0] for col in cur.description]
        return [self._to_record(dict(zip(columns, r))) for r in cur.fetchall()]

    def count(self) -> int:
        return self.fetch_one("SELECT COUNT(*) AS n FROM records")["n"]

    def close(self):
        self.db.close()
