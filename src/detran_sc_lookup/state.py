from __future__ import annotations

import json
import logging
import shutil
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .models import VehicleRecord


logger = logging.getLogger(__name__)


_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS consultations (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      plate TEXT NOT NULL,
      found_in_source INTEGER NOT NULL,
      total_debts TEXT NOT NULL,
      response_json TEXT NOT NULL,
      created_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_consultations_plate ON consultations(plate, id);",
)


@dataclass(frozen=True)
class ConsultationEntry:
    id: int
    plate: str
    found_in_source: bool
    total_debts: str
    created_at: str
    response: dict


def _history_readable(conn: sqlite3.Connection) -> bool:
    try:
        row = conn.execute("PRAGMA quick_check;").fetchone()
    except sqlite3.DatabaseError:
        # "file is not a database", truncated pages, ...
        return False
    return bool(row and row[0] == "ok")


class ConsultationStore:
    """
    Local history of consultations (the web UI's "Buscas Recentes", persisted).

    The history is a convenience, never a reason to fail a lookup: an unreadable file is set aside and
    replaced by `<db>.bak` (refreshed after every write) or, failing that, by an empty history.
    Safe to share between the threads of one PlateLookupService.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.backup_path = self.db_path.with_name(self.db_path.name + ".bak")
        self._lock = threading.Lock()

        self._conn = self._open()
        self._conn.execute("PRAGMA journal_mode=WAL;")
        for stmt in _SCHEMA:
            self._conn.execute(stmt)
        self._conn.commit()
        if not self.backup_path.exists():
            self._refresh_backup()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, check_same_thread=False)

    def _open(self) -> sqlite3.Connection:
        if not self.db_path.exists():
            return self._connect()

        conn = self._connect()
        if _history_readable(conn):
            return conn
        conn.close()

        moved_to = self._set_aside_unreadable()
        logger.warning("Consultation history %s is unreadable; moved to %s.", self.db_path, moved_to)
        return self._restore_from_backup()

    def _set_aside_unreadable(self) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        target = self.db_path.with_name(f"{self.db_path.name}.corrupt-{stamp}")
        self.db_path.replace(target)
        # WAL sidecars belong to the broken file; SQLite would try to replay them onto the restored one.
        for suffix in ("-wal", "-shm"):
            Path(str(self.db_path) + suffix).unlink(missing_ok=True)
        return target

    def _restore_from_backup(self) -> sqlite3.Connection:
        if not self.backup_path.exists():
            logger.warning("No history backup at %s; starting an empty history.", self.backup_path)
            return self._connect()

        shutil.copy2(self.backup_path, self.db_path)
        conn = self._connect()
        if _history_readable(conn):
            logger.warning("Consultation history restored from %s.", self.backup_path)
            return conn

        conn.close()
        self.db_path.unlink()
        logger.warning("History backup %s is unreadable too; starting an empty history.", self.backup_path)
        return self._connect()

    def _refresh_backup(self) -> None:
        # Online backup into a temp file, then an atomic rename, so `.bak` is never half-written.
        tmp = self.backup_path.with_name(self.backup_path.name + ".tmp")
        try:
            dst = sqlite3.connect(tmp)
            try:
                self._conn.backup(dst)
            finally:
                dst.close()
            tmp.replace(self.backup_path)
        except (OSError, sqlite3.DatabaseError):
            logger.warning("Could not refresh history backup %s.", self.backup_path, exc_info=True)

    def record_consultation(self, record: VehicleRecord) -> int:
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            cur = self._conn.execute(
                """
                INSERT INTO consultations(plate, found_in_source, total_debts, response_json, created_at)
                VALUES (?, ?, ?, ?, ?);
                """,
                (
                    record.plate,
                    1 if record.found_in_source else 0,
                    str(record.total_debts),
                    json.dumps(record.to_response(), ensure_ascii=False),
                    now,
                ),
            )
            self._conn.commit()
            self._refresh_backup()
        return int(cur.lastrowid)

    def recent_plates(self, limit: int = 5) -> list[str]:
        """Distinct plates, most recently consulted first."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT plate FROM consultations
                GROUP BY plate
                ORDER BY MAX(id) DESC
                LIMIT ?;
                """,
                (int(limit),),
            ).fetchall()
        return [r[0] for r in rows]

    def latest(self, plate: str) -> Optional[ConsultationEntry]:
        with self._lock:
            row = self._conn.execute(
                """
                SELECT id, plate, found_in_source, total_debts, created_at, response_json
                FROM consultations WHERE plate = ? ORDER BY id DESC LIMIT 1;
                """,
                (plate,),
            ).fetchone()
        if not row:
            return None
        return ConsultationEntry(
            id=int(row[0]),
            plate=row[1],
            found_in_source=bool(row[2]),
            total_debts=row[3],
            created_at=row[4],
            response=json.loads(row[5]),
        )
