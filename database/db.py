import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

from backend import config
from backend.errors import SequenceConflict, StoreUnavailable
from backend.models import (
    AttendanceEvent,
    EventType,
    Identity,
    format_timestamp,
    parse_timestamp,
)


def connect_db(db_path: Path | str | None = None, *, timeout: float | None = None):
    conn = sqlite3.connect(
        str(db_path or config.DB_PATH),
        timeout=config.DB_TIMEOUT_SECONDS if timeout is None else timeout,
        check_same_thread=False,
        # transactions are opened explicitly with BEGIN IMMEDIATE
        isolation_level=None,
    )
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@contextmanager
def _session(db_path: Path | str | None) -> Iterator[sqlite3.Connection]:
    try:
        conn = connect_db(db_path)
    except sqlite3.Error as exc:
        raise StoreUnavailable(f"Attendance store unavailable: {exc}") from exc
    try:
        yield conn
    except sqlite3.Error as exc:
        raise StoreUnavailable(f"Attendance store unavailable: {exc}") from exc
    finally:
        conn.close()


@contextmanager
def _write_transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Cursor]:
    cur = conn.cursor()
    cur.execute("BEGIN IMMEDIATE")
    try:
        yield cur
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()


def create_tables(db_path: Path | str | None = None) -> None:
    with _session(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute("""
        CREATE TABLE IF NOT EXISTS identities (
            id TEXT PRIMARY KEY,
            display_name TEXT NOT NULL,
            name_key TEXT NOT NULL,
            template_json TEXT NOT NULL,
            template_length INTEGER NOT NULL CHECK (template_length > 0),
            enrolled_at TEXT NOT NULL
        )
        """)
        cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_identities_name_key
        ON identities (name_key)
        """)
        cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_identities_template_length
        ON identities (template_length, id)
        """)

        # No foreign key to identities: events outlive identities as history.
        cursor.execute("""
        CREATE TABLE IF NOT EXISTS attendance_events (
            id TEXT PRIMARY KEY,
            identity_id TEXT NOT NULL,
            timestamp TEXT NOT NULL,
            event_type TEXT NOT NULL CHECK (event_type IN ('IN', 'OUT')),
            source_device TEXT NOT NULL DEFAULT ''
        )
        """)
        cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_attendance_events_identity_latest
        ON attendance_events (identity_id, timestamp DESC, id DESC)
        """)
        cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_attendance_events_latest
        ON attendance_events (timestamp DESC, id DESC)
        """)


def _identity_from_row(row) -> Identity:
    return Identity(
        id=row[0],
        display_name=row[1],
        template=tuple(float(x) for x in json.loads(row[2])),
        enrolled_at=parse_timestamp(row[3]),
    )


def _event_from_row(row) -> AttendanceEvent:
    return AttendanceEvent(
        id=row[0],
        identity_id=row[1],
        timestamp=parse_timestamp(row[2]),
        event_type=EventType(row[3]),
        source_device=row[4],
    )


# -----------------------------
# Identities
# -----------------------------
class SqliteIdentityStore:
    def __init__(self, db_path: Path | str | None = None):
        self.db_path = db_path

    def add(self, identity: Identity) -> None:
        with _session(self.db_path) as conn:
            try:
                with _write_transaction(conn) as cur:
                    cur.execute(
                        """
                        INSERT INTO identities
                            (id, display_name, name_key, template_json, template_length, enrolled_at)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (
                            identity.id,
                            identity.display_name,
                            identity.display_name.casefold(),
                            json.dumps(list(identity.template), separators=(",", ":")),
                            len(identity.template),
                            format_timestamp(identity.enrolled_at),
                        ),
                    )
            except sqlite3.IntegrityError as exc:
                raise ValueError(f"Identity {identity.id} already exists.") from exc

    def get(self, identity_id: str) -> Optional[Identity]:
        with _session(self.db_path) as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT id, display_name, template_json, enrolled_at
                FROM identities
                WHERE id = ?
                """,
                (identity_id,),
            )
            row = cur.fetchone()
        return _identity_from_row(row) if row else None

    def all_identities(self) -> Sequence[Identity]:
        with _session(self.db_path) as conn:
            cur = conn.cursor()
            cur.execute("""
                SELECT id, display_name, template_json, enrolled_at
                FROM identities
                ORDER BY id
            """)
            rows = cur.fetchall()
        return [_identity_from_row(r) for r in rows]

    def shortlist(self, template_length: int) -> Sequence[Identity]:
        with _session(self.db_path) as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT id, display_name, template_json, enrolled_at
                FROM identities
                WHERE template_length = ?
                ORDER BY id
                """,
                (int(template_length),),
            )
            rows = cur.fetchall()
        return [_identity_from_row(r) for r in rows]

    def find_by_name(self, display_name: str) -> Optional[Identity]:
        with _session(self.db_path) as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT id, display_name, template_json, enrolled_at
                FROM identities
                WHERE name_key = ?
                ORDER BY id
                LIMIT 1
                """,
                (display_name.strip().casefold(),),
            )
            row = cur.fetchone()
        return _identity_from_row(row) if row else None

    def count(self) -> int:
        with _session(self.db_path) as conn:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(1) FROM identities")
            row = cur.fetchone()
        return int(row[0] or 0) if row else 0


# -----------------------------
# Attendance ledger
# -----------------------------
_LATEST_EVENT_SQL = """
    SELECT id, identity_id, timestamp, event_type, source_device
    FROM attendance_events
    WHERE identity_id = ?
    ORDER BY timestamp DESC, id DESC
    LIMIT 1
"""


class SqliteAttendanceLedger:
    def __init__(self, db_path: Path | str | None = None):
        self.db_path = db_path

    def latest_event(self, identity_id: str) -> Optional[AttendanceEvent]:
        with _session(self.db_path) as conn:
            cur = conn.cursor()
            cur.execute(_LATEST_EVENT_SQL, (identity_id,))
            row = cur.fetchone()
        return _event_from_row(row) if row else None

    def append(self, event: AttendanceEvent, *, after: Optional[str]) -> None:
        with _session(self.db_path) as conn:
            with _write_transaction(conn) as cur:
                # BEGIN IMMEDIATE holds the write lock, so the check and the
                # insert see the same latest event across processes.
                cur.execute(_LATEST_EVENT_SQL, (event.identity_id,))
                row = cur.fetchone()
                current = row[0] if row else None
                if current != after:
                    raise SequenceConflict(
                        f"Latest event for identity {event.identity_id} changed before append."
                    )
                cur.execute(
                    """
                    INSERT INTO attendance_events
                        (id, identity_id, timestamp, event_type, source_device)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        event.id,
                        event.identity_id,
                        format_timestamp(event.timestamp),
                        event.event_type.value,
                        event.source_device,
                    ),
                )

    def list_events(
        self,
        identity_id: Optional[str] = None,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Sequence[AttendanceEvent]:
        where_sql, params = _build_events_where_clause(identity_id)
        safe_limit = -1 if limit is None else max(0, int(limit))
        safe_offset = max(0, int(offset))

        with _session(self.db_path) as conn:
            cur = conn.cursor()
            cur.execute(
                f"""
                SELECT id, identity_id, timestamp, event_type, source_device
                FROM attendance_events
                WHERE {where_sql}
                ORDER BY timestamp DESC, id DESC
                LIMIT ?
                OFFSET ?
                """,
                [*params, safe_limit, safe_offset],
            )
            rows = cur.fetchall()
        return [_event_from_row(r) for r in rows]

    def count_events(self, identity_id: Optional[str] = None) -> int:
        where_sql, params = _build_events_where_clause(identity_id)
        with _session(self.db_path) as conn:
            cur = conn.cursor()
            cur.execute(
                f"""
                SELECT COUNT(1)
                FROM attendance_events
                WHERE {where_sql}
                """,
                params,
            )
            row = cur.fetchone()
        return int(row[0] or 0) if row else 0


def _build_events_where_clause(identity_id: Optional[str]) -> tuple[str, list]:
    where = ["1=1"]
    params: list = []
    if identity_id is not None:
        where.append("identity_id = ?")
        params.append(identity_id)
    return " AND ".join(where), params
