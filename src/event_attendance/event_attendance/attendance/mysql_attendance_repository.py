from __future__ import annotations

import uuid
from typing import Optional, Sequence

from ..core.enums import ValidationState
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, dump_json, fetchall, fetchone, load_json
from .model import AttendanceRecord
from .repository import AttendanceQuery, AttendanceRepository

_SORTABLE_COLUMNS = {"created_at", "updated_at", "check_in_time", "status", "method"}

_UPSERT_SQL = """
    INSERT INTO attendances(
        id, event_id, user_id, status, method, is_validated, validated_by,
        check_in_time, created_at, updated_at, document
    )
    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
    ON DUPLICATE KEY UPDATE
        status=VALUES(status), method=VALUES(method), is_validated=VALUES(is_validated),
        validated_by=VALUES(validated_by), check_in_time=VALUES(check_in_time),
        updated_at=VALUES(updated_at), document=VALUES(document)
"""


class MySQLAttendanceRepository(AttendanceRepository):
    """Attendance documents stored as JSON with indexed filter columns."""

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    @staticmethod
    def _to_record(row: dict) -> AttendanceRecord:
        doc = load_json(row["document"])
        doc["id"] = row["id"]
        return AttendanceRecord.from_document(doc)

    @staticmethod
    def _params(record: AttendanceRecord) -> tuple:
        return (
            record.id,
            record.event_id,
            record.user_id,
            record.status.value,
            record.method.value,
            1 if record.validation.is_validated else 0,
            record.validation.validated_by,
            record.check_in_time,
            record.created_at,
            record.updated_at,
            dump_json(record.to_document()),
        )

    @staticmethod
    def _where(query: AttendanceQuery) -> tuple[str, list[object]]:
        clauses: list[str] = []
        params: list[object] = []

        if query.event_id:
            clauses.append("event_id=%s")
            params.append(query.event_id)
        if query.user_id:
            clauses.append("user_id=%s")
            params.append(query.user_id)
        if query.status:
            clauses.append("status=%s")
            params.append(query.status.value)
        if query.method:
            clauses.append("method=%s")
            params.append(query.method.value)
        if query.validation_state == ValidationState.PENDING:
            clauses.append("validated_by IS NULL")
        elif query.validation_state == ValidationState.VALIDATED:
            clauses.append("validated_by IS NOT NULL")
        if query.created_from:
            clauses.append("created_at >= %s")
            params.append(query.created_from)
        if query.created_to:
            clauses.append("created_at <= %s")
            params.append(query.created_to)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def get_by_id(self, attendance_id: str) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT id, document FROM attendances WHERE id=%s", (attendance_id,))
            r = fetchone(cur)
            return self._to_record(r) if r else None

    def get_for_user_and_event(self, user_id: str, event_id: str) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT id, document FROM attendances
                WHERE user_id=%s AND event_id=%s
                ORDER BY created_at ASC
                LIMIT 1
                """,
                (user_id, event_id),
            )
            r = fetchone(cur)
            return self._to_record(r) if r else None

    def list_for_event(self, event_id: str) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT id, document FROM attendances
                WHERE event_id=%s
                ORDER BY check_in_time ASC
                """,
                (event_id,),
            )
            return [self._to_record(r) for r in fetchall(cur)]

    def query(self, query: AttendanceQuery) -> Sequence[AttendanceRecord]:
        where, params = self._where(query)
        sort_by = query.sort_by if query.sort_by in _SORTABLE_COLUMNS else "created_at"
        order = "DESC" if query.descending else "ASC"
        sql = f"SELECT id, document FROM attendances {where} ORDER BY {sort_by} {order}"
        if query.limit is not None:
            sql += " LIMIT %s OFFSET %s"
            params.extend([int(query.limit), int(query.offset)])

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [self._to_record(r) for r in fetchall(cur)]

    def count(self, query: AttendanceQuery) -> int:
        where, params = self._where(query)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS total FROM attendances {where}", tuple(params))
            r = fetchone(cur)
            return int(r["total"]) if r else 0

    def save(self, record: AttendanceRecord) -> str:
        if not record.id:
            record.id = uuid.uuid4().hex
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_UPSERT_SQL, self._params(record))
        return record.id

    def insert_many(self, records: Sequence[AttendanceRecord]) -> int:
        if not records:
            return 0
        for record in records:
            if not record.id:
                record.id = uuid.uuid4().hex
        # single transaction: db_cursor commits once or rolls everything back
        with db_cursor(self._conn_factory) as (_, cur):
            cur.executemany(_UPSERT_SQL, [self._params(r) for r in records])
        return len(records)
