from __future__ import annotations

from datetime import datetime

from src.event_attendance.event_attendance.attendance.model import AttendanceRecord
from src.event_attendance.event_attendance.attendance.mysql_attendance_repository import MySQLAttendanceRepository
from src.event_attendance.event_attendance.attendance.repository import AttendanceQuery
from src.event_attendance.event_attendance.core.enums import AttendanceMethod, AttendanceStatus, ValidationState
from src.event_attendance.event_attendance.database.mysql_base import dump_json


class RecordingCursor:
    def __init__(self, rows):
        self.rows = rows
        self.executed = []

    def execute(self, sql, params=None):
        self.executed.append((" ".join(sql.split()), params))

    def executemany(self, sql, seq):
        self.executed.append((" ".join(sql.split()), list(seq)))

    def fetchone(self):
        return self.rows[0] if self.rows else None

    def fetchall(self):
        return self.rows

    def close(self):
        pass


class RecordingConnection:
    def __init__(self, cursor):
        self._cursor = cursor
        self.commits = 0
        self.rollbacks = 0

    def cursor(self, dictionary=True):
        return self._cursor

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        pass


class ConnFactory:
    def __init__(self, rows=None):
        self.cursor = RecordingCursor(rows or [])
        self.conn = RecordingConnection(self.cursor)

    def connect(self):
        return self.conn


def record(user_id="u1") -> AttendanceRecord:
    return AttendanceRecord(
        event_id="evt-1",
        user_id=user_id,
        status=AttendanceStatus.PRESENT,
        method=AttendanceMethod.GEOLOCATION,
        check_in_time=datetime(2026, 3, 10, 9, 50),
        created_at=datetime(2026, 3, 10, 9, 50),
    )


def test_save_assigns_id_and_upserts_document():
    factory = ConnFactory()
    repo = MySQLAttendanceRepository(factory)

    rec = record()
    new_id = repo.save(rec)

    assert rec.id == new_id
    sql, params = factory.cursor.executed[0]
    assert sql.startswith("INSERT INTO attendances(")
    assert "ON DUPLICATE KEY UPDATE" in sql
    assert params[0] == new_id
    assert params[3:5] == ("present", "geolocation")
    assert factory.conn.commits == 1


def test_query_builds_filters_and_paging():
    factory = ConnFactory()
    repo = MySQLAttendanceRepository(factory)

    repo.query(
        AttendanceQuery(
            event_id="evt-1",
            status=AttendanceStatus.LATE,
            validation_state=ValidationState.PENDING,
            sort_by="DROP TABLE",
            offset=20,
            limit=10,
        )
    )

    sql, params = factory.cursor.executed[0]
    assert "WHERE event_id=%s AND status=%s AND validated_by IS NULL" in sql
    assert "ORDER BY created_at DESC LIMIT %s OFFSET %s" in sql
    assert params == ("evt-1", "late", 10, 20)


def test_get_by_id_reads_document():
    rec = record()
    rec.id = "abc"
    factory = ConnFactory(rows=[{"id": "abc", "document": dump_json(rec.to_document())}])

    loaded = MySQLAttendanceRepository(factory).get_by_id("abc")

    assert loaded == rec


def test_insert_many_is_one_transaction():
    factory = ConnFactory()
    count = MySQLAttendanceRepository(factory).insert_many([record("u1"), record("u2")])

    assert count == 2
    sql, rows = factory.cursor.executed[0]
    assert len(rows) == 2
    assert factory.conn.commits == 1
