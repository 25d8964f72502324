from __future__ import annotations

from typing import Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, dump_json, fetchall, load_json
from .repository import AuditLogEntry, AuditLogRepository


class MySQLAuditLogRepository(AuditLogRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def append(self, entry: AuditLogEntry) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO audit_logs(action, target_type, target_id, performed_by, performed_at, details)
                VALUES(%s,%s,%s,%s,%s,%s)
                """,
                (
                    entry.action,
                    entry.target_type,
                    entry.target_id,
                    entry.performed_by,
                    entry.performed_at,
                    dump_json(entry.details),
                ),
            )

    def list_for_target(self, target_id: str) -> Sequence[AuditLogEntry]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT action, target_type, target_id, performed_by, performed_at, details
                FROM audit_logs
                WHERE target_id=%s
                ORDER BY performed_at ASC, id ASC
                """,
                (target_id,),
            )
            return [
                AuditLogEntry(
                    action=r["action"],
                    target_type=r["target_type"],
                    target_id=r.get("target_id"),
                    performed_by=r["performed_by"],
                    performed_at=r["performed_at"],
                    details=load_json(r.get("details")) or {},
                )
                for r in fetchall(cur)
            ]
