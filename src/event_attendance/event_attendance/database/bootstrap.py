from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterator, Optional

import mysql.connector

from .connection import DBConfig

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_PATH = Path(__file__).resolve().parents[4] / "database" / "schema.sql"

_COMMENT_LINE = re.compile(r"^\s*--.*$", re.MULTILINE)
_DB_SELECTION = re.compile(r"^\s*(CREATE\s+DATABASE|USE)\b[^;]*;\s*$", re.IGNORECASE | re.MULTILINE)
# statements in schema.sql end with ';' at the end of a line
_STATEMENT_END = re.compile(r";\s*$", re.MULTILINE)


def schema_statements(sql: str) -> Iterator[str]:
    """Yield the DDL statements of a schema file.

    Database selection lines are dropped so the schema applies to whatever
    database DB_CONFIG names.
    """
    sql = _DB_SELECTION.sub("", _COMMENT_LINE.sub("", sql))
    for stmt in _STATEMENT_END.split(sql):
        stmt = stmt.strip()
        if stmt:
            yield stmt


def _connect(target: DBConfig, *, database: Optional[str] = None):
    params = dict(host=target.host, port=target.port, user=target.user, password=target.password, use_pure=True)
    if database:
        params["database"] = database
    return mysql.connector.connect(**params)


def ensure_database_exists(db_config: dict) -> None:
    target = DBConfig.from_dict(db_config)
    conn = _connect(target)
    try:
        cur = conn.cursor()
        cur.execute(
            f"CREATE DATABASE IF NOT EXISTS `{target.database}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        conn.commit()
    finally:
        conn.close()


def apply_schema(db_config: dict, *, schema_path: str | Path = DEFAULT_SCHEMA_PATH) -> int:
    """Create the attendance and audit tables (idempotent: CREATE IF NOT EXISTS).

    Returns the number of statements executed.
    """
    target = DBConfig.from_dict(db_config)
    ensure_database_exists(db_config)

    statements = list(schema_statements(Path(schema_path).read_text(encoding="utf-8")))
    conn = _connect(target, database=target.database)
    try:
        cur = conn.cursor()
        for stmt in statements:
            cur.execute(stmt)
        conn.commit()
    finally:
        conn.close()

    logger.info("Schema applied to %s@%s/%s (%d statements)", target.user, target.host, target.database, len(statements))
    return len(statements)
