from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Optional

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    select,
)
from sqlalchemy.engine import Connection, Engine, Row
from sqlalchemy.exc import SQLAlchemyError

from backend.app.models import MailRecord, MailStatus

SNAPSHOT_ID = "default"


def _normalize_database_url(database_url: str) -> str:
    value = database_url.strip()
    if value.startswith("sqlite:///"):
        sqlite_path = value[len("sqlite:///") :].split("?", 1)[0]
        if sqlite_path and sqlite_path != ":memory:":
            Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)
        return value
    if "://" in value:
        return value
    path = Path(value)
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path.as_posix()}"


def _mail_values(record: MailRecord) -> dict[str, Any]:
    return {
        "to_json": json.dumps(record.to),
        "cc_json": json.dumps(record.cc),
        "subject": record.subject,
        "html": record.html,
        "status": record.status.value,
        "attempts": record.attempts,
        "last_error": record.last_error,
        "next_retry_utc": record.next_retry_utc,
        "created_at_utc": record.created_at_utc,
        "updated_at_utc": record.updated_at_utc,
    }


def _mail_from_row(row: Row) -> MailRecord:
    return MailRecord(
        id=row.id,
        to=json.loads(row.to_json),
        cc=json.loads(row.cc_json),
        subject=row.subject,
        html=row.html,
        status=MailStatus(row.status),
        attempts=row.attempts,
        last_error=row.last_error,
        next_retry_utc=row.next_retry_utc,
        created_at_utc=row.created_at_utc,
        updated_at_utc=row.updated_at_utc,
    )


class SqlitePersistence:
    """
    Durable side of the in-memory store.

    The whole store is written as one JSON snapshot row; the mail outbox also
    gets its own table so delivery state can be inspected and replayed on its
    own. Any SQLAlchemy URL works, SQLite is the default.
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = _normalize_database_url(database_url)
        self._lock = Lock()
        self.engine: Engine = create_engine(
            self.database_url,
            future=True,
            pool_pre_ping=True,
        )
        self.metadata = MetaData()
        self.state_snapshots = Table(
            "state_snapshots",
            self.metadata,
            Column("id", String(50), primary_key=True),
            Column("payload_json", Text, nullable=False),
            Column("updated_at_utc", DateTime, nullable=False),
        )
        self.mail_outbox = Table(
            "mail_outbox",
            self.metadata,
            Column("id", String(64), primary_key=True),
            Column("to_json", Text, nullable=False),
            Column("cc_json", Text, nullable=False),
            Column("subject", String(300), nullable=False),
            Column("html", Text, nullable=False),
            Column("status", String(30), nullable=False),
            Column("attempts", Integer, nullable=False),
            Column("last_error", Text, nullable=True),
            Column("next_retry_utc", DateTime, nullable=True),
            Column("created_at_utc", DateTime, nullable=False),
            Column("updated_at_utc", DateTime, nullable=False),
        )
        self.metadata.create_all(self.engine)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
            return True
        except SQLAlchemyError:
            return False

    @staticmethod
    def _upsert(conn: Connection, table: Table, row_id: str, values: dict[str, Any]) -> None:
        # Plain select-then-write keeps this portable across SQLite and PostgreSQL.
        found = conn.execute(select(table.c.id).where(table.c.id == row_id)).first()
        if found:
            conn.execute(table.update().where(table.c.id == row_id).values(**values))
        else:
            conn.execute(table.insert().values(id=row_id, **values))

    def save_snapshot(self, payload: dict) -> None:
        values = {"payload_json": json.dumps(payload), "updated_at_utc": datetime.utcnow()}
        with self._lock, self.engine.begin() as conn:
            self._upsert(conn, self.state_snapshots, SNAPSHOT_ID, values)

    def load_snapshot(self) -> Optional[dict]:
        with self._lock, self.engine.connect() as conn:
            row = conn.execute(
                select(self.state_snapshots.c.payload_json).where(
                    self.state_snapshots.c.id == SNAPSHOT_ID
                )
            ).first()
        return json.loads(row[0]) if row else None

    def upsert_mail(self, record: MailRecord) -> None:
        with self._lock, self.engine.begin() as conn:
            self._upsert(conn, self.mail_outbox, record.id, _mail_values(record))

    def list_mail(self, limit: Optional[int] = 500) -> list[MailRecord]:
        query = select(self.mail_outbox).order_by(self.mail_outbox.c.created_at_utc.desc())
        if limit is not None:
            query = query.limit(max(1, min(limit, 5000)))
        with self._lock, self.engine.connect() as conn:
            rows = conn.execute(query).all()
        return [_mail_from_row(row) for row in rows]
