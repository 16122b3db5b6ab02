"""
Postgres-backed storage.

Conversations keep their context as JSON text. Timestamps are stored as
naive UTC, matching the rest of the service.
"""

import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from core.database import Database, get_db
from models.schemas import Conversation, ConversationState, Shift, Worker, WorkerShiftStatus
from .base import ConversationStore, ConversationNotFoundError, DomainLookups

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS workers (
    id TEXT PRIMARY KEY,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    phone_number TEXT NOT NULL UNIQUE,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    registered_via_code TEXT,
    created_at TIMESTAMP NOT NULL DEFAULT (NOW() AT TIME ZONE 'utc')
);

CREATE TABLE IF NOT EXISTS shifts (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    date DATE NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    location TEXT,
    hourly_rate NUMERIC(8, 2) NOT NULL DEFAULT 0,
    contact_person TEXT
);

CREATE TABLE IF NOT EXISTS worker_shift_status (
    worker_id TEXT NOT NULL REFERENCES workers(id),
    shift_id TEXT NOT NULL REFERENCES shifts(id),
    status TEXT NOT NULL,
    response_method TEXT NOT NULL DEFAULT 'sms',
    responded_at TIMESTAMP NOT NULL DEFAULT (NOW() AT TIME ZONE 'utc'),
    PRIMARY KEY (worker_id, shift_id)
);

CREATE TABLE IF NOT EXISTS sms_conversations (
    id TEXT PRIMARY KEY,
    channel_address TEXT NOT NULL,
    subject_id TEXT,
    shift_id TEXT,
    state TEXT NOT NULL DEFAULT 'idle',
    context TEXT NOT NULL DEFAULT '{}',
    last_activity_at TIMESTAMP NOT NULL,
    expires_at TIMESTAMP,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sms_conversations_address ON sms_conversations(channel_address);
CREATE INDEX IF NOT EXISTS idx_sms_conversations_expires ON sms_conversations(expires_at);
"""

CONVERSATION_COLUMNS = """
    id, channel_address, subject_id, shift_id, state, context,
    last_activity_at, expires_at, created_at, updated_at
"""


def _row_to_conversation(row: Dict[str, Any]) -> Conversation:
    context = row.get("context") or "{}"
    if isinstance(context, str):
        context = json.loads(context)
    return Conversation(
        id=row["id"],
        channel_address=row["channel_address"],
        subject_id=row.get("subject_id"),
        shift_id=row.get("shift_id"),
        state=ConversationState(row["state"]),
        context=context,
        last_activity_at=row["last_activity_at"],
        expires_at=row.get("expires_at"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_worker(row: Dict[str, Any]) -> Worker:
    return Worker(
        id=row["id"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        phone_number=row["phone_number"],
        is_active=row.get("is_active", True),
        registered_via_code=row.get("registered_via_code"),
    )


def _row_to_shift(row: Dict[str, Any]) -> Shift:
    shift_date = row["date"]
    return Shift(
        id=row["id"],
        title=row["title"],
        date=shift_date.isoformat() if hasattr(shift_date, "isoformat") else str(shift_date),
        start_time=row["start_time"],
        end_time=row["end_time"],
        location=row.get("location"),
        hourly_rate=float(row.get("hourly_rate") or 0),
        contact_person=row.get("contact_person"),
    )


def ensure_schema(db: Optional[Database] = None):
    """Create the tables if they do not exist yet"""
    (db or get_db()).execute_update(SCHEMA_SQL)
    logger.info("✅ Conversation schema ready")


class PostgresConversationStore(ConversationStore):
    """Conversation records in the sms_conversations table"""

    def __init__(self, db: Optional[Database] = None, default_expiry_hours: int = 24):
        self._db = db
        self.default_expiry_hours = default_expiry_hours

    @property
    def db(self) -> Database:
        return self._db or get_db()

    def get_or_create_conversation(self, channel_address, subject_id=None, expires_at=None):
        now = datetime.utcnow()
        rows = self.db.execute_query(f"""
            SELECT {CONVERSATION_COLUMNS}
            FROM sms_conversations
            WHERE channel_address = %s
              AND (expires_at IS NULL OR expires_at > %s)
            ORDER BY created_at DESC
            LIMIT 1
        """, (channel_address, now))
        if rows:
            return _row_to_conversation(rows[0])

        row = self.db.execute_insert_returning(f"""
            INSERT INTO sms_conversations
            (id, channel_address, subject_id, state, context,
             last_activity_at, expires_at, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {CONVERSATION_COLUMNS}
        """, (
            str(uuid.uuid4()),
            channel_address,
            subject_id,
            ConversationState.IDLE.value,
            "{}",
            now,
            expires_at or now + timedelta(hours=self.default_expiry_hours),
            now,
            now,
        ))
        logger.info(f"Created conversation {row['id']} for {channel_address}")
        return _row_to_conversation(row)

    def update_conversation_state(self, conversation_id, new_state, context=None,
                                  shift_id=None, subject_id=None, expires_at=None):
        now = datetime.utcnow()
        row = self.db.execute_insert_returning(f"""
            UPDATE sms_conversations SET
                state = %s,
                context = COALESCE(%s, context),
                shift_id = COALESCE(%s, shift_id),
                subject_id = COALESCE(%s, subject_id),
                expires_at = COALESCE(%s, expires_at),
                last_activity_at = %s,
                updated_at = %s
            WHERE id = %s
            RETURNING {CONVERSATION_COLUMNS}
        """, (
            new_state.value,
            json.dumps(context, ensure_ascii=False) if context is not None else None,
            shift_id,
            subject_id,
            expires_at,
            now,
            now,
            conversation_id,
        ))
        if row is None:
            raise ConversationNotFoundError(conversation_id)
        return _row_to_conversation(row)

    def get_conversation_by_id(self, conversation_id):
        rows = self.db.execute_query(f"""
            SELECT {CONVERSATION_COLUMNS} FROM sms_conversations WHERE id = %s
        """, (conversation_id,))
        return _row_to_conversation(rows[0]) if rows else None

    def list_active_conversations(self, now=None):
        rows = self.db.execute_query(f"""
            SELECT {CONVERSATION_COLUMNS}
            FROM sms_conversations
            WHERE (expires_at IS NULL OR expires_at > %s)
              AND state <> %s
            ORDER BY last_activity_at DESC
        """, (now or datetime.utcnow(), ConversationState.COMPLETED.value))
        return [_row_to_conversation(row) for row in rows]

    def cleanup_expired_conversations(self, now=None):
        removed = self.db.execute_update("""
            DELETE FROM sms_conversations WHERE expires_at IS NOT NULL AND expires_at <= %s
        """, (now or datetime.utcnow(),))
        if removed:
            logger.info(f"Cleaned up {removed} expired conversations")
        return removed


class PostgresDomainLookups(DomainLookups):
    """Workers, shifts and shift statuses in Postgres"""

    def __init__(self, db: Optional[Database] = None):
        self._db = db

    @property
    def db(self) -> Database:
        return self._db or get_db()

    def find_worker_by_channel_address(self, channel_address):
        rows = self.db.execute_query("""
            SELECT id, first_name, last_name, phone_number, is_active, registered_via_code
            FROM workers
            WHERE phone_number = %s AND is_active = TRUE
            LIMIT 1
        """, (channel_address,))
        return _row_to_worker(rows[0]) if rows else None

    def find_shift_by_id(self, shift_id):
        rows = self.db.execute_query("""
            SELECT id, title, date, start_time, end_time, location, hourly_rate, contact_person
            FROM shifts
            WHERE id = %s
        """, (shift_id,))
        return _row_to_shift(rows[0]) if rows else None

    def create_worker(self, first_name, last_name, phone_number, registered_via_code=None):
        row = self.db.execute_insert_returning("""
            INSERT INTO workers (id, first_name, last_name, phone_number, registered_via_code)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id, first_name, last_name, phone_number, is_active, registered_via_code
        """, (str(uuid.uuid4()), first_name, last_name, phone_number, registered_via_code))
        logger.info(f"✅ Worker {row['id']} registered for {phone_number}")
        return _row_to_worker(row)

    def update_worker_shift_status(self, worker_id, shift_id, status: WorkerShiftStatus,
                                   response_method="sms"):
        self.db.execute_update("""
            INSERT INTO worker_shift_status (worker_id, shift_id, status, response_method, responded_at)
            VALUES (%s, %s, %s, %s, NOW() AT TIME ZONE 'utc')
            ON CONFLICT (worker_id, shift_id)
            DO UPDATE SET
                status = EXCLUDED.status,
                response_method = EXCLUDED.response_method,
                responded_at = EXCLUDED.responded_at
        """, (worker_id, shift_id, status.value, response_method))
        logger.info(f"Worker {worker_id} is now {status.value} for shift {shift_id}")
