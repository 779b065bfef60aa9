"""SQLite storage for messages, events and triggers."""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import time
from pathlib import Path
from typing import Any

from .models import (
    ACTIVE_STATUSES,
    EXPIRED,
    Contact,
    Event,
    EventStatus,
    Message,
    Trigger,
    TriggerType,
)

logger = logging.getLogger(__name__)

# Columns update_event() is allowed to touch.
UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "event_time",
        "location",
        "participants",
        "keywords",
        "event_type",
        "context_url",
        "status",
    }
)

# A shorter title only counts as a duplicate of a longer one when it
# covers at least this share of it ("Meeting" is not "Meeting with Nityam").
DUPLICATE_LENGTH_RATIO = 0.8

EVENT_COLUMNS = (
    "id, message_id, event_type, title, description, event_time, location, "
    "participants, keywords, confidence, status, context_url, sender_name, "
    "created_at, snoozed_until"
)


def normalize_title(title: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    cleaned = re.sub(r"[^\w\s]", " ", title.lower())
    return " ".join(cleaned.split())


def titles_match(existing: str, candidate: str) -> bool:
    """Bidirectional substring match guarded by relative length."""
    a = normalize_title(existing)
    b = normalize_title(candidate)
    if not a or not b:
        return False
    if a == b:
        return True
    shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
    if shorter not in longer:
        return False
    return len(shorter) / len(longer) >= DUPLICATE_LENGTH_RATIO


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so a term only matches itself."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_fts_query(keywords: list[str]) -> str:
    """Turn free-form keywords into an FTS5 OR query of quoted terms."""
    terms: list[str] = []
    for keyword in keywords:
        for token in re.findall(r"\w+", keyword.lower()):
            if len(token) > 1 and token not in terms:
                terms.append(token)
    return " OR ".join(f'"{t}"' for t in terms)


class EventStore:
    """Persistent storage for the event memory using SQLite.

    Every mutation commits on its own, so each insert, update, status
    change or delete is atomic. Read-then-write sequences spanning several
    calls are not.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        return self._conn

    def init_db(self) -> None:
        """Create tables and indexes if they don't exist."""
        conn = self._get_connection()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS messages (
                id          TEXT PRIMARY KEY,
                chat_id     TEXT NOT NULL,
                sender      TEXT NOT NULL,
                content     TEXT NOT NULL,
                timestamp   INTEGER NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_messages_chat
                ON messages(chat_id, timestamp);

            CREATE TABLE IF NOT EXISTS contacts (
                id              TEXT PRIMARY KEY,
                name            TEXT,
                first_seen      INTEGER NOT NULL,
                last_seen       INTEGER NOT NULL,
                message_count   INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS events (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                message_id      TEXT,
                event_type      TEXT NOT NULL,
                title           TEXT NOT NULL,
                description     TEXT,
                event_time      INTEGER,
                location        TEXT,
                participants    TEXT NOT NULL DEFAULT '[]',
                keywords        TEXT NOT NULL DEFAULT '',
                confidence      REAL NOT NULL DEFAULT 0,
                status          TEXT NOT NULL DEFAULT 'discovered',
                context_url     TEXT,
                sender_name     TEXT,
                created_at      INTEGER NOT NULL,
                snoozed_until   INTEGER
            );
            CREATE INDEX IF NOT EXISTS idx_events_status ON events(status);
            CREATE INDEX IF NOT EXISTS idx_events_time ON events(event_time);
            CREATE INDEX IF NOT EXISTS idx_events_created ON events(created_at);

            CREATE TABLE IF NOT EXISTS triggers (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                event_id        INTEGER NOT NULL
                                REFERENCES events(id) ON DELETE CASCADE,
                trigger_type    TEXT NOT NULL,
                trigger_value   TEXT NOT NULL,
                is_fired        INTEGER NOT NULL DEFAULT 0,
                created_at      INTEGER NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_triggers_event ON triggers(event_id);

            CREATE VIRTUAL TABLE IF NOT EXISTS events_fts USING fts5(
                title,
                description,
                keywords,
                location,
                tokenize='unicode61'
            );
        """)
        conn.commit()

    # ------------------------------------------------------------------
    # Messages and contacts
    # ------------------------------------------------------------------

    def insert_message(self, message: Message) -> None:
        """Store a raw message. Re-delivered ids are ignored."""
        conn = self._get_connection()
        conn.execute(
            """
            INSERT OR IGNORE INTO messages (id, chat_id, sender, content, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (message.id, message.chat_id, message.sender, message.content, message.timestamp),
        )
        conn.commit()

    def get_recent_messages(self, chat_id: str, limit: int = 5) -> list[Message]:
        """Get the newest messages of a conversation, newest first."""
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT id, chat_id, sender, content, timestamp FROM messages
            WHERE chat_id = ?
            ORDER BY timestamp DESC, rowid DESC
            LIMIT ?
            """,
            (chat_id, limit),
        )
        return [
            Message(
                id=row["id"],
                chat_id=row["chat_id"],
                sender=row["sender"],
                content=row["content"],
                timestamp=row["timestamp"],
            )
            for row in cursor.fetchall()
        ]

    def upsert_contact(self, contact: Contact) -> None:
        """Insert a contact or bump its last_seen and message_count."""
        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO contacts (id, name, first_seen, last_seen, message_count)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = COALESCE(excluded.name, contacts.name),
                last_seen = MAX(contacts.last_seen, excluded.last_seen),
                message_count = contacts.message_count + excluded.message_count
            """,
            (
                contact.id,
                contact.name,
                contact.first_seen,
                contact.last_seen,
                contact.message_count,
            ),
        )
        conn.commit()

    def get_contact(self, contact_id: str) -> Contact | None:
        conn = self._get_connection()
        row = conn.execute(
            "SELECT id, name, first_seen, last_seen, message_count FROM contacts WHERE id = ?",
            (contact_id,),
        ).fetchone()
        if row is None:
            return None
        return Contact(
            id=row["id"],
            name=row["name"],
            first_seen=row["first_seen"],
            last_seen=row["last_seen"],
            message_count=row["message_count"],
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def insert_event(self, event: Event, now: int | None = None) -> int:
        """Insert an event and index it for full-text search.

        Returns:
            The new event id.
        """
        created_at = event.created_at if event.created_at is not None else _now(now)
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO events (
                message_id, event_type, title, description, event_time, location,
                participants, keywords, confidence, status, context_url,
                sender_name, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.message_id,
                event.event_type,
                event.title,
                event.description,
                event.event_time,
                event.location,
                json.dumps(event.participants),
                event.keywords,
                event.confidence,
                event.status,
                event.context_url,
                event.sender_name,
                created_at,
            ),
        )
        event_id = int(cursor.lastrowid)
        self._index_event(conn, event_id)
        conn.commit()
        return event_id

    def get_event(self, event_id: int) -> Event | None:
        conn = self._get_connection()
        row = conn.execute(
            f"SELECT {EVENT_COLUMNS} FROM events WHERE id = ?", (event_id,)
        ).fetchone()
        return self._row_to_event(row) if row else None

    def update_event(self, event_id: int, fields: dict[str, Any]) -> bool:
        """Overwrite the given fields of an event.

        Args:
            event_id: Event to update.
            fields: Column name to new value. Unknown columns are ignored.
                Participants may be given as a list.

        Returns:
            True if the event exists and was updated.
        """
        updates = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        if not updates:
            return False
        if isinstance(updates.get("participants"), list):
            updates["participants"] = json.dumps(updates["participants"])

        assignments = ", ".join(f"{column} = ?" for column in updates)
        conn = self._get_connection()
        cursor = conn.execute(
            f"UPDATE events SET {assignments} WHERE id = ?",
            (*updates.values(), event_id),
        )
        if cursor.rowcount > 0:
            self._index_event(conn, event_id)
        conn.commit()
        return cursor.rowcount > 0

    def delete_event(self, event_id: int) -> bool:
        """Delete an event; its triggers go with it."""
        conn = self._get_connection()
        cursor = conn.execute("DELETE FROM events WHERE id = ?", (event_id,))
        conn.execute("DELETE FROM events_fts WHERE rowid = ?", (event_id,))
        conn.commit()
        return cursor.rowcount > 0

    def complete_event(self, event_id: int) -> bool:
        return self._set_status(event_id, EventStatus.COMPLETED.value)

    def ignore_event(self, event_id: int) -> bool:
        return self._set_status(event_id, EventStatus.IGNORED.value)

    def snooze_event(self, event_id: int, minutes: int, now: int | None = None) -> bool:
        """Snooze an event; the scheduler re-arms it after `minutes`."""
        conn = self._get_connection()
        cursor = conn.execute(
            "UPDATE events SET status = ?, snoozed_until = ? WHERE id = ?",
            (EventStatus.SNOOZED.value, _now(now) + minutes * 60, event_id),
        )
        conn.commit()
        return cursor.rowcount > 0

    def get_active_events(self, limit: int = 20) -> list[Event]:
        """Get open events, most recently created first."""
        conn = self._get_connection()
        placeholders = ", ".join("?" for _ in ACTIVE_STATUSES)
        cursor = conn.execute(
            f"""
            SELECT {EVENT_COLUMNS} FROM events
            WHERE status IN ({placeholders})
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (*ACTIVE_STATUSES, limit),
        )
        return [self._row_to_event(row) for row in cursor.fetchall()]

    def find_active_events_by_keywords(
        self, keywords: list[str], limit: int = 5
    ) -> list[Event]:
        """Rank open events by how many keywords hit their title or keywords.

        Returns:
            Events with at least one hit, best match first.
        """
        terms = [k.strip().lower() for k in keywords if k and k.strip()]
        if not terms:
            return []

        score = " + ".join(
            "(lower(title) LIKE ? ESCAPE '\\' OR lower(keywords) LIKE ? ESCAPE '\\')"
            for _ in terms
        )
        score_params: list[Any] = []
        for term in terms:
            pattern = f"%{escape_like(term)}%"
            score_params.extend([pattern, pattern])

        placeholders = ", ".join("?" for _ in ACTIVE_STATUSES)
        conn = self._get_connection()
        cursor = conn.execute(
            f"""
            SELECT {EVENT_COLUMNS}, ({score}) AS score FROM events
            WHERE status IN ({placeholders})
            ORDER BY score DESC, created_at DESC, id DESC
            LIMIT ?
            """,
            (*score_params, *ACTIVE_STATUSES, limit),
        )
        return [self._row_to_event(row) for row in cursor.fetchall() if row["score"] > 0]

    def find_duplicate_event(
        self, title: str, hours: int = 48, now: int | None = None
    ) -> Event | None:
        """Find an event created in the last `hours` whose title matches."""
        since = _now(now) - hours * 3600
        conn = self._get_connection()
        cursor = conn.execute(
            f"""
            SELECT {EVENT_COLUMNS} FROM events
            WHERE created_at >= ?
            ORDER BY created_at DESC, id DESC
            """,
            (since,),
        )
        for row in cursor.fetchall():
            if titles_match(row["title"], title):
                return self._row_to_event(row)
        return None

    def check_event_conflicts(
        self, event_time: int, window_minutes: int = 60
    ) -> list[Event]:
        """Scheduled events whose time falls within ±window of event_time."""
        window = window_minutes * 60
        conn = self._get_connection()
        cursor = conn.execute(
            f"""
            SELECT {EVENT_COLUMNS} FROM events
            WHERE status = ? AND event_time BETWEEN ? AND ?
            ORDER BY event_time
            """,
            (EventStatus.SCHEDULED.value, event_time - window, event_time + window),
        )
        return [self._row_to_event(row) for row in cursor.fetchall()]

    def search_events_by_location(
        self,
        keyword: str,
        days: int = 90,
        limit: int = 10,
        now: int | None = None,
    ) -> list[Event]:
        """Open events whose location or context tag matches a keyword."""
        keyword = keyword.strip().lower()
        if not keyword:
            return []
        since = _now(now) - days * 86400
        placeholders = ", ".join("?" for _ in ACTIVE_STATUSES)
        conn = self._get_connection()
        cursor = conn.execute(
            f"""
            SELECT {EVENT_COLUMNS} FROM events
            WHERE (lower(location) LIKE ? ESCAPE '\\' OR lower(context_url) = ?)
              AND created_at >= ?
              AND status IN ({placeholders})
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (f"%{escape_like(keyword)}%", keyword, since, *ACTIVE_STATUSES, limit),
        )
        return [self._row_to_event(row) for row in cursor.fetchall()]

    def search_events_by_keywords(
        self,
        keywords: list[str],
        days: int = 90,
        limit: int = 10,
        now: int | None = None,
    ) -> list[Event]:
        """Full-text search over open events, most relevant first."""
        query = build_fts_query(keywords)
        if not query:
            return []
        since = _now(now) - days * 86400
        placeholders = ", ".join("?" for _ in ACTIVE_STATUSES)
        columns = ", ".join(f"e.{c.strip()}" for c in EVENT_COLUMNS.split(","))
        conn = self._get_connection()
        cursor = conn.execute(
            f"""
            SELECT {columns} FROM events_fts f
            JOIN events e ON e.id = f.rowid
            WHERE events_fts MATCH ?
              AND e.created_at >= ?
              AND e.status IN ({placeholders})
            ORDER BY bm25(events_fts)
            LIMIT ?
            """,
            (query, since, *ACTIVE_STATUSES, limit),
        )
        return [self._row_to_event(row) for row in cursor.fetchall()]

    def list_events(
        self,
        status: str = "all",
        limit: int = 50,
        offset: int = 0,
        now: int | None = None,
    ) -> list[Event]:
        """List events for display.

        Args:
            status: 'pending' (open, not yet past), 'completed', 'expired'
                (open but past) or 'all'.
        """
        current = _now(now)
        placeholders = ", ".join("?" for _ in ACTIVE_STATUSES)
        if status == "pending":
            where = f"status IN ({placeholders}) AND (event_time IS NULL OR event_time >= ?)"
            params: tuple[Any, ...] = (*ACTIVE_STATUSES, current)
        elif status == "completed":
            where = "status = ?"
            params = (EventStatus.COMPLETED.value,)
        elif status == EXPIRED:
            where = f"status IN ({placeholders}) AND event_time < ?"
            params = (*ACTIVE_STATUSES, current)
        elif status == "all":
            where = "1 = 1"
            params = ()
        else:
            raise ValueError(f"Unknown status filter: {status}")

        conn = self._get_connection()
        cursor = conn.execute(
            f"""
            SELECT {EVENT_COLUMNS} FROM events
            WHERE {where}
            ORDER BY created_at DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            (*params, limit, offset),
        )
        return [self._row_to_event(row) for row in cursor.fetchall()]

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def insert_trigger(self, trigger: Trigger, now: int | None = None) -> int:
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO triggers (event_id, trigger_type, trigger_value, is_fired, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                trigger.event_id,
                trigger.trigger_type,
                trigger.trigger_value,
                int(trigger.is_fired),
                trigger.created_at if trigger.created_at is not None else _now(now),
            ),
        )
        conn.commit()
        return int(cursor.lastrowid)

    def get_triggers(self, event_id: int) -> list[Trigger]:
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT id, event_id, trigger_type, trigger_value, is_fired, created_at
            FROM triggers WHERE event_id = ? ORDER BY id
            """,
            (event_id,),
        )
        return [
            Trigger(
                id=row["id"],
                event_id=row["event_id"],
                trigger_type=row["trigger_type"],
                trigger_value=row["trigger_value"],
                is_fired=bool(row["is_fired"]),
                created_at=row["created_at"],
            )
            for row in cursor.fetchall()
        ]

    def delete_time_triggers(self, event_id: int) -> int:
        """Drop every time trigger of an event, fired or not, before re-timing it."""
        time_types = [
            TriggerType.TIME_24H.value,
            TriggerType.TIME_1H.value,
            TriggerType.TIME_15M.value,
        ]
        conn = self._get_connection()
        cursor = conn.execute(
            """
            DELETE FROM triggers
            WHERE event_id = ? AND trigger_type IN (?, ?, ?)
            """,
            (event_id, *time_types),
        )
        conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ------------------------------------------------------------------

    def _set_status(self, event_id: int, status: str) -> bool:
        conn = self._get_connection()
        cursor = conn.execute(
            "UPDATE events SET status = ? WHERE id = ?", (status, event_id)
        )
        conn.commit()
        return cursor.rowcount > 0

    def _index_event(self, conn: sqlite3.Connection, event_id: int) -> None:
        """Refresh the full-text row for an event (caller commits)."""
        conn.execute("DELETE FROM events_fts WHERE rowid = ?", (event_id,))
        conn.execute(
            """
            INSERT INTO events_fts (rowid, title, description, keywords, location)
            SELECT id, title, COALESCE(description, ''),
                   replace(keywords, ',', ' '), COALESCE(location, '')
            FROM events WHERE id = ?
            """,
            (event_id,),
        )

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        """Convert a database row to an Event."""
        try:
            participants = json.loads(row["participants"] or "[]")
        except json.JSONDecodeError:
            logger.warning(f"Bad participants JSON on event #{row['id']}")
            participants = []
        if not isinstance(participants, list):
            participants = []
        return Event(
            id=row["id"],
            message_id=row["message_id"],
            event_type=row["event_type"],
            title=row["title"],
            description=row["description"],
            event_time=row["event_time"],
            location=row["location"],
            participants=[str(p) for p in participants],
            keywords=row["keywords"] or "",
            confidence=row["confidence"],
            status=row["status"],
            context_url=row["context_url"],
            sender_name=row["sender_name"],
            created_at=row["created_at"],
            snoozed_until=row["snoozed_until"],
        )


def _now(now: int | None) -> int:
    return int(time.time()) if now is None else now

