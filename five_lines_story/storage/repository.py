"""
Repository pattern for data access.

Handles database operations and data persistence logic.
"""

import json
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.token_counter import TokenUsage
from ..timeutils import next_month_start, parse_timestamp, utc_now
from .db import DEFAULT_DB_PATH, get_connection
from .models import Conversation, UsageEvent, User, UserLimits

HISTORY_LIMIT = 50

PROMPT_TYPES = ("suggest_paths", "generate_story", "refine_line")


@dataclass(frozen=True)
class PlanDefaults:
    """Values a new user_limits row starts with."""
    plan_type: str = "unlimited"
    monthly_story_limit: int = 999999
    tokens_limit_monthly: int = 999999999


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create all tables if they don't exist.

    usage_events is an append-only ledger: no UPDATE or DELETE is ever
    issued against it.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                user_input TEXT NOT NULL,
                ai_response TEXT NOT NULL,
                title TEXT,
                prompt_used TEXT,
                prompt_type TEXT NOT NULL
                    CHECK (prompt_type IN ('suggest_paths', 'generate_story', 'refine_line')),
                tokens_used INTEGER NOT NULL,
                input_tokens INTEGER NOT NULL,
                output_tokens INTEGER NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_conversations_user_created
                ON conversations (user_id, created_at);

            CREATE TABLE IF NOT EXISTS user_limits (
                user_id TEXT PRIMARY KEY,
                plan_type TEXT NOT NULL,
                monthly_story_limit INTEGER NOT NULL,
                tokens_limit_monthly INTEGER NOT NULL,
                stories_used_this_month INTEGER NOT NULL DEFAULT 0,
                tokens_used_this_month INTEGER NOT NULL DEFAULT 0,
                limit_reset_date TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS usage_events (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                prompt_type TEXT NOT NULL,
                model TEXT NOT NULL,
                tokens_used INTEGER NOT NULL,
                input_tokens INTEGER NOT NULL,
                output_tokens INTEGER NOT NULL,
                cost_usd REAL NOT NULL,
                conversation_id TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_usage_events_user_created
                ON usage_events (user_id, created_at);

            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT NOT NULL,
                created_at TEXT NOT NULL
            );
        """)
        conn.commit()
    finally:
        conn.close()


def _new_id() -> str:
    return str(uuid.uuid4())


def _row_to_conversation(row: sqlite3.Row) -> Conversation:
    return Conversation(
        id=row["id"],
        user_id=row["user_id"],
        user_input=row["user_input"],
        ai_response=json.loads(row["ai_response"]),
        prompt_type=row["prompt_type"],
        input_tokens=row["input_tokens"],
        output_tokens=row["output_tokens"],
        tokens_used=row["tokens_used"],
        created_at=parse_timestamp(row["created_at"]),
        title=row["title"],
        prompt_used=row["prompt_used"]
    )


def _row_to_limits(row: sqlite3.Row) -> UserLimits:
    return UserLimits(
        user_id=row["user_id"],
        plan_type=row["plan_type"],
        monthly_story_limit=row["monthly_story_limit"],
        tokens_limit_monthly=row["tokens_limit_monthly"],
        stories_used_this_month=row["stories_used_this_month"],
        tokens_used_this_month=row["tokens_used_this_month"],
        limit_reset_date=parse_timestamp(row["limit_reset_date"])
    )


def _row_to_event(row: sqlite3.Row) -> UsageEvent:
    return UsageEvent(
        id=row["id"],
        user_id=row["user_id"],
        prompt_type=row["prompt_type"],
        model=row["model"],
        input_tokens=row["input_tokens"],
        output_tokens=row["output_tokens"],
        tokens_used=row["tokens_used"],
        cost_usd=row["cost_usd"],
        created_at=parse_timestamp(row["created_at"]),
        conversation_id=row["conversation_id"]
    )


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        created_at=parse_timestamp(row["created_at"])
    )


def new_conversation(
    user_id: str,
    user_input: str,
    ai_response: Dict[str, Any],
    prompt_type: str,
    usage: TokenUsage,
    title: Optional[str] = None,
    prompt_used: Optional[str] = None,
    created_at: Optional[datetime] = None
) -> Conversation:
    """Build an unsaved conversation with a fresh id.

    tokens_used is always derived from ``usage``; callers cannot supply it.
    """
    return Conversation(
        id=_new_id(),
        user_id=user_id,
        user_input=user_input,
        ai_response=ai_response,
        prompt_type=prompt_type,
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        tokens_used=usage.total_tokens,
        created_at=created_at or utc_now(),
        title=title,
        prompt_used=prompt_used
    )


def _insert_conversation(conn: sqlite3.Connection, conversation: Conversation) -> None:
    conn.execute("""
        INSERT INTO conversations
        (id, user_id, user_input, ai_response, title, prompt_used,
         prompt_type, tokens_used, input_tokens, output_tokens, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, (
        conversation.id,
        conversation.user_id,
        conversation.user_input,
        json.dumps(conversation.ai_response, ensure_ascii=False),
        conversation.title,
        conversation.prompt_used,
        conversation.prompt_type,
        conversation.tokens_used,
        conversation.input_tokens,
        conversation.output_tokens,
        conversation.created_at.isoformat()
    ))


class ConversationStore:
    """Persists story exchanges and serves a user's history."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def insert(
        self,
        user_id: str,
        user_input: str,
        ai_response: Dict[str, Any],
        prompt_type: str,
        usage: TokenUsage,
        title: Optional[str] = None,
        prompt_used: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> Conversation:
        """Insert one conversation and return the stored row.

        Returns:
            The Conversation including its generated id
        """
        conversation = new_conversation(
            user_id, user_input, ai_response, prompt_type, usage,
            title=title, prompt_used=prompt_used, created_at=created_at
        )
        conn = get_connection(self.db_path)
        try:
            _insert_conversation(conn, conversation)
            conn.commit()
        finally:
            conn.close()
        return conversation

    def list_recent(self, user_id: str, limit: int = HISTORY_LIMIT) -> List[Conversation]:
        """Fetch the user's conversations, newest first.

        Args:
            user_id: Owner of the conversations
            limit: Maximum rows to return, capped at HISTORY_LIMIT

        Returns:
            At most ``min(limit, HISTORY_LIMIT)`` conversations
        """
        limit = max(0, min(limit, HISTORY_LIMIT))
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT * FROM conversations
                WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
            """, (user_id, limit))
            return [_row_to_conversation(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get(self, conversation_id: str) -> Optional[Conversation]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
            ).fetchone()
            return _row_to_conversation(row) if row else None
        finally:
            conn.close()

    def delete(self, user_id: str, conversation_id: str) -> bool:
        """Delete a conversation owned by ``user_id``.

        Returns:
            True if a row was removed
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "DELETE FROM conversations WHERE id = ? AND user_id = ?",
                (conversation_id, user_id)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()


class UsageLedger:
    """Monthly counters and the append-only usage event ledger.

    Every write runs inside a ``BEGIN IMMEDIATE`` transaction and counters
    are changed with ``SET x = x + ?``, so concurrent requests for the same
    user serialize on the SQLite write lock instead of overwriting each other.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, plan: Optional[PlanDefaults] = None):
        self.db_path = db_path
        self.plan = plan or PlanDefaults()

    def _ensure_limits(self, conn: sqlite3.Connection, user_id: str, now: datetime) -> UserLimits:
        """Create the user's row if missing and apply the monthly rollover."""
        conn.execute("""
            INSERT OR IGNORE INTO user_limits
            (user_id, plan_type, monthly_story_limit, tokens_limit_monthly,
             stories_used_this_month, tokens_used_this_month, limit_reset_date, updated_at)
            VALUES (?, ?, ?, ?, 0, 0, ?, ?)
        """, (
            user_id,
            self.plan.plan_type,
            self.plan.monthly_story_limit,
            self.plan.tokens_limit_monthly,
            next_month_start(now).isoformat(),
            now.isoformat()
        ))
        row = conn.execute(
            "SELECT * FROM user_limits WHERE user_id = ?", (user_id,)
        ).fetchone()
        limits = _row_to_limits(row)

        if now >= limits.limit_reset_date:
            conn.execute("""
                UPDATE user_limits
                SET stories_used_this_month = 0,
                    tokens_used_this_month = 0,
                    limit_reset_date = ?,
                    updated_at = ?
                WHERE user_id = ?
            """, (next_month_start(now).isoformat(), now.isoformat(), user_id))
            row = conn.execute(
                "SELECT * FROM user_limits WHERE user_id = ?", (user_id,)
            ).fetchone()
            limits = _row_to_limits(row)
        return limits

    def ensure_limits(self, user_id: str, now: Optional[datetime] = None) -> UserLimits:
        """Return the user's limits row, creating it with plan defaults if needed."""
        now = now or utc_now()
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            limits = self._ensure_limits(conn, user_id, now)
            conn.commit()
            return limits
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def record(
        self,
        user_id: str,
        prompt_type: str,
        model: str,
        usage: TokenUsage,
        cost_usd: float,
        conversation_id: Optional[str] = None,
        count_story: bool = False,
        now: Optional[datetime] = None,
        conversation: Optional[Conversation] = None
    ) -> UsageEvent:
        """Apply a usage delta to the counters and append one usage event.

        When ``conversation`` is given it is inserted in the same transaction
        and the event links to it. All writes commit together or not at all.

        Args:
            user_id: User the tokens are charged to
            prompt_type: Kind of exchange
            model: Model identifier used for the call
            usage: Token counts reported by the provider
            cost_usd: Precomputed cost of the call
            conversation_id: Conversation the call produced or refined
            count_story: Whether to increment stories_used_this_month
            now: Timestamp to record (defaults to now, UTC)
            conversation: Unsaved conversation produced by the call

        Returns:
            The appended UsageEvent
        """
        now = now or utc_now()
        if conversation is not None:
            conversation_id = conversation.id
        event = UsageEvent(
            id=_new_id(),
            user_id=user_id,
            prompt_type=prompt_type,
            model=model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            tokens_used=usage.total_tokens,
            cost_usd=cost_usd,
            created_at=now,
            conversation_id=conversation_id
        )
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            if conversation is not None:
                _insert_conversation(conn, conversation)
            self._ensure_limits(conn, user_id, now)
            conn.execute("""
                UPDATE user_limits
                SET stories_used_this_month = stories_used_this_month + ?,
                    tokens_used_this_month = tokens_used_this_month + ?,
                    updated_at = ?
                WHERE user_id = ?
            """, (1 if count_story else 0, usage.total_tokens, now.isoformat(), user_id))
            conn.execute("""
                INSERT INTO usage_events
                (id, user_id, prompt_type, model, tokens_used, input_tokens,
                 output_tokens, cost_usd, conversation_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                event.id,
                event.user_id,
                event.prompt_type,
                event.model,
                event.tokens_used,
                event.input_tokens,
                event.output_tokens,
                event.cost_usd,
                event.conversation_id,
                event.created_at.isoformat()
            ))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return event

    def fetch_recent_events(
        self,
        user_id: Optional[str] = None,
        prompt_type: Optional[str] = None,
        limit: int = 100,
        since: Optional[datetime] = None
    ) -> List[UsageEvent]:
        """Fetch recent usage events, optionally filtered by user, kind and start time.

        Returns events in reverse chronological order (newest first).
        """
        conn = get_connection(self.db_path)
        try:
            query = "SELECT * FROM usage_events"
            params: List[Any] = []
            conditions = []

            if user_id:
                conditions.append("user_id = ?")
                params.append(user_id)
            if prompt_type:
                conditions.append("prompt_type = ?")
                params.append(prompt_type)
            if since is not None:
                conditions.append("created_at >= ?")
                params.append(since.isoformat())

            if conditions:
                query += " WHERE " + " AND ".join(conditions)

            query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
            params.append(limit)

            cursor = conn.execute(query, params)
            return [_row_to_event(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def total_cost(self, user_id: str, since: Optional[datetime] = None) -> float:
        """Sum cost_usd of the user's events, optionally from ``since`` on."""
        conn = get_connection(self.db_path)
        try:
            query = "SELECT SUM(cost_usd) FROM usage_events WHERE user_id = ?"
            params: List[Any] = [user_id]
            if since is not None:
                query += " AND created_at >= ?"
                params.append(since.isoformat())
            row = conn.execute(query, params).fetchone()
            return float(row[0] or 0)
        finally:
            conn.close()


class UserStore:
    """Basic access to the standalone users table."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def list_all(self) -> List[User]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT * FROM users ORDER BY created_at DESC, rowid DESC"
            )
            return [_row_to_user(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def create(self, name: str, email: str) -> User:
        user = User(id=_new_id(), name=name, email=email, created_at=utc_now())
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO users (id, name, email, created_at) VALUES (?, ?, ?, ?)",
                (user.id, user.name, user.email, user.created_at.isoformat())
            )
            conn.commit()
        finally:
            conn.close()
        return user

    def get(self, user_id: str) -> Optional[User]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return _row_to_user(row) if row else None
        finally:
            conn.close()
