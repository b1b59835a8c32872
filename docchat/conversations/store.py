from __future__ import annotations

"""Conversation persistence keyed by conversation identifier."""

import copy
import threading
from datetime import datetime, timezone
from typing import Callable, Protocol, Sequence

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
    select,
)
from sqlalchemy.exc import SQLAlchemyError

from docchat.rag.errors import PersistenceError
from docchat.rag.types import Conversation, ConversationSummary, Turn

Clock = Callable[[], datetime]

CONVERSATION_ID_MAX_LENGTH = 255


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ConversationStore(Protocol):
    """Key-value store of conversations."""

    def get(self, conversation_id: str) -> Conversation | None:
        raise NotImplementedError

    def append_turns(
        self, conversation_id: str, turns: Sequence[Turn], context: str
    ) -> Conversation:
        raise NotImplementedError

    def list_summaries(self) -> list[ConversationSummary]:
        raise NotImplementedError


class InMemoryConversationStore:
    """Process-local conversation store for development and tests."""
    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._conversations: dict[str, Conversation] = {}
        self._lock = threading.Lock()

    def get(self, conversation_id: str) -> Conversation | None:
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            return copy.deepcopy(conversation) if conversation else None

    def append_turns(
        self, conversation_id: str, turns: Sequence[Turn], context: str
    ) -> Conversation:
        """Create the conversation if absent, then append turns and context."""
        now = self._clock()
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                conversation = Conversation(
                    conversation_id=conversation_id,
                    turns=[],
                    context=context,
                    created_at=now,
                    updated_at=now,
                )
                self._conversations[conversation_id] = conversation
            conversation.turns.extend(turns)
            conversation.context = context
            conversation.updated_at = now
            return copy.deepcopy(conversation)

    def list_summaries(self) -> list[ConversationSummary]:
        with self._lock:
            summaries = [
                ConversationSummary(
                    conversation_id=item.conversation_id,
                    created_at=item.created_at,
                    updated_at=item.updated_at,
                    preview=item.turns[0].content if item.turns else None,
                )
                for item in self._conversations.values()
            ]
        summaries.sort(key=lambda summary: summary.updated_at, reverse=True)
        return summaries


class SQLConversationStore:
    """Store conversations and their turns in a SQL database."""
    def __init__(self, connection_uri: str, clock: Clock = utc_now) -> None:
        """Initialize the store and ensure tables exist."""
        self._clock = clock
        self._metadata = MetaData()
        self._conversations = Table(
            "conversations",
            self._metadata,
            Column(
                "conversation_id", String(CONVERSATION_ID_MAX_LENGTH), primary_key=True
            ),
            Column("context", Text, nullable=False, default=""),
            Column("created_at", DateTime(timezone=True), nullable=False),
            Column("updated_at", DateTime(timezone=True), nullable=False, index=True),
        )
        self._turns = Table(
            "conversation_turns",
            self._metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column(
                "conversation_id",
                String(CONVERSATION_ID_MAX_LENGTH),
                ForeignKey("conversations.conversation_id"),
                nullable=False,
                index=True,
            ),
            Column("position", Integer, nullable=False),
            Column("role", String(16), nullable=False),
            Column("content", Text, nullable=False),
            Column("created_at", DateTime(timezone=True), nullable=False),
        )
        try:
            self._engine = create_engine(connection_uri)
            self._metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Cannot open conversation store: {exc}") from exc

    def get(self, conversation_id: str) -> Conversation | None:
        """Load a conversation with its turns in order."""
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    select(self._conversations).where(
                        self._conversations.c.conversation_id == conversation_id
                    )
                ).first()
                if row is None:
                    return None
                turn_rows = conn.execute(
                    select(self._turns)
                    .where(self._turns.c.conversation_id == conversation_id)
                    .order_by(self._turns.c.position)
                ).all()
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc
        return Conversation(
            conversation_id=row.conversation_id,
            turns=[
                Turn(role=item.role, content=item.content, timestamp=_as_utc(item.created_at))
                for item in turn_rows
            ],
            context=row.context,
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
        )

    def append_turns(
        self, conversation_id: str, turns: Sequence[Turn], context: str
    ) -> Conversation:
        """Create the conversation if absent, then append turns in one transaction."""
        now = self._clock()
        try:
            with self._engine.begin() as conn:
                exists = conn.execute(
                    select(self._conversations.c.conversation_id).where(
                        self._conversations.c.conversation_id == conversation_id
                    )
                ).first()
                if exists is None:
                    conn.execute(
                        self._conversations.insert().values(
                            conversation_id=conversation_id,
                            context=context,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                    next_position = 0
                else:
                    conn.execute(
                        self._conversations.update()
                        .where(self._conversations.c.conversation_id == conversation_id)
                        .values(context=context, updated_at=now)
                    )
                    last = conn.execute(
                        select(func.max(self._turns.c.position)).where(
                            self._turns.c.conversation_id == conversation_id
                        )
                    ).scalar()
                    next_position = 0 if last is None else last + 1
                if turns:
                    conn.execute(
                        self._turns.insert(),
                        [
                            {
                                "conversation_id": conversation_id,
                                "position": next_position + offset,
                                "role": turn.role,
                                "content": turn.content,
                                "created_at": turn.timestamp,
                            }
                            for offset, turn in enumerate(turns)
                        ],
                    )
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc
        conversation = self.get(conversation_id)
        if conversation is None:
            raise PersistenceError(f"Conversation {conversation_id} vanished after write")
        return conversation

    def list_summaries(self) -> list[ConversationSummary]:
        """Return conversations with a first-message preview, newest update first."""
        first_turn = self._turns.alias("first_turn")
        query = (
            select(
                self._conversations.c.conversation_id,
                self._conversations.c.created_at,
                self._conversations.c.updated_at,
                first_turn.c.content,
            )
            .select_from(
                self._conversations.outerjoin(
                    first_turn,
                    (first_turn.c.conversation_id == self._conversations.c.conversation_id)
                    & (first_turn.c.position == 0),
                )
            )
            .order_by(self._conversations.c.updated_at.desc())
        )
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(query).all()
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc
        return [
            ConversationSummary(
                conversation_id=row.conversation_id,
                created_at=_as_utc(row.created_at),
                updated_at=_as_utc(row.updated_at),
                preview=row.content,
            )
            for row in rows
        ]


def _as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo; treat naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
