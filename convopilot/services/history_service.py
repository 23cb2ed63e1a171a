from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from convopilot.logging_config import get_logger
from convopilot.models import ChatMessage

logger = get_logger("history")

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_OPERATOR = "operator"

OUTGOING_ROLES = (ROLE_ASSISTANT, ROLE_OPERATOR)


@dataclass(frozen=True)
class StoredMessage:
    role: str
    content: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class ChatTurn:
    """One turn of model history; role is "user" or "assistant"."""

    role: str
    text: str


class ChatHistoryStore(ABC):
    """Per-user message log."""

    @abstractmethod
    def record(self, user_id: str, role: str, content: str) -> None:
        pass

    @abstractmethod
    def recent(self, user_id: str, limit: int) -> List[StoredMessage]:
        """Newest ``limit`` messages, oldest first."""
        pass

    @abstractmethod
    def last_outgoing(self, user_id: str) -> Optional[StoredMessage]:
        """Most recent assistant or operator message."""
        pass


class SqlChatHistoryStore(ChatHistoryStore):
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def record(self, user_id: str, role: str, content: str) -> None:
        db = self.session_factory()
        try:
            db.add(
                ChatMessage(
                    user_id=user_id,
                    role=role,
                    content=content,
                    created_at=datetime.now(timezone.utc),
                )
            )
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to record message: {e}", extra={"context": {"user_id": user_id, "role": role}})
        finally:
            db.close()

    def recent(self, user_id: str, limit: int) -> List[StoredMessage]:
        db = self.session_factory()
        try:
            rows = (
                db.query(ChatMessage)
                .filter(ChatMessage.user_id == user_id)
                .order_by(ChatMessage.created_at.desc())
                .limit(limit)
                .all()
            )
            return [StoredMessage(role=r.role, content=r.content or "", created_at=r.created_at) for r in reversed(rows)]
        finally:
            db.close()

    def last_outgoing(self, user_id: str) -> Optional[StoredMessage]:
        db = self.session_factory()
        try:
            row = (
                db.query(ChatMessage)
                .filter(ChatMessage.user_id == user_id, ChatMessage.role.in_(OUTGOING_ROLES))
                .order_by(ChatMessage.created_at.desc())
                .first()
            )
            if row is None:
                return None
            return StoredMessage(role=row.role, content=row.content or "", created_at=row.created_at)
        finally:
            db.close()


def to_turns(messages: Iterable[StoredMessage], exclude_texts: Iterable[str] = ()) -> List[ChatTurn]:
    """Convert stored messages into model history.

    Operator messages count as assistant turns. The newest user message matching
    each of ``exclude_texts`` is dropped (the batch being answered is sent as the
    prompt, not as history). Leading assistant turns are trimmed.
    """
    messages = list(messages)
    pending = [t.strip() for t in exclude_texts if t and t.strip()]
    skipped = set()
    for position in range(len(messages) - 1, -1, -1):
        if not pending:
            break
        message = messages[position]
        content = (message.content or "").strip()
        if message.role == ROLE_USER and content in pending:
            pending.remove(content)
            skipped.add(position)

    turns = []
    for position, message in enumerate(messages):
        if position in skipped:
            continue
        text = (message.content or "").strip()
        if not text:
            continue
        role = ROLE_USER if message.role == ROLE_USER else ROLE_ASSISTANT
        if not turns and role != ROLE_USER:
            continue
        turns.append(ChatTurn(role=role, text=text))
    return turns
