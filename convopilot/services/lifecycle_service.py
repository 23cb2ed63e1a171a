"""Conversation lifecycle: who the assistant may talk to, and when it must stop.

The manager is the only owner of conversation state. Callers get frozen
``Conversation`` snapshots; every state change goes through the transition
helpers in ``state_machine`` and is written through to the optional store.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from convopilot.logging_config import get_logger
from convopilot.models import ConversationRecord
from convopilot.services import state_machine
from convopilot.services.automation_settings_service import AutomationConfig, contains_any_word
from convopilot.services.history_service import ROLE_OPERATOR, StoredMessage
from convopilot.services.identity import normalize_user_id, phone_key
from convopilot.services.state_machine import ConversationState

logger = get_logger("lifecycle")


@dataclass(frozen=True)
class ActivationContext:
    user_name: Optional[str] = None
    user_number: Optional[str] = None


@dataclass(frozen=True)
class Conversation:
    user_id: str
    state: ConversationState = ConversationState.INACTIVE
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    user_name: Optional[str] = None
    user_number: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.state == ConversationState.ACTIVE


@dataclass(frozen=True)
class ActivationResult:
    user_id: str
    activated: bool
    previous_state: ConversationState


class ConversationStore(ABC):
    @abstractmethod
    def load_all(self) -> List[Conversation]:
        pass

    @abstractmethod
    def save(self, conversation: Conversation) -> None:
        pass


class SqlConversationStore(ConversationStore):
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def load_all(self) -> List[Conversation]:
        db = self.session_factory()
        try:
            rows = db.query(ConversationRecord).all()
            conversations = []
            for row in rows:
                try:
                    state = ConversationState(row.state)
                except ValueError:
                    logger.warning(f"Unknown conversation state {row.state!r}, treating as inactive")
                    state = ConversationState.INACTIVE
                conversations.append(
                    Conversation(
                        user_id=row.user_id,
                        state=state,
                        started_at=row.started_at,
                        finished_at=row.finished_at,
                        user_name=row.user_name,
                        user_number=row.user_number,
                    )
                )
            return conversations
        finally:
            db.close()

    def save(self, conversation: Conversation) -> None:
        db = self.session_factory()
        try:
            row = db.query(ConversationRecord).filter(ConversationRecord.user_id == conversation.user_id).first()
            if row is None:
                row = ConversationRecord(user_id=conversation.user_id, context={})
                db.add(row)
            row.state = conversation.state.value
            row.started_at = conversation.started_at
            row.finished_at = conversation.finished_at
            row.user_name = conversation.user_name
            row.user_number = conversation.user_number
            row.updated_at = datetime.now(timezone.utc)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class ConversationLifecycleManager:
    def __init__(
        self,
        config_provider: Callable[[], AutomationConfig],
        store: Optional[ConversationStore] = None,
    ):
        self.config_provider = config_provider
        self.store = store
        self._conversations: dict[str, Conversation] = {}

    # ---------- lookups ----------

    @staticmethod
    def canonical_id(raw_id: str | None) -> str:
        return normalize_user_id(raw_id)

    def get(self, user_id: str) -> Optional[Conversation]:
        return self._conversations.get(self.canonical_id(user_id))

    def is_active(self, user_id: str) -> bool:
        conversation = self.get(user_id)
        return conversation is not None and conversation.is_active

    def list_conversations(self, state: Optional[ConversationState] = None) -> List[Conversation]:
        conversations = sorted(self._conversations.values(), key=lambda c: c.user_id)
        if state is None:
            return conversations
        return [c for c in conversations if c.state == state]

    # ---------- transitions ----------

    def activate(self, user_id: str, context: Optional[ActivationContext] = None) -> ActivationResult:
        canonical = self.canonical_id(user_id)
        if not canonical:
            raise ValueError("user_id is required")

        current = self._conversations.get(canonical) or Conversation(user_id=canonical)
        if current.is_active:
            logger.debug("Already active", extra={"context": {"user_id": canonical}})
            return ActivationResult(user_id=canonical, activated=False, previous_state=current.state)

        context = context or ActivationContext()
        updated = replace(
            current,
            state=state_machine.activate(current.state),
            started_at=datetime.now(timezone.utc),
            finished_at=None,
            user_name=context.user_name or current.user_name,
            user_number=context.user_number or current.user_number or phone_key(canonical),
        )
        self._put(updated)
        logger.info(
            "Conversation activated",
            extra={"context": {"user_id": canonical, "previous_state": current.state.value}},
        )
        return ActivationResult(user_id=canonical, activated=True, previous_state=current.state)

    def deactivate(self, user_id: str, finished: bool = False) -> bool:
        canonical = self.canonical_id(user_id)
        current = self._conversations.get(canonical)
        if current is None or not current.is_active:
            return False

        if finished:
            updated = replace(
                current,
                state=state_machine.finish(current.state),
                finished_at=datetime.now(timezone.utc),
            )
        else:
            updated = replace(current, state=state_machine.stop(current.state))
        self._put(updated)
        logger.info(
            "Conversation closed",
            extra={"context": {"user_id": canonical, "state": updated.state.value}},
        )
        return True

    def clear_finished(self, user_id: str) -> bool:
        canonical = self.canonical_id(user_id)
        current = self._conversations.get(canonical)
        if current is None or current.state != ConversationState.FINISHED:
            return False
        self._put(replace(current, state=state_machine.clear_finished(current.state)))
        return True

    def restore(self) -> int:
        """Load persisted conversations; returns how many are active."""
        if self.store is None:
            return 0
        for conversation in self.store.load_all():
            self._conversations[conversation.user_id] = conversation
        active = sum(1 for c in self._conversations.values() if c.is_active)
        logger.info(
            "Conversations restored",
            extra={"context": {"total": len(self._conversations), "active": active}},
        )
        return active

    # ---------- vocabulary checks ----------

    def should_activate_by_words(self, user_id: str, text: str) -> bool:
        config = self.config_provider()
        if not config.is_auto or not config.activation_words:
            return False
        if self.is_active(user_id):
            return False
        return contains_any_word(text, config.activation_words)

    def should_exit_by_user_words(self, text: str) -> bool:
        config = self.config_provider()
        return config.is_auto and contains_any_word(text, config.user_exit_words)

    def should_exit_by_operator_words(self, text: str) -> bool:
        config = self.config_provider()
        return config.is_auto and contains_any_word(text, config.operator_exit_words)

    def is_manual_takeover(self, last_outgoing: Optional[StoredMessage]) -> bool:
        if last_outgoing is None or last_outgoing.role != ROLE_OPERATOR:
            return False
        return self.should_exit_by_operator_words(last_outgoing.content)

    # ---------- internals ----------

    def _put(self, conversation: Conversation) -> None:
        self._conversations[conversation.user_id] = conversation
        if self.store is None:
            return
        try:
            self.store.save(conversation)
        except Exception as e:
            logger.error(
                f"Failed to persist conversation: {e}",
                extra={"context": {"user_id": conversation.user_id, "state": conversation.state.value}},
            )
