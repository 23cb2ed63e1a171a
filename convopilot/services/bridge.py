"""Dispatch pipeline: the single entry point for inbound chat events.

inbound event -> lifecycle (admit / activate / exit) -> aggregator (batch) ->
model -> directive executor -> transport -> lifecycle (finish)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from convopilot.logging_config import get_logger
from convopilot.services.debounce_service import BatchResult, MessageAggregator
from convopilot.services.directives import DirectiveExecutor, ExecutionContext, OutputKind, RenderedReply
from convopilot.services.directives import classify_model_output
from convopilot.services.history_service import ROLE_ASSISTANT, ROLE_OPERATOR, ROLE_USER, ChatHistoryStore, to_turns
from convopilot.services.lifecycle_service import ActivationContext, ActivationResult, ConversationLifecycleManager
from convopilot.services.llm import LLMError, LLMProvider, build_system_instructions
from convopilot.services.state_machine import ConversationState
from convopilot.services.transport_service import Transport

logger = get_logger("bridge")

OPENING_PROMPT = (
    "שלח הודעה ידידותית בעברית שממשיכה את השיחה. הודעה קצרה וחמה. אל תציין שם. "
    "אם יש היסטוריית שיחה - המשך אותה בצורה טבעית."
)


class DispatchOutcome(str, Enum):
    IGNORED = "ignored"
    OPERATOR_EXIT = "operator_exit"
    OPERATOR_MESSAGE = "operator_message"
    USER_EXIT = "user_exit"
    MANUAL_TAKEOVER = "manual_takeover"
    ACTIVATED = "activated"
    BATCHED = "batched"
    DEFERRED = "deferred"
    LLM_ERROR = "llm_error"
    DISCARDED = "discarded"
    FINISHED = "finished"
    EMPTY_REPLY = "empty_reply"
    SENT = "sent"


@dataclass(frozen=True)
class InboundEvent:
    user_id: str
    text: str
    from_me: bool = False
    timestamp: Optional[datetime] = None
    message_id: Optional[str] = None
    user_name: Optional[str] = None


class DispatchBridge:
    def __init__(
        self,
        lifecycle: ConversationLifecycleManager,
        aggregator: MessageAggregator,
        llm: LLMProvider,
        executor: DirectiveExecutor,
        transport: Transport,
        history: ChatHistoryStore,
        *,
        history_limit: int = 40,
        stale_event_seconds: float = 60.0,
        tz_name: str = "Asia/Jerusalem",
        started_at: Optional[datetime] = None,
    ):
        self.lifecycle = lifecycle
        self.aggregator = aggregator
        self.llm = llm
        self.executor = executor
        self.transport = transport
        self.history = history
        self.history_limit = history_limit
        self.stale_event_seconds = stale_event_seconds
        self.tz_name = tz_name
        self.started_at = started_at or datetime.now(timezone.utc)

        self.aggregator.overflow_handler = self.process_batch

    # ---------- exposed upward ----------

    def is_active(self, user_id: str) -> bool:
        return self.lifecycle.is_active(user_id)

    async def enqueue(self, user_id: str, text: str) -> BatchResult:
        return await self.aggregator.enqueue(self.lifecycle.canonical_id(user_id), text)

    def deactivate(self, user_id: str, finished: bool = False) -> bool:
        canonical = self.lifecycle.canonical_id(user_id)
        closed = self.lifecycle.deactivate(canonical, finished=finished)
        if closed:
            self.executor.forget(canonical)
        return closed

    def clear_finished(self, user_id: str) -> bool:
        return self.lifecycle.clear_finished(user_id)

    async def activate(self, user_id: str, context: Optional[ActivationContext] = None) -> ActivationResult:
        """Start a conversation and send the opening message.

        Idempotent; if the opening message cannot be generated the conversation
        goes back to its previous state.
        """
        result = self.lifecycle.activate(user_id, context)
        if not result.activated:
            return result

        canonical = result.user_id
        turns = to_turns(self.history.recent(canonical, self.history_limit))
        try:
            response = await self.llm.generate(
                turns,
                OPENING_PROMPT,
                system_instructions=self._system_instructions(),
            )
        except LLMError as e:
            logger.error(f"Opening message failed, activation rolled back: {e}", extra={"context": {"user_id": canonical}})
            self.lifecycle.deactivate(canonical, finished=result.previous_state == ConversationState.FINISHED)
            return ActivationResult(user_id=canonical, activated=False, previous_state=result.previous_state)

        await self._deliver(canonical, response.content)
        return result

    # ---------- pipeline ----------

    async def handle_inbound(self, event: InboundEvent) -> DispatchOutcome:
        text = (event.text or "").strip()
        if not text:
            return DispatchOutcome.IGNORED
        if self._is_stale(event):
            logger.debug("Stale event ignored", extra={"context": {"user_id": event.user_id}})
            return DispatchOutcome.IGNORED

        user_id = self.lifecycle.canonical_id(event.user_id)
        if not user_id:
            return DispatchOutcome.IGNORED

        if event.from_me:
            return self._handle_operator_message(user_id, text)

        last_outgoing = self.history.last_outgoing(user_id)
        self.history.record(user_id, ROLE_USER, text)

        if not self.lifecycle.is_active(user_id):
            if self.lifecycle.should_exit_by_user_words(text):
                return DispatchOutcome.IGNORED
            if not self.lifecycle.should_activate_by_words(user_id, text):
                return DispatchOutcome.IGNORED

            activation = await self.activate(user_id, ActivationContext(user_name=event.user_name))
            if activation.activated:
                logger.info("Conversation just activated, skipping duplicate processing", extra={"context": {"user_id": user_id}})
                return DispatchOutcome.ACTIVATED
            if not self.lifecycle.is_active(user_id):
                return DispatchOutcome.LLM_ERROR

        if self.lifecycle.should_exit_by_user_words(text):
            self.deactivate(user_id)
            logger.info("User exit word, conversation stopped", extra={"context": {"user_id": user_id}})
            return DispatchOutcome.USER_EXIT

        if self.lifecycle.is_manual_takeover(last_outgoing):
            self.deactivate(user_id)
            logger.info("Operator exit word in last message, conversation stopped", extra={"context": {"user_id": user_id}})
            return DispatchOutcome.MANUAL_TAKEOVER

        batch = await self.aggregator.enqueue(user_id, text)
        if not batch.should_process:
            return DispatchOutcome.DEFERRED if batch.deferred else DispatchOutcome.BATCHED

        return await self.process_batch(user_id, batch)

    async def process_batch(self, user_id: str, batch: BatchResult) -> DispatchOutcome:
        """Send one batch to the model and deliver the answer. Releases the batch lock."""
        try:
            if not self.lifecycle.is_active(user_id):
                logger.info("Conversation closed before batch was sent", extra={"context": {"user_id": user_id}})
                return DispatchOutcome.DISCARDED

            turns = to_turns(self.history.recent(user_id, self.history_limit), exclude_texts=batch.texts)
            logger.info(
                "Sending batch to model",
                extra={"context": {"user_id": user_id, "batch_id": batch.batch_id, "count": batch.count}},
            )
            try:
                response = await self.llm.generate(
                    turns,
                    batch.combined_text,
                    system_instructions=self._system_instructions(),
                )
            except LLMError as e:
                logger.error(f"Model call failed, nothing sent: {e}", extra={"context": {"user_id": user_id}})
                return DispatchOutcome.LLM_ERROR

            return await self._deliver(user_id, response.content)
        finally:
            self.aggregator.release(user_id, batch.batch_id)

    # ---------- internals ----------

    def _handle_operator_message(self, user_id: str, text: str) -> DispatchOutcome:
        self.history.record(user_id, ROLE_OPERATOR, text)
        if self.lifecycle.is_active(user_id) and self.lifecycle.should_exit_by_operator_words(text):
            self.deactivate(user_id)
            logger.info("Operator exit word, conversation stopped", extra={"context": {"user_id": user_id}})
            return DispatchOutcome.OPERATOR_EXIT
        return DispatchOutcome.OPERATOR_MESSAGE

    async def _deliver(self, user_id: str, raw_text: str) -> DispatchOutcome:
        conversation = self.lifecycle.get(user_id)
        if conversation is None or not conversation.is_active:
            logger.info("Conversation no longer active, answer discarded", extra={"context": {"user_id": user_id}})
            return DispatchOutcome.DISCARDED

        output = classify_model_output(raw_text)
        if output.kind == OutputKind.TERMINAL:
            self.deactivate(user_id, finished=True)
            logger.info(
                "Model ended the conversation",
                extra={"context": {"user_id": user_id, "reason": output.terminal_reason}},
            )
            return DispatchOutcome.FINISHED

        context = ExecutionContext(user_id=user_id, user_name=conversation.user_name)
        rendered = await self.executor.render(raw_text, context)

        if rendered.text or rendered.media:
            await self._send(user_id, rendered)
            if rendered.text:
                self.history.record(user_id, ROLE_ASSISTANT, rendered.text)
        else:
            logger.warning("Empty reply after directives, nothing sent", extra={"context": {"user_id": user_id}})

        if rendered.ends_conversation:
            self.deactivate(user_id, finished=True)
            logger.info("Booking completed, conversation finished", extra={"context": {"user_id": user_id}})
            return DispatchOutcome.FINISHED

        return DispatchOutcome.SENT if (rendered.text or rendered.media) else DispatchOutcome.EMPTY_REPLY

    async def _send(self, user_id: str, rendered: RenderedReply) -> bool:
        try:
            if rendered.media is not None:
                if await self.transport.send_media(user_id, rendered.media, caption=rendered.text):
                    return True
                logger.warning("Media send failed, falling back to caption", extra={"context": {"user_id": user_id}})
                if not rendered.text:
                    return False
            return await self.transport.send_text(user_id, rendered.text)
        except Exception as e:
            logger.error(f"Transport send failed: {e}", extra={"context": {"user_id": user_id}})
            return False

    def _system_instructions(self) -> str:
        return build_system_instructions(self.lifecycle.config_provider().instructions, tz_name=self.tz_name)

    def _is_stale(self, event: InboundEvent) -> bool:
        if event.timestamp is None:
            return False
        timestamp = event.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return timestamp < self.started_at - timedelta(seconds=self.stale_event_seconds)
