import re
from dataclasses import dataclass
from typing import Mapping, Optional

from convopilot.logging_config import get_logger
from convopilot.services.directives.base import CommandResult, ExecutionContext, UserSession
from convopilot.services.directives.grammar import IndexDirective, NamedDirective, parse_directives
from convopilot.services.directives.handlers import Handler
from convopilot.services.directives.replies import reply
from convopilot.services.ready_message_service import CannedReply, ReadyMessageStore
from convopilot.services.transport_service import MediaPayload

logger = get_logger("directives.executor")

TEXT_PLACEHOLDER = "[TEXT]"

_SPACES = re.compile(r"[ \t]+")
_SPACES_AROUND_NEWLINE = re.compile(r" *\n *")
_EXTRA_NEWLINES = re.compile(r"\n{3,}")


def clean_whitespace(text: str) -> str:
    """Collapse gaps left by removed directives; keep line breaks."""
    text = _SPACES.sub(" ", text.replace("\r\n", "\n"))
    text = _SPACES_AROUND_NEWLINE.sub("\n", text)
    text = _EXTRA_NEWLINES.sub("\n\n", text)
    return text.strip()


@dataclass(frozen=True)
class RenderedReply:
    text: str
    media: Optional[MediaPayload] = None
    ends_conversation: bool = False
    results: tuple = ()
    index: Optional[int] = None


class DirectiveExecutor:
    """Runs the directives in a model reply and builds the text the user sees."""

    def __init__(self, handlers: Mapping[str, Handler], ready_messages: Optional[ReadyMessageStore] = None):
        self.handlers = dict(handlers)
        self.ready_messages = ready_messages
        self._sessions: dict[str, UserSession] = {}

    def session_for(self, user_id: str) -> UserSession:
        session = self._sessions.get(user_id)
        if session is None:
            session = UserSession()
            self._sessions[user_id] = session
        return session

    def forget(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)

    async def execute(self, directive: NamedDirective, context: ExecutionContext) -> CommandResult:
        handler = self.handlers.get(directive.name)
        if handler is None:
            logger.warning(
                f"Unknown directive dropped: {directive.name}",
                extra={"context": {"user_id": context.user_id}},
            )
            return CommandResult()

        try:
            result = await handler(dict(directive.params), context, self.session_for(context.user_id))
        except Exception as e:
            logger.error(
                f"Error executing {directive.name}: {e}",
                extra={"context": {"user_id": context.user_id, "params": directive.params}},
                exc_info=True,
            )
            return CommandResult(replacement_text=reply("middleware_error"))

        logger.info(
            f"Executed {directive.name}",
            extra={
                "context": {
                    "user_id": context.user_id,
                    "ends_conversation": result.ends_conversation,
                    "side_effects": result.side_effects,
                }
            },
        )
        return result

    async def render(self, raw_text: str | None, context: ExecutionContext) -> RenderedReply:
        raw_text = raw_text or ""
        directives = parse_directives(raw_text)

        # captured before any handler output is spliced in
        index = next((d.index for d in directives if isinstance(d, IndexDirective)), None)

        pieces = []
        results = []
        cursor = 0
        for directive in directives:
            start, end = directive.span
            pieces.append(raw_text[cursor:start])
            if isinstance(directive, NamedDirective):
                result = await self.execute(directive, context)
                results.append(result)
                pieces.append(result.replacement_text or " ")
            else:
                if not isinstance(directive, IndexDirective):
                    logger.debug(f"Malformed directive removed: {directive.raw!r}")
                pieces.append(" ")
            cursor = end
        pieces.append(raw_text[cursor:])

        text = clean_whitespace("".join(pieces))
        ends_conversation = any(r.ends_conversation for r in results)

        media = None
        if index is not None:
            canned = self._lookup(index)
            if canned is not None:
                text = clean_whitespace(canned.text.replace(TEXT_PLACEHOLDER, text))
                media = canned.media
            else:
                logger.info(f"No ready message for INDEX={index}, sending text only")

        return RenderedReply(
            text=text,
            media=media,
            ends_conversation=ends_conversation,
            results=tuple(results),
            index=index,
        )

    def _lookup(self, index: int) -> Optional[CannedReply]:
        if self.ready_messages is None:
            return None
        try:
            return self.ready_messages.get_by_index(index)
        except Exception as e:
            logger.error(f"Failed to load ready message {index}: {e}")
            return None
