from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from convopilot.logging_config import get_logger
from convopilot.models import AutomationSettings

logger = get_logger("automation_settings")


class ProcessMode(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"


@dataclass(frozen=True)
class AutomationConfig:
    mode: ProcessMode = ProcessMode.MANUAL
    activation_words: tuple[str, ...] = field(default_factory=tuple)
    user_exit_words: tuple[str, ...] = field(default_factory=tuple)
    operator_exit_words: tuple[str, ...] = field(default_factory=tuple)
    instructions: str = ""

    @property
    def is_auto(self) -> bool:
        return self.mode == ProcessMode.AUTO


def parse_words(raw) -> tuple[str, ...]:
    """Accept "a, b ,c" or ["a", "b"]; drop blanks."""
    if raw is None:
        return ()
    if isinstance(raw, str):
        items: Iterable = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        items = raw
    else:
        return ()
    return tuple(str(item).strip() for item in items if item is not None and str(item).strip())


def contains_any_word(text: str | None, words: Iterable[str]) -> bool:
    """Case-insensitive substring match."""
    if not text:
        return False
    lowered = text.lower()
    return any(word and word.lower() in lowered for word in words)


def _parse_mode(value: str | None) -> ProcessMode:
    try:
        return ProcessMode((value or "").strip().lower())
    except ValueError:
        return ProcessMode.MANUAL


def _to_config(row: Optional[AutomationSettings]) -> AutomationConfig:
    if row is None:
        return AutomationConfig()
    return AutomationConfig(
        mode=_parse_mode(row.mode),
        activation_words=parse_words(row.activation_words),
        user_exit_words=parse_words(row.user_exit_words),
        operator_exit_words=parse_words(row.operator_exit_words),
        instructions=row.instructions or "",
    )


def get_automation_config(db: Session) -> AutomationConfig:
    row = db.query(AutomationSettings).filter(AutomationSettings.id == 1).first()
    return _to_config(row)


def update_automation_config(
    db: Session,
    *,
    mode: Optional[str] = None,
    activation_words=None,
    user_exit_words=None,
    operator_exit_words=None,
    instructions: Optional[str] = None,
) -> AutomationConfig:
    """Partial update; fields left as None keep their stored value."""
    row = db.query(AutomationSettings).filter(AutomationSettings.id == 1).first()
    if row is None:
        row = AutomationSettings(id=1, mode=ProcessMode.MANUAL.value)
        db.add(row)

    if mode is not None:
        row.mode = _parse_mode(mode).value
    if activation_words is not None:
        row.activation_words = ", ".join(parse_words(activation_words))
    if user_exit_words is not None:
        row.user_exit_words = ", ".join(parse_words(user_exit_words))
    if operator_exit_words is not None:
        row.operator_exit_words = ", ".join(parse_words(operator_exit_words))
    if instructions is not None:
        row.instructions = instructions
    row.updated_at = datetime.now(timezone.utc)
    db.flush()

    logger.info("Automation settings updated", extra={"context": {"mode": row.mode}})
    return _to_config(row)


def make_config_provider(session_factory: Callable[[], Session]) -> Callable[[], AutomationConfig]:
    """Provider that re-reads the settings row on every call."""

    def provider() -> AutomationConfig:
        db = session_factory()
        try:
            return get_automation_config(db)
        except Exception as e:
            logger.error(f"Failed to load automation settings, using manual mode: {e}")
            return AutomationConfig()
        finally:
            db.close()

    return provider
