import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from sqlalchemy.orm import Session

from convopilot.logging_config import get_logger
from convopilot.models import ReadyMessage
from convopilot.services.transport_service import MediaPayload

logger = get_logger("ready_messages")


@dataclass(frozen=True)
class CannedReply:
    index: int
    text: str = ""
    media: Optional[MediaPayload] = None


class ReadyMessageStore(ABC):
    @abstractmethod
    def get_by_index(self, index: int) -> Optional[CannedReply]:
        pass


def _read_media(media_dir: Path, relative_path: str, mime_type: Optional[str]) -> Optional[MediaPayload]:
    normalized = (relative_path or "").strip().lstrip("/").replace("\\", "/")
    if not normalized:
        return None
    root = media_dir.resolve()
    path = (root / normalized).resolve()
    if root not in path.parents:
        logger.warning(f"Ready message media outside media dir: {relative_path}")
        return None
    if not path.is_file():
        logger.warning(f"Ready message media not found: {path}")
        return None
    guessed, _ = mimetypes.guess_type(path.name)
    return MediaPayload(
        data=path.read_bytes(),
        mime_type=mime_type or guessed or "application/octet-stream",
        filename=path.name,
    )


class SqlReadyMessageStore(ReadyMessageStore):
    def __init__(self, session_factory: Callable[[], Session], media_dir: str):
        self.session_factory = session_factory
        self.media_dir = Path(media_dir)

    def get_by_index(self, index: int) -> Optional[CannedReply]:
        db = self.session_factory()
        try:
            row = db.query(ReadyMessage).filter(ReadyMessage.index == index).first()
            if row is None:
                return None
            media = None
            if row.media_path:
                media = _read_media(self.media_dir, row.media_path, row.mime_type)
            return CannedReply(index=row.index, text=row.text or "", media=media)
        finally:
            db.close()
