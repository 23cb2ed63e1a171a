from functools import lru_cache
from pathlib import Path

import yaml

from convopilot.logging_config import get_logger

logger = get_logger("directives.replies")

REPLIES_PATH = Path(__file__).with_name("replies.yaml")


class _BlankMissing(dict):
    def __missing__(self, key):
        return ""


@lru_cache(maxsize=1)
def load_replies(path: str = str(REPLIES_PATH)) -> dict:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        logger.error(f"Reply catalogue is not a mapping: {path}")
        return {}
    return {str(k): str(v) for k, v in data.items()}


def reply(key: str, **values) -> str:
    """Catalogue text for ``key`` with placeholders filled; the key itself if missing."""
    template = load_replies().get(key)
    if template is None:
        logger.warning(f"Missing reply text: {key}")
        return key
    return template.format_map(_BlankMissing(values))
