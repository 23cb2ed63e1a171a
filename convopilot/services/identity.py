"""WhatsApp address normalization.

The transport reports the same person as ``972501234567@c.us`` or
``972501234567@s.whatsapp.net`` depending on the event source. All state is
keyed by the ``@s.whatsapp.net`` form.
"""

LEGACY_SUFFIX = "@c.us"
CANONICAL_SUFFIX = "@s.whatsapp.net"


def normalize_user_id(raw_id: str | None) -> str:
    if not raw_id or not isinstance(raw_id, str):
        return ""
    trimmed = raw_id.strip()
    if trimmed.endswith(LEGACY_SUFFIX):
        return trimmed[: -len(LEGACY_SUFFIX)] + CANONICAL_SUFFIX
    return trimmed


def phone_key(user_id: str | None) -> str:
    """972501234567@c.us -> 972501234567"""
    if not user_id or not isinstance(user_id, str):
        return ""
    return user_id.split("@", 1)[0].strip()
