from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

DATETIME_PLACEHOLDER = "{{CURRENT_DATETIME}}"


def current_datetime_context(now: Optional[datetime] = None, tz_name: str = "Asia/Jerusalem") -> str:
    now = now or datetime.now(timezone.utc)
    local = now.astimezone(ZoneInfo(tz_name))
    return f"{now.astimezone(timezone.utc).isoformat()} (שעון ישראל: {local.strftime('%d.%m.%Y %H:%M:%S')})"


def build_system_instructions(base: str | None, now: Optional[datetime] = None, tz_name: str = "Asia/Jerusalem") -> str:
    """Inject the current date and time into the operator's instructions.

    Replaces every {{CURRENT_DATETIME}} if present, otherwise prefixes a header.
    """
    base = (base or "").strip()
    stamp = current_datetime_context(now, tz_name)
    if DATETIME_PLACEHOLDER in base:
        return base.replace(DATETIME_PLACEHOLDER, stamp)
    return f"[הקשר זמן]\nהתאריך והשעה המדויקים כרגע: {stamp}\n\n{base}"
