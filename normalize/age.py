from datetime import datetime, timezone
from typing import Optional


def short_human_duration(seconds: float) -> str:
    """Compact age string in the style kubectl prints: 45s, 12m, 5h, 3d, 2y."""
    if seconds < -1:
        return "<invalid>"
    if seconds < 0:
        return "0s"
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h"
    if hours < 24 * 365:
        return f"{hours // 24}d"
    return f"{hours // (24 * 365)}y"


def age_since(created: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Age of an object created at `created`, or "<unknown>" if the timestamp is missing."""
    if created is None:
        return "<unknown>"
    if now is None:
        now = datetime.now(timezone.utc)
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return short_human_duration((now - created).total_seconds())
