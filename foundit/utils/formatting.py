from datetime import datetime, timezone
from typing import Optional


def to_datetime(value) -> Optional[datetime]:
    """Normalise a stored timestamp (datetime, epoch millis or ISO string) to an aware datetime."""
    if value is None:
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)

    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    return None


def epoch_millis(value) -> float:
    # missing timestamps sort as the earliest possible value
    ts = to_datetime(value)
    return ts.timestamp() * 1000 if ts else 0.0


def initials(name: str = "") -> str:
    parts = (name or "").strip().split()
    if not parts:
        return "?"

    first = parts[0][0]
    last = parts[-1][0] if len(parts) > 1 else ""
    return (first + last).upper()


def time_ago(created_at, now: Optional[datetime] = None) -> str:
    ts = to_datetime(created_at)
    if ts is None:
        return ""

    now = now or datetime.now(timezone.utc)
    diff = (now - ts).total_seconds() * 1000

    if diff < 60_000:
        return "just now"

    minutes = int(diff // 60_000)
    if minutes < 60:
        return f"{minutes}m ago"

    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"

    days = hours // 24
    if days < 7:
        return f"{days}d ago"

    weeks = days // 7
    if weeks < 5:
        return f"{weeks}w ago"

    months = days // 30
    if months < 12:
        return f"{months}mo ago"

    return f"{days // 365}y ago"
