import datetime
from datetime import timezone


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string, the format every stored timestamp uses."""
    return datetime.datetime.now(timezone.utc).isoformat()
