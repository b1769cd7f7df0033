from datetime import UTC, datetime


def _utc_now() -> datetime:
    return datetime.now(UTC)
