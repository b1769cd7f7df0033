"""Cloud providers and the scanner resource lifecycle."""

from scanplane.provider.base import Provider
from scanplane.provider.lifecycle import ensure_deleted, ensure_exists
from scanplane.provider.poller import Backoff, poll_until_done
from scanplane.provider.tags import convert_tags, has_exclude_tags, has_include_tags

__all__ = [
    "Backoff",
    "Provider",
    "convert_tags",
    "ensure_deleted",
    "ensure_exists",
    "has_exclude_tags",
    "has_include_tags",
    "poll_until_done",
]
