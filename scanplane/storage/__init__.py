"""Persistence of target scan results."""

from scanplane.storage.result_notifier import ScanResultNotifier
from scanplane.storage.scan_results import (
    ScanResultsStore,
    bump_revision,
    check_revision_etag,
    merge_patch,
)

__all__ = [
    "ScanResultNotifier",
    "ScanResultsStore",
    "bump_revision",
    "check_revision_etag",
    "merge_patch",
]
