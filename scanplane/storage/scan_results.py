"""File-based store for target scan result documents.

Directory structure:
    data/
    └── scan_results/{id}.json    # One TargetScanResult per file

Every write bumps the document revision. Callers may pass the revision they
read as `if_match` to detect concurrent modification.
"""

import json
import logging
import uuid
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from scanplane.consts import DEFAULT_DATA_DIR
from scanplane.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    StorageError,
)
from scanplane.models.model_scan_result import TargetScanResult

logger = logging.getLogger(__name__)


def merge_patch(target: Any, patch: Any) -> Any:
    """Apply a JSON merge patch (RFC 7386).

    Objects are merged recursively, null removes a member, and any other
    value replaces the target value.
    """
    if not isinstance(patch, dict):
        return patch
    result = dict(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


def check_revision_etag(if_match: int | None, revision: int | None) -> None:
    """Raise PreconditionFailedError when if_match does not match the stored revision."""
    if if_match is None:
        return
    if revision is None or if_match != revision:
        raise PreconditionFailedError(
            f"Revision {revision} does not match {if_match}. "
            "The object may have been modified since you started the request.",
            details={"revision": revision, "if_match": if_match},
        )


def bump_revision(revision: int | None) -> int:
    return revision + 1 if revision is not None else 1


def _check_relationships(scan_result: TargetScanResult) -> None:
    if not scan_result.scan.id:
        raise BadRequestError("scan.id is a required field")
    if not scan_result.target.id:
        raise BadRequestError("target.id is a required field")


class ScanResultsStore:
    """JSON file store of TargetScanResult documents.

    At most one document may exist per (scan.id, target.id) pair. The check
    is a read followed by a write without a lock, so two concurrent creates
    for the same pair can both succeed.
    """

    def __init__(self, data_dir: Path | str = DEFAULT_DATA_DIR):
        """Initialize ScanResultsStore.

        Args:
            data_dir: Root data directory; documents live in data_dir/scan_results.
        """
        self.data_dir = Path(data_dir)
        self._results_dir = self.data_dir / "scan_results"

    def _path(self, scan_result_id: str) -> Path:
        return self._results_dir / f"{scan_result_id}.json"

    def _write(self, scan_result: TargetScanResult) -> None:
        self._results_dir.mkdir(parents=True, exist_ok=True)
        self._path(scan_result.id).write_text(
            scan_result.model_dump_json(indent=2),
            encoding="utf-8",
        )

    def _read(self, path: Path) -> TargetScanResult:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return TargetScanResult.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise StorageError(f"corrupt scan result file {path}: {e}") from e

    def _check_uniqueness(self, scan_result: TargetScanResult) -> None:
        for existing in self.list(target_id=scan_result.target.id, scan_id=scan_result.scan.id):
            if existing.id != scan_result.id:
                raise ConflictError(
                    f"Scan results exists with same target id={scan_result.target.id} "
                    f"and scan id={scan_result.scan.id}",
                    existing=existing,
                )

    def create(self, scan_result: TargetScanResult) -> TargetScanResult:
        """Store a new document.

        Args:
            scan_result: Document without id; scan.id and target.id are required.

        Returns:
            Stored document with a new id and revision 1.

        Raises:
            BadRequestError: id preset or scan/target id missing.
            ConflictError: A document for the same target and scan exists.
        """
        _check_relationships(scan_result)
        if scan_result.id is not None:
            raise BadRequestError("can not specify id field when creating a new ScanResult")

        new_result = scan_result.model_copy(update={"id": str(uuid.uuid4()), "revision": 1})
        self._check_uniqueness(new_result)
        self._write(new_result)
        logger.info(
            f"Created scan result {new_result.id} "
            f"(scan={new_result.scan.id}, target={new_result.target.id})"
        )
        return new_result

    def get(self, scan_result_id: str) -> TargetScanResult:
        """Load a document.

        Raises:
            NotFoundError: No document with that id.
        """
        path = self._path(scan_result_id)
        if not path.exists():
            raise NotFoundError(f"scan result {scan_result_id} not found")
        return self._read(path)

    def list(
        self,
        target_id: str | None = None,
        scan_id: str | None = None,
    ) -> list[TargetScanResult]:
        """List documents, optionally filtered by target and/or scan id."""
        if not self._results_dir.exists():
            return []

        results = []
        for path in sorted(self._results_dir.glob("*.json")):
            scan_result = self._read(path)
            if target_id is not None and scan_result.target.id != target_id:
                continue
            if scan_id is not None and scan_result.scan.id != scan_id:
                continue
            results.append(scan_result)
        return results

    def save(self, scan_result: TargetScanResult, if_match: int | None = None) -> TargetScanResult:
        """Replace a stored document.

        Args:
            scan_result: Full document; id is required.
            if_match: Expected current revision.

        Returns:
            Stored document with its revision bumped.

        Raises:
            BadRequestError: id, scan.id or target.id missing.
            NotFoundError: No document with that id.
            PreconditionFailedError: if_match does not match.
            ConflictError: Another document has the same target and scan.
        """
        if not scan_result.id:
            raise BadRequestError("id is required to save scan result")
        _check_relationships(scan_result)
        self._check_uniqueness(scan_result)

        current = self.get(scan_result.id)
        check_revision_etag(if_match, current.revision)

        saved = scan_result.model_copy(update={"revision": bump_revision(current.revision)})
        self._write(saved)
        logger.debug(f"Saved scan result {saved.id} (revision {saved.revision})")
        return saved

    def update(
        self,
        scan_result_id: str,
        patch: dict[str, Any],
        if_match: int | None = None,
    ) -> TargetScanResult:
        """Apply a JSON merge patch to a stored document.

        Args:
            scan_result_id: Document id.
            patch: Merge patch; null members are removed.
            if_match: Expected current revision.

        Returns:
            Patched document with its revision bumped.

        Raises:
            NotFoundError, PreconditionFailedError, ConflictError, BadRequestError
        """
        if not scan_result_id:
            raise BadRequestError("id is required to update scan result")

        current = self.get(scan_result_id)
        check_revision_etag(if_match, current.revision)

        data = merge_patch(current.model_dump(mode="json"), patch)
        data["id"] = scan_result_id
        data["revision"] = bump_revision(current.revision)
        try:
            updated = TargetScanResult.model_validate(data)
        except ValidationError as e:
            raise BadRequestError(f"invalid scan result patch: {e}") from e

        _check_relationships(updated)
        self._check_uniqueness(updated)
        self._write(updated)
        logger.debug(f"Updated scan result {updated.id} (revision {updated.revision})")
        return updated

    def delete(self, scan_result_id: str) -> None:
        """Delete a document.

        Raises:
            NotFoundError: No document with that id.
        """
        path = self._path(scan_result_id)
        if not path.exists():
            raise NotFoundError(f"scan result {scan_result_id} not found")
        path.unlink()
        logger.info(f"Deleted scan result {scan_result_id}")
