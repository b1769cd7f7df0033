"""Family notifier that records progress on a stored scan result."""

import logging

from scanplane.context import RunContext
from scanplane.families.manager import FamilyResult
from scanplane.models.common import _utc_now
from scanplane.models.model_families import FamilyType
from scanplane.models.model_scan_result import (
    RESULT_FIELD_BY_FAMILY,
    ScanState,
    TargetScanResult,
    TargetScanState,
)
from scanplane.storage.scan_results import ScanResultsStore

logger = logging.getLogger(__name__)


class ScanResultNotifier:
    """Writes family status and findings into one TargetScanResult document.

    Every write passes the revision it read as if_match, so a concurrent
    modification of the document surfaces as PreconditionFailedError.
    """

    def __init__(self, store: ScanResultsStore, scan_result_id: str):
        self.store = store
        self.scan_result_id = scan_result_id

    def _save(self, scan_result: TargetScanResult) -> None:
        self.store.save(scan_result, if_match=scan_result.revision)

    async def family_started(self, ctx: RunContext, family_type: FamilyType) -> None:
        scan_result = self.store.get(self.scan_result_id)
        scan_result.status.families[family_type] = TargetScanState(state=ScanState.IN_PROGRESS)
        if scan_result.status.general.state in (ScanState.INIT, ScanState.ATTACHED):
            scan_result.status.general = TargetScanState(state=ScanState.IN_PROGRESS)
        self._save(scan_result)
        logger.debug(f"Scan result {self.scan_result_id}: {family_type.value} in progress")

    async def family_finished(self, ctx: RunContext, result: FamilyResult) -> None:
        scan_result = self.store.get(self.scan_result_id)

        errors = [str(result.error)] if result.error is not None else []
        scan_result.status.families[result.family_type] = TargetScanState(
            state=ScanState.DONE, errors=errors
        )
        if result.error is None and result.result is not None:
            setattr(scan_result, RESULT_FIELD_BY_FAMILY[result.family_type], result.result)
        scan_result.refresh_summary()

        self._save(scan_result)
        logger.debug(f"Scan result {self.scan_result_id}: {result.family_type.value} done")

    def mark_done(self, errors: list[Exception]) -> TargetScanResult:
        """Set the general state once the family run is over.

        Args:
            errors: Errors returned by FamilyManager.run

        Returns:
            The saved document
        """
        scan_result = self.store.get(self.scan_result_id)
        scan_result.status.general = TargetScanState(
            state=ScanState.DONE,
            errors=[str(e) for e in errors],
            last_transition_time=_utc_now(),
        )
        saved = self.store.save(scan_result, if_match=scan_result.revision)
        logger.info(
            f"Scan result {self.scan_result_id} done with {len(errors)} error(s)"
        )
        return saved
