"""Runs enabled scan families in dependency order with cancellation racing."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from scanplane.context import RunContext
from scanplane.errors import FamiliesFailedError, FamilyAbortedError, NotificationError
from scanplane.families.base import Family
from scanplane.families.exploits import ExploitsFamily
from scanplane.families.malware import MalwareFamily
from scanplane.families.misconfiguration import MisconfigurationFamily
from scanplane.families.results import FamilyResults
from scanplane.families.rootkits import RootkitsFamily
from scanplane.families.sbom import SBOMFamily
from scanplane.families.secrets import SecretsFamily
from scanplane.families.vulnerabilities import VulnerabilitiesFamily
from scanplane.models.model_families import FamiliesConfig, FamilyType
from scanplane.models.model_results import FamilyResultBase

logger = logging.getLogger(__name__)


@dataclass
class FamilyResult:
    """Outcome of one family, handed to the notifier."""

    result: FamilyResultBase | None
    family_type: FamilyType
    error: Exception | None = None


RunErrors = dict[FamilyType, Exception]


class FamilyNotifier(Protocol):
    """Caller hooks invoked around every family.

    Both hooks are awaited synchronously by the manager. Raising from either
    is recorded as a notification error and never stops the run.
    """

    async def family_started(self, ctx: RunContext, family_type: FamilyType) -> None: ...

    async def family_finished(self, ctx: RunContext, result: FamilyResult) -> None: ...


# Run order. Vulnerabilities must follow SBOM and Exploits must follow
# Vulnerabilities so each can consume its upstream result.
FAMILY_ORDER: list[tuple[FamilyType, Callable[..., Family]]] = [
    (FamilyType.SBOM, SBOMFamily),
    (FamilyType.VULNERABILITIES, VulnerabilitiesFamily),
    (FamilyType.SECRETS, SecretsFamily),
    (FamilyType.ROOTKITS, RootkitsFamily),
    (FamilyType.MALWARE, MalwareFamily),
    (FamilyType.MISCONFIGURATION, MisconfigurationFamily),
    (FamilyType.EXPLOITS, ExploitsFamily),
]

# Abandoned family tasks; held until they finish so they are not garbage collected
_abandoned_tasks: set[asyncio.Task] = set()


def _drain(task: asyncio.Task) -> None:
    """Let an abandoned family task finish in the background and discard its outcome."""
    _abandoned_tasks.add(task)

    def _discard(t: asyncio.Task) -> None:
        _abandoned_tasks.discard(t)
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            logger.debug(f"Abandoned family task {t.get_name()} finished with error: {exc}")
        else:
            logger.debug(f"Abandoned family task {t.get_name()} finished, result discarded")

    task.add_done_callback(_discard)


class FamilyManager:
    """Runs the enabled families of a scan job.

    Families run one at a time in FAMILY_ORDER. Each family runs in its own
    task raced against the run context, so a cancelled context is observed
    even while a family is blocked.
    """

    def __init__(
        self,
        config: FamiliesConfig,
        factories: dict[FamilyType, Callable[..., Family]] | None = None,
    ):
        """Initialize FamilyManager.

        Args:
            config: Families configuration; only enabled families are built
            factories: Override of the family constructor per type, called
                with that family's config
        """
        overrides = factories or {}
        self.families: list[Family] = []
        self.run_errors: RunErrors = {}

        for family_type, factory in FAMILY_ORDER:
            family_config = getattr(config, family_type.value)
            if not family_config.enabled:
                continue
            build = overrides.get(family_type, factory)
            self.families.append(build(family_config))

        logger.debug(
            f"Family manager built with {len(self.families)} families: "
            f"{[f.get_type().value for f in self.families]}"
        )

    async def run(self, ctx: RunContext, notifier: FamilyNotifier) -> list[Exception]:
        """Run every enabled family.

        Args:
            ctx: Run context shared by all families
            notifier: Hooks called before and after each family

        Returns:
            Notification errors followed by one FamiliesFailedError when any
            family failed; an empty list means every family succeeded. Per
            family errors are available in `run_errors` afterwards.
        """
        errors: list[Exception] = []
        results = FamilyResults()
        self.run_errors = {}
        one_or_more_failed = False

        for family in self.families:
            family_type = family.get_type()

            try:
                await notifier.family_started(ctx, family_type)
            except Exception as e:
                logger.warning(f"Family started notification failed for {family_type.value}: {e}")
                err = NotificationError(
                    f"family started notification failed: {e}",
                    details={"family": family_type.value},
                )
                errors.append(err)
                self.run_errors[family_type] = err
                one_or_more_failed = True
                continue

            family_result = await self._race(ctx, family, results)

            if family_result.error is not None:
                logger.warning(f"Family {family_type.value} failed: {family_result.error}")
                self.run_errors[family_type] = family_result.error
                one_or_more_failed = True
            else:
                # Visible to later families before the caller hears about it
                if family_result.result is not None:
                    results.set_results(family_result.result)
                logger.info(f"Family {family_type.value} completed")

            try:
                await notifier.family_finished(ctx, family_result)
            except Exception as e:
                logger.warning(f"Family finished notification failed for {family_type.value}: {e}")
                errors.append(
                    NotificationError(
                        f"family finished notification failed: {e}",
                        details={"family": family_type.value},
                    )
                )

        if one_or_more_failed:
            errors.append(FamiliesFailedError("at least one family failed to run"))
        return errors

    async def _race(
        self, ctx: RunContext, family: Family, results: FamilyResults
    ) -> FamilyResult:
        """Run a family as a task and race it against context cancellation.

        Returns:
            FamilyResult with the family's result or error, or an aborted error
            when the context wins
        """
        family_type = family.get_type()
        cancelled_at_start = ctx.cancelled

        task = asyncio.create_task(family.run(ctx, results), name=f"family-{family_type.value}")
        waiter = asyncio.create_task(ctx.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        # A family that already finished wins unless the context was cancelled
        # before it started
        if not task.done() or cancelled_at_start:
            _drain(task)
            return FamilyResult(
                result=None,
                family_type=family_type,
                error=FamilyAbortedError(
                    f"failed to run family {family_type.value}: aborted",
                    details={"reason": ctx.reason},
                ),
            )

        if task.cancelled():
            return FamilyResult(
                result=None,
                family_type=family_type,
                error=FamilyAbortedError(f"failed to run family {family_type.value}: cancelled"),
            )

        exc = task.exception()
        if exc is not None:
            return FamilyResult(result=None, family_type=family_type, error=exc)
        return FamilyResult(result=task.result(), family_type=family_type)
