"""Per-run store of typed family results."""

import logging
from typing import TypeVar, overload

from scanplane.models.model_families import FamilyType
from scanplane.models.model_results import FamilyResultBase

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=FamilyResultBase)


class FamilyResults:
    """Mapping of family type to the result of a successful family.

    Created once per manager run and discarded at the end of it. Only the
    manager's run loop writes to it; families read upstream results.
    """

    def __init__(self) -> None:
        self._results: dict[FamilyType, FamilyResultBase] = {}

    def set_results(self, result: FamilyResultBase) -> None:
        """Store a result under its own family type, replacing any earlier one."""
        self._results[result.family_type] = result
        logger.debug(f"Stored results for family {result.family_type.value}")

    @overload
    def get_results(self, key: type[R]) -> R | None: ...

    @overload
    def get_results(self, key: FamilyType) -> FamilyResultBase | None: ...

    def get_results(self, key):
        """Look up a stored result.

        Args:
            key: Result model class (e.g. SBOMResult) or FamilyType.

        Returns:
            The stored result, or None when that family has no result.
        """
        if isinstance(key, FamilyType):
            return self._results.get(key)
        result = self._results.get(key.family_type)
        if result is not None and not isinstance(result, key):
            return None
        return result

    def family_types(self) -> list[FamilyType]:
        """Family types with a stored result, in insertion order."""
        return list(self._results)

    def __contains__(self, family_type: object) -> bool:
        return family_type in self._results

    def __len__(self) -> int:
        return len(self._results)
