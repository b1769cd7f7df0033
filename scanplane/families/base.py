"""Abstract base class for scan families."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from scanplane.context import RunContext
from scanplane.models.model_families import FamilyType
from scanplane.models.model_results import FamilyResultBase

if TYPE_CHECKING:
    from scanplane.families.results import FamilyResults


class Family(ABC):
    """One category of security analysis run against a scan target.

    A family may read the results of families that ran before it from the
    shared results store, but never writes to it; the manager stores the
    returned result once the run succeeds.
    """

    @abstractmethod
    def get_type(self) -> FamilyType:
        """Return the family type this implementation produces."""
        ...

    @abstractmethod
    async def run(self, ctx: RunContext, results: "FamilyResults") -> FamilyResultBase:
        """Run the family.

        Args:
            ctx: Run context; implementations stop early once it is cancelled.
            results: Results of previously successful families in this run.

        Returns:
            Typed result for this family.

        Raises:
            Exception: Any failure; the manager records it for this family.
        """
        ...
