"""Scan families and the manager that runs them."""

from scanplane.families.base import Family
from scanplane.families.config import dump_families_config, load_families_config
from scanplane.families.manager import (
    FAMILY_ORDER,
    FamilyManager,
    FamilyNotifier,
    FamilyResult,
    RunErrors,
)
from scanplane.families.results import FamilyResults
from scanplane.families.tool_runner import ToolOutput, ToolRunner

__all__ = [
    "FAMILY_ORDER",
    "Family",
    "FamilyManager",
    "FamilyNotifier",
    "FamilyResult",
    "FamilyResults",
    "RunErrors",
    "ToolOutput",
    "ToolRunner",
    "dump_families_config",
    "load_families_config",
]
