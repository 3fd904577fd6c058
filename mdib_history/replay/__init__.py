"""
History replay.

This module provides:
- Historian: Builds MDIB histories of a sequence id from a message archive
- HistoryResult: Closable sequence of MDIB states
- VersionOrderFilter / DuplicateCollapser: Report stream filters
"""

from .filters import DuplicateCollapser, FilterState, VersionOrderFilter
from .historian import Historian, HistoryResult

__all__ = [
    "Historian",
    "HistoryResult",
    "VersionOrderFilter",
    "DuplicateCollapser",
    "FilterState",
]
