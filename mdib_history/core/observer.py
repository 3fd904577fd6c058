"""
Test run invalidation.

Protocol violations that do not stop a replay are reported to an
InvalidationSink. The surrounding test run decides what an invalid run means.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Optional, Set

logger = logging.getLogger(__name__)


class InvalidationSink(ABC):
    """Receiver for non-fatal protocol violations."""

    @abstractmethod
    def invalidate(self, reason: str, cause: Optional[BaseException] = None) -> None:
        """
        Mark the test run as invalid.

        Args:
            reason: Human readable description of the violation
            cause: Exception describing the violation, if any
        """
        ...


class TestRunObserver(InvalidationSink):
    """
    Collects invalidation reasons for a test run.

    Each distinct reason is logged once. Safe to share between threads.
    """

    __test__ = False

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._invalid = False
        self._reasons: Set[str] = set()
        self._ordered: List[str] = []

    def invalidate(self, reason: str, cause: Optional[BaseException] = None) -> None:
        with self._lock:
            if reason in self._reasons:
                return
            self._reasons.add(reason)
            self._ordered.append(reason)
            self._invalid = True
        logger.error("Test run has been marked as invalid. Reason: %s", reason, exc_info=cause)

    @property
    def is_invalid(self) -> bool:
        with self._lock:
            return self._invalid

    @property
    def reasons(self) -> List[str]:
        with self._lock:
            return list(self._ordered)
