"""Tab-visibility tracker that flags suspicious absences during a test.

A hide interval counts once it lasts at least ``hidden_duration_threshold_ms``;
``cheating_threshold`` counted intervals mark the attempt as cheating. The
interval is measured when the page becomes visible again, so an attempt that
ends while hidden never counts its final interval.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from .events import Subscription, VisibilityEventSource
from .model import CheatingRecord, CheatingRecordError, storage_key, utc_now_rfc3339
from .repository import KeyValueStore

logger = logging.getLogger(__name__)

HIDDEN_DURATION_THRESHOLD_MS = 10_000
CHEATING_THRESHOLD = 2

Clock = Callable[[], float]


def wall_clock_ms() -> float:
    return time.time() * 1000.0


@dataclass(frozen=True)
class CheatingSnapshot:
    """Read-only view of tracker counters attached to test submissions."""

    visibility_change_count: int
    is_cheating: bool
    is_test_active: bool

    def to_payload(self) -> dict[str, Any]:
        return {
            "visibility_change_times": self.visibility_change_count,
            "caught_cheating": self.is_cheating,
            "is_test_active": self.is_test_active,
        }


class VisibilityTracker:
    """Per-attempt state machine fed by a visibility event source."""

    def __init__(
        self,
        test_type: str,
        test_id: str | int,
        *,
        store: KeyValueStore,
        events: VisibilityEventSource,
        clock: Clock = wall_clock_ms,
        hidden_duration_threshold_ms: float = HIDDEN_DURATION_THRESHOLD_MS,
        cheating_threshold: int = CHEATING_THRESHOLD,
    ) -> None:
        self.test_type = test_type
        self.test_id = str(test_id)
        self.storage_key = storage_key(test_type, test_id)
        self.hidden_duration_threshold_ms = hidden_duration_threshold_ms
        self.cheating_threshold = cheating_threshold

        self._store = store
        self._events = events
        self._clock = clock
        self._subscription: Subscription | None = None

        self.visibility_change_count = 0
        self.is_cheating = False
        self.is_test_active = False
        self.hidden_start_time: float | None = None

    def start_tracking(self) -> None:
        if self.is_test_active:
            return

        logger.info("Starting anti-cheating tracking for %s", self.storage_key)
        self._load_from_storage()
        self.is_test_active = True
        if self._subscription is None:
            self._subscription = self._events.subscribe(self.on_visibility_change)

    def stop_tracking(self) -> None:
        logger.info("Stopping anti-cheating tracking for %s", self.storage_key)
        self.is_test_active = False
        self.hidden_start_time = None
        self._unsubscribe()

    def on_visibility_change(self, hidden: bool) -> None:
        if not self.is_test_active:
            return

        if hidden:
            self.hidden_start_time = self._clock()
            return

        if self.hidden_start_time is None:
            return

        hidden_duration = self._clock() - self.hidden_start_time
        self.hidden_start_time = None
        if hidden_duration < self.hidden_duration_threshold_ms:
            logger.debug("Tab hidden for %.0f ms on %s, below threshold", hidden_duration, self.storage_key)
            return

        self.visibility_change_count += 1
        logger.info(
            "Tab hidden for %.0f ms on %s, count=%d",
            hidden_duration,
            self.storage_key,
            self.visibility_change_count,
        )
        if self.visibility_change_count >= self.cheating_threshold and not self.is_cheating:
            self.is_cheating = True
            logger.warning("Cheating threshold reached for %s", self.storage_key)

        self._save_to_storage()

    def get_cheating_data(self) -> dict[str, Any]:
        return self.snapshot().to_payload()

    def snapshot(self) -> CheatingSnapshot:
        return CheatingSnapshot(
            visibility_change_count=self.visibility_change_count,
            is_cheating=self.is_cheating,
            is_test_active=self.is_test_active,
        )

    def clear_data(self) -> None:
        try:
            self._store.delete(self.storage_key)
        except Exception:
            logger.exception("Error clearing anti-cheating data for %s", self.storage_key)

        self._unsubscribe()
        self.visibility_change_count = 0
        self.is_cheating = False
        self.is_test_active = False
        self.hidden_start_time = None
        logger.info("Anti-cheating data cleared for %s", self.storage_key)

    def get_status(self) -> dict[str, Any]:
        """Debugging view of the full tracker state."""
        return {
            "testType": self.test_type,
            "testId": self.test_id,
            "storageKey": self.storage_key,
            "visibilityChangeCount": self.visibility_change_count,
            "isCheating": self.is_cheating,
            "isTestActive": self.is_test_active,
            "hiddenStartTime": self.hidden_start_time,
            "hiddenDurationThreshold": self.hidden_duration_threshold_ms,
            "cheatingThreshold": self.cheating_threshold,
        }

    def _unsubscribe(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _load_from_storage(self) -> None:
        try:
            raw = self._store.get(self.storage_key)
        except Exception:
            logger.exception("Error loading anti-cheating data for %s", self.storage_key)
            return

        if raw is None:
            return

        try:
            record = CheatingRecord.from_json(raw)
        except CheatingRecordError as exc:
            logger.warning("Ignoring unreadable anti-cheating record %s: %s", self.storage_key, exc)
            return

        # Merge so a failed write never lowers counters held in memory.
        self.visibility_change_count = max(self.visibility_change_count, record.visibility_change_count)
        self.is_cheating = self.is_cheating or record.is_cheating

    def _save_to_storage(self) -> None:
        record = CheatingRecord(
            visibility_change_count=self.visibility_change_count,
            is_cheating=self.is_cheating,
            is_test_active=self.is_test_active,
            last_updated=utc_now_rfc3339(),
        )
        try:
            self._store.put(self.storage_key, record.to_json())
        except Exception:
            logger.exception("Error saving anti-cheating data for %s", self.storage_key)
