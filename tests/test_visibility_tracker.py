"""Unit tests for the tab-visibility anti-cheating tracker."""

from __future__ import annotations

import json
import unittest

from testroom.anti_cheating import (
    CheatingRecord,
    InMemoryKeyValueStore,
    VisibilityEventBus,
    VisibilityTracker,
)


class _FakeClock:
    def __init__(self, now_ms: float = 0.0) -> None:
        self.now_ms = now_ms

    def __call__(self) -> float:
        return self.now_ms


class _FailingStore:
    def get(self, key: str) -> str | None:
        raise OSError("storage unavailable")

    def put(self, key: str, value: str) -> None:
        raise OSError("storage full")

    def delete(self, key: str) -> None:
        raise OSError("storage unavailable")


class _WriteOnceStore(InMemoryKeyValueStore):
    """Accepts the first write, then fails every later one."""

    def __init__(self) -> None:
        super().__init__()
        self.writes = 0

    def put(self, key: str, value: str) -> None:
        self.writes += 1
        if self.writes > 1:
            raise OSError("storage full")
        super().put(key, value)


class VisibilityTrackerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryKeyValueStore()
        self.bus = VisibilityEventBus()
        self.clock = _FakeClock()

    def _tracker(self, store=None) -> VisibilityTracker:
        return VisibilityTracker(
            "multiple_choice",
            42,
            store=store if store is not None else self.store,
            events=self.bus,
            clock=self.clock,
        )

    def _hide_for(self, start_ms: float, end_ms: float) -> None:
        self.clock.now_ms = start_ms
        self.bus.publish(True)
        self.clock.now_ms = end_ms
        self.bus.publish(False)

    def test_storage_key_combines_type_and_id(self) -> None:
        tracker = self._tracker()
        self.assertEqual(tracker.storage_key, "anti_cheating_multiple_choice_42")

    def test_two_long_absences_mark_cheating_and_persist(self) -> None:
        tracker = self._tracker()
        tracker.start_tracking()

        self._hide_for(0, 12_000)
        self.assertEqual(tracker.visibility_change_count, 1)
        self.assertFalse(tracker.is_cheating)

        self._hide_for(20_000, 35_000)
        self.assertEqual(tracker.visibility_change_count, 2)
        self.assertTrue(tracker.is_cheating)

        stored = json.loads(self.store.get("anti_cheating_multiple_choice_42") or "{}")
        self.assertEqual(stored["visibility_change_times"], 2)
        self.assertTrue(stored["caught_cheating"])
        self.assertTrue(stored["is_test_active"])
        self.assertIn("last_updated", stored)

    def test_short_absence_is_not_counted_or_persisted(self) -> None:
        tracker = self._tracker()
        tracker.start_tracking()

        self._hide_for(1_000, 10_999)

        self.assertEqual(tracker.visibility_change_count, 0)
        self.assertEqual(self.store.keys(), [])

    def test_absence_of_exactly_threshold_counts(self) -> None:
        tracker = self._tracker()
        tracker.start_tracking()

        self._hide_for(0, 10_000)

        self.assertEqual(tracker.visibility_change_count, 1)

    def test_visible_without_prior_hide_is_ignored(self) -> None:
        tracker = self._tracker()
        tracker.start_tracking()

        self.clock.now_ms = 50_000
        self.bus.publish(False)

        self.assertEqual(tracker.visibility_change_count, 0)

    def test_events_before_start_are_ignored(self) -> None:
        tracker = self._tracker()
        tracker.on_visibility_change(True)
        self.clock.now_ms = 30_000
        tracker.on_visibility_change(False)

        self.assertEqual(tracker.visibility_change_count, 0)
        self.assertIsNone(tracker.hidden_start_time)

    def test_cheating_stays_set_after_further_absences(self) -> None:
        tracker = self._tracker()
        tracker.start_tracking()

        self._hide_for(0, 11_000)
        self._hide_for(20_000, 31_000)
        self._hide_for(40_000, 41_000)
        self._hide_for(50_000, 65_000)

        self.assertEqual(tracker.visibility_change_count, 3)
        self.assertTrue(tracker.is_cheating)

    def test_start_tracking_is_idempotent_and_subscribes_once(self) -> None:
        tracker = self._tracker()
        tracker.start_tracking()
        tracker.start_tracking()

        self.assertEqual(self.bus.listener_count, 1)

    def test_start_tracking_resumes_persisted_counters(self) -> None:
        self.store.put(
            "anti_cheating_multiple_choice_42",
            CheatingRecord(visibility_change_count=1, is_cheating=False).to_json(),
        )
        tracker = self._tracker()
        tracker.start_tracking()

        self._hide_for(0, 15_000)

        self.assertEqual(tracker.visibility_change_count, 2)
        self.assertTrue(tracker.is_cheating)

    def test_unreadable_record_is_ignored(self) -> None:
        self.store.put("anti_cheating_multiple_choice_42", "{not json")
        tracker = self._tracker()

        with self.assertLogs("testroom.anti_cheating.tracker", level="WARNING"):
            tracker.start_tracking()

        self.assertTrue(tracker.is_test_active)
        self.assertEqual(tracker.visibility_change_count, 0)

    def test_stop_tracking_unsubscribes_and_drops_pending_hide(self) -> None:
        tracker = self._tracker()
        tracker.start_tracking()
        self.bus.publish(True)

        tracker.stop_tracking()
        self.clock.now_ms = 60_000
        self.bus.publish(False)

        self.assertFalse(tracker.is_test_active)
        self.assertIsNone(tracker.hidden_start_time)
        self.assertEqual(self.bus.listener_count, 0)
        self.assertEqual(tracker.visibility_change_count, 0)

    def test_attempt_ending_while_hidden_does_not_count_final_interval(self) -> None:
        tracker = self._tracker()
        tracker.start_tracking()
        self.clock.now_ms = 0
        self.bus.publish(True)
        self.clock.now_ms = 120_000

        snapshot = tracker.snapshot()

        self.assertEqual(snapshot.visibility_change_count, 0)
        self.assertFalse(snapshot.is_cheating)

    def test_clear_data_resets_state_and_removes_record(self) -> None:
        tracker = self._tracker()
        tracker.start_tracking()
        self._hide_for(0, 12_000)
        self._hide_for(20_000, 35_000)

        tracker.clear_data()

        self.assertEqual(tracker.get_cheating_data(), {
            "visibility_change_times": 0,
            "caught_cheating": False,
            "is_test_active": False,
        })
        self.assertIsNone(self.store.get("anti_cheating_multiple_choice_42"))
        self.assertEqual(self.bus.listener_count, 0)

    def test_storage_failures_are_logged_not_raised(self) -> None:
        tracker = self._tracker(store=_FailingStore())

        with self.assertLogs("testroom.anti_cheating.tracker", level="ERROR"):
            tracker.start_tracking()
        with self.assertLogs("testroom.anti_cheating.tracker", level="ERROR"):
            self._hide_for(0, 12_000)

        self.assertEqual(tracker.visibility_change_count, 1)

    def test_restart_after_failed_write_keeps_cheating_flag(self) -> None:
        store = _WriteOnceStore()
        tracker = self._tracker(store=store)
        tracker.start_tracking()
        self._hide_for(0, 12_000)
        with self.assertLogs("testroom.anti_cheating.tracker", level="ERROR"):
            self._hide_for(20_000, 35_000)
        self.assertTrue(tracker.is_cheating)

        tracker.stop_tracking()
        tracker.start_tracking()

        self.assertEqual(tracker.visibility_change_count, 2)
        self.assertTrue(tracker.is_cheating)
        stored = json.loads(store.get("anti_cheating_multiple_choice_42") or "{}")
        self.assertEqual(stored["visibility_change_times"], 1)

    def test_get_status_reports_thresholds(self) -> None:
        tracker = self._tracker()
        status = tracker.get_status()

        self.assertEqual(status["storageKey"], "anti_cheating_multiple_choice_42")
        self.assertEqual(status["hiddenDurationThreshold"], 10_000)
        self.assertEqual(status["cheatingThreshold"], 2)
        self.assertFalse(status["isTestActive"])


if __name__ == "__main__":
    unittest.main()
