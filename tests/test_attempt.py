"""Unit tests for the student test attempt workflow."""

from __future__ import annotations

import unittest

from testroom.anti_cheating import InMemoryKeyValueStore, VisibilityEventBus, storage_key
from testroom.attempt import AttemptStateError, TestAttempt
from testroom.client import ApiError

_QUESTIONS_PAYLOAD = {
    "success": True,
    "test": {"test_id": 7, "test_name": "Unit 2 quiz", "teacher_id": "T-1", "subject_id": "ENG"},
    "questions": [
        {"question_id": 10, "correct_answer": "A"},
        {"question_id": 11, "correct_answer": "B"},
    ],
}


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _FakeClient:
    def __init__(self, *, fail_submit: bool = False) -> None:
        self.fail_submit = fail_submit
        self.submissions: list[dict] = []

    async def get_test_questions(self, test_type, test_id):
        return _QUESTIONS_PAYLOAD

    async def submit_test(self, test_type, test_id, submission):
        self.submissions.append(dict(submission))
        if self.fail_submit:
            raise ApiError(500, "Database error")
        return {"success": True, "result_id": 1}


class TestAttemptTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.clock = _FakeClock()
        self.store = InMemoryKeyValueStore()
        self.bus = VisibilityEventBus()

    def _attempt(self, client: _FakeClient) -> TestAttempt:
        return TestAttempt(
            client,  # type: ignore[arg-type]
            test_type="multiple_choice",
            test_id=7,
            store=self.store,
            events=self.bus,
            clock=self.clock,
        )

    def _hide_for(self, duration_ms: float) -> None:
        self.bus.publish(True)
        self.clock.now += duration_ms
        self.bus.publish(False)

    async def test_build_submission_requires_loaded_questions(self) -> None:
        attempt = self._attempt(_FakeClient())
        with self.assertRaises(AttemptStateError):
            attempt.build_submission(["A"])

    async def test_submission_carries_score_and_cheating_counters(self) -> None:
        attempt = self._attempt(_FakeClient())
        await attempt.load()
        attempt.start()
        self._hide_for(12_000)
        self._hide_for(15_000)
        self.clock.now += 3_000

        submission = attempt.build_submission(["A", "C"])

        self.assertEqual(submission["score"], 1)
        self.assertEqual(submission["maxScore"], 2)
        self.assertEqual(submission["test_name"], "Unit 2 quiz")
        self.assertTrue(submission["caught_cheating"])
        self.assertEqual(submission["visibility_change_times"], 2)
        self.assertEqual(submission["time_taken"], 30)
        self.assertTrue(submission["is_completed"])

    async def test_mapping_answers_are_sent_in_question_order(self) -> None:
        attempt = self._attempt(_FakeClient())
        await attempt.load()

        submission = attempt.build_submission({"11": "B", "10": "A"})

        self.assertEqual(submission["answers"], ["A", "B"])
        self.assertEqual(submission["question_order"], ["10", "11"])
        self.assertEqual(submission["answers_by_id"], {"11": "B", "10": "A"})
        self.assertEqual(submission["score"], 2)
        self.assertNotIn("time_taken", submission)

    async def test_successful_submit_clears_tracker_data(self) -> None:
        client = _FakeClient()
        attempt = self._attempt(client)
        await attempt.load()
        attempt.start()
        self._hide_for(12_000)
        self.assertIsNotNone(self.store.get(storage_key("multiple_choice", 7)))

        result = await attempt.submit(["A", "B"])

        self.assertEqual(result["result_id"], 1)
        self.assertEqual(len(client.submissions), 1)
        self.assertIsNone(self.store.get(storage_key("multiple_choice", 7)))
        self.assertFalse(attempt.tracker.is_test_active)
        self.assertEqual(self.bus.listener_count, 0)

    async def test_failed_submit_keeps_tracker_data(self) -> None:
        attempt = self._attempt(_FakeClient(fail_submit=True))
        await attempt.load()
        attempt.start()
        self._hide_for(12_000)

        with self.assertLogs("testroom.attempt", level="WARNING"):
            with self.assertRaises(ApiError):
                await attempt.submit(["A", "B"])

        self.assertIsNotNone(self.store.get(storage_key("multiple_choice", 7)))
        self.assertTrue(attempt.tracker.is_test_active)
        self.assertEqual(attempt.tracker.visibility_change_count, 1)


if __name__ == "__main__":
    unittest.main()
