"""A student's attempt at one test: load, track visibility, score and submit."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from scoring import ScoreSummary, calculate_test_score
from testroom.anti_cheating import (
    KeyValueStore,
    VisibilityEventSource,
    VisibilityTracker,
    utc_now_rfc3339,
    wall_clock_ms,
)
from testroom.anti_cheating.tracker import Clock
from testroom.client import ApiClient, ApiError, ApiTransportError

logger = logging.getLogger(__name__)


class AttemptStateError(RuntimeError):
    """Raised when attempt steps run out of order."""


def _question_key(question: Mapping[str, Any], index: int) -> str:
    return str(question.get("question_id", question.get("id", index)))


class TestAttempt:
    __test__ = False

    def __init__(
        self,
        client: ApiClient,
        *,
        test_type: str,
        test_id: str | int,
        store: KeyValueStore,
        events: VisibilityEventSource,
        clock: Clock = wall_clock_ms,
    ) -> None:
        self.client = client
        self.test_type = test_type
        self.test_id = test_id
        self.tracker = VisibilityTracker(test_type, test_id, store=store, events=events, clock=clock)
        self._clock = clock

        self.test: dict[str, Any] = {}
        self.questions: list[dict[str, Any]] = []
        self.started_at: str | None = None
        self._started_ms: float | None = None

    async def load(self) -> list[dict[str, Any]]:
        payload = await self.client.get_test_questions(self.test_type, self.test_id)
        if not isinstance(payload, dict):
            raise ApiTransportError("questions response must be a JSON object")
        test = payload.get("test")
        self.test = dict(test) if isinstance(test, dict) else {}
        self.questions = [row for row in payload.get("questions") or [] if isinstance(row, dict)]
        return self.questions

    def start(self) -> None:
        if self.started_at is None:
            self.started_at = utc_now_rfc3339()
            self._started_ms = self._clock()
        self.tracker.start_tracking()

    def stop(self) -> None:
        self.tracker.stop_tracking()

    def score(self, answers: Sequence[Any] | Mapping[str, Any]) -> ScoreSummary:
        return calculate_test_score(self.questions, answers, self.test_type)

    def build_submission(self, answers: Sequence[Any] | Mapping[str, Any]) -> dict[str, Any]:
        """Submission body with the local score and the tracker's cheating counters."""
        if not self.test or not self.questions:
            raise AttemptStateError("questions must be loaded before submitting")

        summary = self.score(answers)
        cheating = self.tracker.get_cheating_data()
        submission: dict[str, Any] = {
            "test_name": self.test.get("test_name"),
            "teacher_id": self.test.get("teacher_id"),
            "subject_id": self.test.get("subject_id"),
            "score": summary.score,
            "maxScore": summary.total,
            "started_at": self.started_at,
            "submitted_at": utc_now_rfc3339(),
            "is_completed": True,
            "caught_cheating": cheating["caught_cheating"],
            "visibility_change_times": cheating["visibility_change_times"],
        }
        if self._started_ms is not None:
            submission["time_taken"] = max(0, int((self._clock() - self._started_ms) / 1000))

        if isinstance(answers, Mapping):
            order = [_question_key(question, index) for index, question in enumerate(self.questions)]
            submission["answers"] = [answers.get(key) for key in order]
            submission["answers_by_id"] = {str(key): value for key, value in answers.items()}
            submission["question_order"] = order
        else:
            submission["answers"] = list(answers)
        return submission

    async def submit(self, answers: Sequence[Any] | Mapping[str, Any]) -> dict[str, Any]:
        """Submit the attempt; tracker data is cleared only once the server accepts it."""
        submission = self.build_submission(answers)
        try:
            result = await self.client.submit_test(self.test_type, self.test_id, submission)
        except (ApiError, ApiTransportError):
            logger.warning("Submission failed for %s/%s, keeping anti-cheating data", self.test_type, self.test_id)
            raise

        self.tracker.stop_tracking()
        self.tracker.clear_data()
        logger.info("Submitted %s/%s with score %s", self.test_type, self.test_id, submission["score"])
        return result
