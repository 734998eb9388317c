"""Domain model for persisted anti-cheating session records."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

STORAGE_KEY_PREFIX = "anti_cheating"


class CheatingRecordError(ValueError):
    """Raised when a persisted record cannot be decoded."""


def utc_now_rfc3339() -> str:
    """Return the current UTC timestamp in RFC3339 form with trailing Z."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def storage_key(test_type: str, test_id: str | int) -> str:
    """Storage key for one test attempt, e.g. ``anti_cheating_input_42``."""
    if not isinstance(test_type, str) or not test_type.strip():
        raise ValueError("test_type must not be empty")
    test_id_text = str(test_id).strip()
    if not test_id_text:
        raise ValueError("test_id must not be empty")
    return f"{STORAGE_KEY_PREFIX}_{test_type.strip()}_{test_id_text}"


@dataclass(frozen=True)
class CheatingRecord:
    """Snapshot of tracker counters as written to durable storage."""

    visibility_change_count: int = 0
    is_cheating: bool = False
    is_test_active: bool = False
    last_updated: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.visibility_change_count, bool) or not isinstance(self.visibility_change_count, int):
            raise CheatingRecordError("visibility_change_count must be an integer")
        if self.visibility_change_count < 0:
            raise CheatingRecordError("visibility_change_count must be >= 0")

    def to_item(self) -> dict[str, Any]:
        """Serialize using the wire names shared with submissions."""
        return {
            "visibility_change_times": self.visibility_change_count,
            "caught_cheating": self.is_cheating,
            "is_test_active": self.is_test_active,
            "last_updated": self.last_updated or utc_now_rfc3339(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_item())

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> "CheatingRecord":
        """Deserialize leniently: missing or mistyped fields fall back to defaults."""
        count = item.get("visibility_change_times")
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            count = 0

        last_updated = item.get("last_updated")
        return cls(
            visibility_change_count=count,
            is_cheating=item.get("caught_cheating") is True,
            is_test_active=item.get("is_test_active") is True,
            last_updated=last_updated if isinstance(last_updated, str) else None,
        )

    @classmethod
    def from_json(cls, raw: str) -> "CheatingRecord":
        try:
            decoded = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as exc:
            raise CheatingRecordError("stored record is not valid JSON") from exc

        if not isinstance(decoded, dict):
            raise CheatingRecordError("stored record must be a JSON object")
        return cls.from_item(decoded)
