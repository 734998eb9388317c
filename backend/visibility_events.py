"""Server-side replay of client visibility events for anti-cheating records."""

from __future__ import annotations

import logging
import os
from typing import Iterable

from classroom.models import Principal, VisibilityEvent
from testroom.anti_cheating import (
    CheatingRecord,
    CheatingRecordError,
    CheatingSnapshot,
    DynamoDbKeyValueStore,
    KeyValueStore,
    NamespacedKeyValueStore,
    VisibilityEventBus,
    VisibilityTracker,
    storage_key,
    utc_now_rfc3339,
)

logger = logging.getLogger(__name__)


class AntiCheatingStoreError(RuntimeError):
    """Raised when the server cannot persist or remove an anti-cheating record."""


class _ReplayClock:
    """Clock that reports the timestamp of the event being replayed."""

    def __init__(self) -> None:
        self.now_ms = 0.0

    def __call__(self) -> float:
        return self.now_ms


def create_default_store() -> KeyValueStore:
    """Create the DynamoDB-backed store lazily to keep test dependencies small."""
    table_name = os.getenv("ANTI_CHEATING_TABLE", "").strip()
    if not table_name:
        raise RuntimeError("server misconfiguration: ANTI_CHEATING_TABLE missing")

    import boto3

    return DynamoDbKeyValueStore(boto3.resource("dynamodb").Table(table_name))


def _stored_raw(store: KeyValueStore, test_type: str, test_id: int) -> str | None:
    try:
        return store.get(storage_key(test_type, test_id))
    except Exception as exc:
        raise AntiCheatingStoreError("anti-cheating record could not be read") from exc


def student_store(store: KeyValueStore, principal: Principal) -> KeyValueStore:
    return NamespacedKeyValueStore(store, f"student#{principal.user_id}")


def replay_events(
    events: Iterable[VisibilityEvent],
    *,
    test_type: str,
    test_id: int,
    store: KeyValueStore,
) -> CheatingSnapshot:
    """Feed one batch of events through a tracker resumed from the stored record.

    A hide that is still open at the end of the batch is discarded, matching the
    tracker's handling of an attempt that ends while hidden. Unlike the
    best-effort client tracker, a changed record that cannot be saved raises
    ``AntiCheatingStoreError``.
    """
    # The tracker treats a failed read as no record; that must not restart the count here.
    _stored_raw(store, test_type, test_id)

    clock = _ReplayClock()
    bus = VisibilityEventBus()
    tracker = VisibilityTracker(test_type, test_id, store=store, events=bus, clock=clock)
    tracker.start_tracking()
    loaded_count = tracker.visibility_change_count
    for event in events:
        clock.now_ms = event.at_ms
        bus.publish(event.hidden)

    snapshot = tracker.snapshot()
    tracker.stop_tracking()

    if snapshot.visibility_change_count != loaded_count:
        record = CheatingRecord(
            visibility_change_count=snapshot.visibility_change_count,
            is_cheating=snapshot.is_cheating,
            is_test_active=snapshot.is_test_active,
            last_updated=utc_now_rfc3339(),
        )
        try:
            store.put(storage_key(test_type, test_id), record.to_json())
        except Exception as exc:
            raise AntiCheatingStoreError("anti-cheating record could not be saved") from exc
    return snapshot


def read_record(*, test_type: str, test_id: int, store: KeyValueStore) -> CheatingRecord:
    raw = _stored_raw(store, test_type, test_id)
    if raw is None:
        return CheatingRecord()
    try:
        return CheatingRecord.from_json(raw)
    except CheatingRecordError:
        logger.warning("Unreadable anti-cheating record for %s %s", test_type, test_id)
        return CheatingRecord()


def clear_record(*, test_type: str, test_id: int, store: KeyValueStore) -> None:
    try:
        store.delete(storage_key(test_type, test_id))
    except Exception as exc:
        raise AntiCheatingStoreError("anti-cheating record could not be cleared") from exc
    logger.info("Cleared anti-cheating record for %s %s", test_type, test_id)
