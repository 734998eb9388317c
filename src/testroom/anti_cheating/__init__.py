"""Anti-cheating tab-visibility tracking and its storage adapters."""

from .events import Subscription, VisibilityEventBus, VisibilityEventSource, VisibilityListener
from .model import CheatingRecord, CheatingRecordError, storage_key, utc_now_rfc3339
from .repository import (
    DynamoDbKeyValueStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    NamespacedKeyValueStore,
)
from .tracker import (
    CHEATING_THRESHOLD,
    HIDDEN_DURATION_THRESHOLD_MS,
    CheatingSnapshot,
    VisibilityTracker,
    wall_clock_ms,
)

__all__ = [
    "CHEATING_THRESHOLD",
    "CheatingRecord",
    "CheatingRecordError",
    "CheatingSnapshot",
    "DynamoDbKeyValueStore",
    "HIDDEN_DURATION_THRESHOLD_MS",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "NamespacedKeyValueStore",
    "Subscription",
    "VisibilityEventBus",
    "VisibilityEventSource",
    "VisibilityListener",
    "VisibilityTracker",
    "storage_key",
    "utc_now_rfc3339",
    "wall_clock_ms",
]
