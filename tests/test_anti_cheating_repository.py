"""Unit tests for anti-cheating record storage adapters."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from testroom.anti_cheating import (
    CheatingRecord,
    CheatingRecordError,
    DynamoDbKeyValueStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    NamespacedKeyValueStore,
    storage_key,
)


class _FakeDynamoTable:
    def __init__(self) -> None:
        self.items: dict[str, dict[str, object]] = {}

    def put_item(self, *, Item: dict[str, object]) -> None:  # noqa: N803 - boto3 shape
        key = Item["storageKey"]
        if not isinstance(key, str):
            raise TypeError("storageKey must be a string")
        self.items[key] = dict(Item)

    def get_item(self, *, Key: dict[str, str]) -> dict[str, dict[str, object]]:  # noqa: N803 - boto3 shape
        item = self.items.get(Key["storageKey"])
        if item is None:
            return {}
        return {"Item": dict(item)}

    def delete_item(self, *, Key: dict[str, str]) -> None:  # noqa: N803 - boto3 shape
        self.items.pop(Key["storageKey"], None)


class CheatingRecordTests(unittest.TestCase):
    def test_to_item_uses_submission_field_names(self) -> None:
        record = CheatingRecord(
            visibility_change_count=2,
            is_cheating=True,
            is_test_active=True,
            last_updated="2026-09-01T10:15:00Z",
        )
        self.assertEqual(
            record.to_item(),
            {
                "visibility_change_times": 2,
                "caught_cheating": True,
                "is_test_active": True,
                "last_updated": "2026-09-01T10:15:00Z",
            },
        )

    def test_from_json_restores_counters(self) -> None:
        record = CheatingRecord.from_json(
            '{"visibility_change_times": 1, "caught_cheating": false, "is_test_active": true}'
        )
        self.assertEqual(record.visibility_change_count, 1)
        self.assertFalse(record.is_cheating)
        self.assertTrue(record.is_test_active)
        self.assertIsNone(record.last_updated)

    def test_from_item_falls_back_on_bad_fields(self) -> None:
        record = CheatingRecord.from_item({"visibility_change_times": "3", "caught_cheating": "yes"})
        self.assertEqual(record.visibility_change_count, 0)
        self.assertFalse(record.is_cheating)

    def test_from_json_rejects_non_object(self) -> None:
        with self.assertRaises(CheatingRecordError):
            CheatingRecord.from_json("[1, 2]")
        with self.assertRaises(CheatingRecordError):
            CheatingRecord.from_json("not json")

    def test_negative_count_rejected(self) -> None:
        with self.assertRaises(CheatingRecordError):
            CheatingRecord(visibility_change_count=-1)

    def test_storage_key_requires_type_and_id(self) -> None:
        self.assertEqual(storage_key("input", "7"), "anti_cheating_input_7")
        with self.assertRaises(ValueError):
            storage_key("", 7)
        with self.assertRaises(ValueError):
            storage_key("input", " ")


class KeyValueStoreTests(unittest.TestCase):
    def test_dynamodb_store_put_get_delete(self) -> None:
        table = _FakeDynamoTable()
        store = DynamoDbKeyValueStore(table)

        store.put("anti_cheating_input_7", '{"visibility_change_times": 1}')
        self.assertEqual(store.get("anti_cheating_input_7"), '{"visibility_change_times": 1}')
        self.assertEqual(table.items["anti_cheating_input_7"]["payload"], '{"visibility_change_times": 1}')

        store.delete("anti_cheating_input_7")
        self.assertIsNone(store.get("anti_cheating_input_7"))

    def test_dynamodb_store_ignores_non_string_payload(self) -> None:
        table = _FakeDynamoTable()
        table.items["k"] = {"storageKey": "k", "payload": 5}
        self.assertIsNone(DynamoDbKeyValueStore(table).get("k"))

    def test_json_file_store_survives_new_instance(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "state" / "anti_cheating.json"
            JsonFileKeyValueStore(path).put("a", "1")
            JsonFileKeyValueStore(path).put("b", "2")

            reopened = JsonFileKeyValueStore(path)
            self.assertEqual(reopened.get("a"), "1")
            self.assertEqual(reopened.get("b"), "2")

            reopened.delete("a")
            self.assertIsNone(JsonFileKeyValueStore(path).get("a"))
            self.assertEqual([p.name for p in path.parent.iterdir()], ["anti_cheating.json"])

    def test_json_file_store_missing_file_reads_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = JsonFileKeyValueStore(Path(tmp_dir) / "missing.json")
            self.assertIsNone(store.get("a"))
            store.delete("a")
            self.assertFalse(store.path.exists())

    def test_namespaced_store_isolates_owners(self) -> None:
        backing = InMemoryKeyValueStore()
        first = NamespacedKeyValueStore(backing, "student#1")
        second = NamespacedKeyValueStore(backing, "student#2")

        first.put("anti_cheating_input_7", "one")
        second.put("anti_cheating_input_7", "two")

        self.assertEqual(first.get("anti_cheating_input_7"), "one")
        self.assertEqual(second.get("anti_cheating_input_7"), "two")
        self.assertEqual(
            backing.keys(),
            ["student#1#anti_cheating_input_7", "student#2#anti_cheating_input_7"],
        )

        first.delete("anti_cheating_input_7")
        self.assertIsNone(first.get("anti_cheating_input_7"))
        self.assertEqual(second.get("anti_cheating_input_7"), "two")

    def test_namespaced_store_rejects_blank_namespace(self) -> None:
        with self.assertRaises(ValueError):
            NamespacedKeyValueStore(InMemoryKeyValueStore(), " ")


if __name__ == "__main__":
    unittest.main()
