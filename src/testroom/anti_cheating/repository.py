"""Persistence boundaries for anti-cheating session records."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """String key-value storage for small JSON documents."""

    def get(self, key: str) -> str | None:
        """Return the stored value or None when absent."""

    def put(self, key: str, value: str) -> None:
        """Store a value, replacing any existing one."""

    def delete(self, key: str) -> None:
        """Remove a value; absent keys are ignored."""


class InMemoryKeyValueStore:
    """Process-local store, mainly for tests and short-lived sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._rows: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._rows.get(key)

    def put(self, key: str, value: str) -> None:
        self._rows[key] = value

    def delete(self, key: str) -> None:
        self._rows.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._rows)


class JsonFileKeyValueStore:
    """Durable local storage backed by a single JSON document on disk."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        payload = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"{self._path} must contain a JSON object")
        return {str(key): value for key, value in payload.items() if isinstance(value, str)}

    def _write_all(self, rows: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(rows, handle, sort_keys=True)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> str | None:
        return self._read_all().get(key)

    def put(self, key: str, value: str) -> None:
        rows = self._read_all()
        rows[key] = value
        self._write_all(rows)

    def delete(self, key: str) -> None:
        rows = self._read_all()
        if rows.pop(key, None) is not None:
            self._write_all(rows)


class DynamoDbKeyValueStore:
    """DynamoDB adapter that stores one record per storage key."""

    def __init__(self, table: Any) -> None:
        self._table = table

    def get(self, key: str) -> str | None:
        response = self._table.get_item(Key={"storageKey": key})
        item = response.get("Item")
        if item is None:
            return None
        payload = item.get("payload")
        return payload if isinstance(payload, str) else None

    def put(self, key: str, value: str) -> None:
        self._table.put_item(Item={"storageKey": key, "payload": value})

    def delete(self, key: str) -> None:
        self._table.delete_item(Key={"storageKey": key})


class NamespacedKeyValueStore:
    """Prefixes every key so several owners can share one backing store."""

    def __init__(self, store: KeyValueStore, namespace: str) -> None:
        if not namespace.strip():
            raise ValueError("namespace must be a non-empty string")
        self._store = store
        self.namespace = namespace.strip()

    def _key(self, key: str) -> str:
        return f"{self.namespace}#{key}"

    def get(self, key: str) -> str | None:
        return self._store.get(self._key(key))

    def put(self, key: str, value: str) -> None:
        self._store.put(self._key(key), value)

    def delete(self, key: str) -> None:
        self._store.delete(self._key(key))
