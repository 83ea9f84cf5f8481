from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from .models import Message, StoreSettings

logger = logging.getLogger("woochat.storage")

SETTINGS_KEY = "woocommerce-chatbot-settings"
MESSAGES_KEY = "woocommerce-chatbot-messages"


class KeyValueStore:
    """String-to-string persistence capability; subclasses decide where bytes live."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Process-local store, used by tests and when no data directory is configured."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """Key-value store backed by a single JSON file on disk."""

    def __init__(self, path: Path) -> None:
        """Purpose: Initialize the store and hydrate from disk if available.
        Inputs/Outputs: Input is the backing file path; no return.
        Side Effects / State: Loads all keys into memory.
        Dependencies: Calls _load.
        Failure Modes: JSON decode errors are logged and leave an empty cache.
        Testing Notes: Write through one instance and read back through a new one.
        """
        # Keep the path and preload persisted values if present.
        self._path = path
        self._data: Dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        """Purpose: Load persisted key/value pairs from disk into memory.
        Inputs/Outputs: Reads from self._path; no return value.
        Side Effects / State: Populates _data.
        Failure Modes: Missing file or JSONDecodeError results in an empty cache.
        """
        # Read and decode persisted JSON if present.
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("ignoring unreadable store file path=%s", self._path)
            return
        if isinstance(data, dict):
            self._data = {str(key): value for key, value in data.items() if isinstance(value, str)}

    def _persist(self) -> None:
        """Purpose: Persist in-memory values to disk.
        Inputs/Outputs: Writes to self._path; no return value.
        Side Effects / State: Creates the parent directory and rewrites the file.
        Failure Modes: IO errors raise exceptions (not caught here).
        """
        # Serialize the whole map; values are already JSON text.
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._data, ensure_ascii=False, indent=2), encoding="utf-8")

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._persist()

    def delete(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._persist()


def load_store_settings(store: KeyValueStore) -> Optional[StoreSettings]:
    """Purpose: Read the operator settings record.
    Inputs/Outputs: Input is a KeyValueStore; output is StoreSettings or None when absent.
    Failure Modes: A corrupt record is logged and treated as absent.
    """
    raw = store.get(SETTINGS_KEY)
    if raw is None:
        return None
    try:
        return StoreSettings.model_validate_json(raw)
    except ValidationError as exc:
        logger.error("failed to load settings: %s", exc)
        return None


def save_store_settings(store: KeyValueStore, settings: StoreSettings) -> None:
    store.set(SETTINGS_KEY, settings.model_dump_json())


def load_messages(store: KeyValueStore) -> List[Message]:
    """Purpose: Restore the visible transcript.
    Inputs/Outputs: Input is a KeyValueStore; output is the message list (empty if absent).
    Side Effects / State: None.
    Dependencies: pydantic parses ISO-8601 timestamp text back into datetimes.
    Failure Modes: A corrupt blob is logged and yields an empty transcript.
    Testing Notes: Saved then loaded timestamps must compare equal as datetimes.
    """
    raw = store.get(MESSAGES_KEY)
    if raw is None:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.error("failed to load messages: %s", exc)
        return []
    if not isinstance(data, list):
        return []
    try:
        return [Message.model_validate(item) for item in data]
    except ValidationError as exc:
        logger.error("failed to load messages: %s", exc)
        return []


def save_messages(store: KeyValueStore, messages: List[Message]) -> None:
    payload = [message.model_dump(mode="json") for message in messages]
    store.set(MESSAGES_KEY, json.dumps(payload, ensure_ascii=False))


def clear_messages(store: KeyValueStore) -> None:
    store.delete(MESSAGES_KEY)
