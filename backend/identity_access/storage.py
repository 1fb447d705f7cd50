"""
Key-value storage behind the Token Store and the Session Registry.

Why: The browser keeps tokens and session bookkeeping in a process-wide
key-value store. Injecting the store keeps the auth core testable with an
in-memory fake and lets desktop/CLI callers persist to a file instead.

Limitation: There is no cross-process locking. Two processes sharing one file
see each other's writes on their next read (last write wins).
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional, Protocol
import json
import logging
import os
import tempfile

logger = logging.getLogger("iasdesk.identity_access.storage")


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryStorage:
    def __init__(self, initial: Dict[str, str] | None = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class JsonFileStorage:
    """Persist string values in a single JSON object on disk.

    Every read goes to disk so a second process sees the latest state. A
    missing or unreadable file reads as empty; writes replace the file
    atomically.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Storage read failed: %s", exc.__class__.__name__)
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Storage file is not valid JSON; treating as empty")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _dump(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".iasdesk-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, sort_keys=True)
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._dump(data)
