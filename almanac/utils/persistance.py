# JSON persistence helpers with basic file locking, plus the key-value
# storage backends the event store writes through.

from __future__ import annotations
from pathlib import Path
import copy
import json
import os
import time
from typing import Any, Dict

from almanac.core.errors import StorageError
from almanac.utils.debug import get_logger

log = get_logger("storage")


# Naive lock via .lock file (good enough for single-user local use)
def _lock_path(p: Path) -> Path:
    return p.with_suffix(p.suffix + ".lock")


def _acquire_lock(p: Path, timeout: float = 3.0, poll: float = 0.05) -> None:
    lock = _lock_path(p)
    start = time.time()
    while lock.exists():
        if time.time() - start > timeout:
            # Stale lock from a crashed writer: take it over
            log.warning("Removing stale lock %s", lock)
            try:
                lock.unlink()
            except OSError as e:
                raise StorageError(f"Could not acquire lock for {p}") from e
            break
        time.sleep(poll)
    lock.touch(exist_ok=True)


def _release_lock(p: Path) -> None:
    lock = _lock_path(p)
    try:
        lock.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        log.warning("Could not release lock %s: %s", lock, e)


def load_json(path: str | Path, default: Any) -> Any:
    """Read a JSON document. Missing file -> default, unreadable/corrupt -> StorageError."""
    p = Path(path)
    if not p.exists():
        return default
    try:
        with p.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise StorageError(f"Could not read {p}: {e}") from e


def save_json(path: str | Path, data: Any) -> None:
    """Write a JSON document atomically (temp file + replace)."""
    p = Path(path)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        _acquire_lock(p)
        try:
            tmp = p.with_suffix(p.suffix + ".tmp")
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, p)
        finally:
            _release_lock(p)
    except (OSError, TypeError, ValueError) as e:
        raise StorageError(f"Could not write {p}: {e}") from e


class JsonFileStorage:
    """Key-value storage keeping each key in <data_dir>/<key>.json."""

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)

    def path_for(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        return load_json(self.path_for(key), default)

    def set(self, key: str, value: Any) -> None:
        save_json(self.path_for(key), value)

    def delete(self, key: str) -> None:
        try:
            self.path_for(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Could not delete {key}: {e}") from e


class MemoryStorage:
    """In-process key-value storage. Values are round-tripped through JSON
    so callers see exactly what a file backend would give back."""

    def __init__(self, initial: Dict[str, Any] | None = None):
        self._data: Dict[str, str] = {}
        for k, v in (initial or {}).items():
            self.set(k, v)

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return copy.deepcopy(default)
        try:
            return json.loads(self._data[key])
        except ValueError as e:
            raise StorageError(f"Corrupt value for {key}: {e}") from e

    def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Could not serialize {key}: {e}") from e

    def set_raw(self, key: str, raw: str) -> None:
        self._data[key] = raw

    def delete(self, key: str) -> None:
        self._data.pop(key, None)
