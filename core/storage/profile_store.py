from __future__ import annotations
import json, os, sqlite3, threading, time
from typing import Optional, Dict, Any, Tuple

import structlog
from blake3 import blake3

from core.storage.records import ModelState, PersistedRecord

log = structlog.get_logger()

DB_FILE = os.path.join(os.path.abspath("."), "typing_profile.sqlite3")
FORMAT_VERSION = "1.0"
STORAGE_KEY = "typingBehaviorModel"

def utc_ts_ms() -> int:
    return int(time.time() * 1000)

def digest_of(value: str) -> str:
    return blake3(value.encode("utf-8")).hexdigest()

class StorageFullError(Exception):
    """Backend ran out of room for the write."""

# ---- key-value backends ----

class SqliteKV:
    """Single-table key/value store in a local sqlite file (value + blake3 digest)."""
    def __init__(self, db_path: str = DB_FILE):
        self.db_path = db_path
        self._init_db()

    def _init_db(self):
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS profiles(
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL,
                  digest TEXT NOT NULL,
                  updated_ms INTEGER NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str) -> Optional[Tuple[str, str]]:
        conn = sqlite3.connect(self.db_path)
        try:
            row = conn.execute("SELECT value, digest FROM profiles WHERE key = ?", (key,)).fetchone()
            return (row[0], row[1]) if row else None
        finally:
            conn.close()

    def set(self, key: str, value: str, digest: str) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                "INSERT OR REPLACE INTO profiles(key, value, digest, updated_ms) VALUES (?,?,?,?)",
                (key, value, digest, utc_ts_ms()),
            )
            conn.commit()
        except sqlite3.OperationalError as e:
            if getattr(e, "sqlite_errorcode", None) == getattr(sqlite3, "SQLITE_FULL", 13) or "full" in str(e).lower():
                raise StorageFullError(str(e)) from e
            raise
        finally:
            conn.close()

    def delete(self, key: str) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("DELETE FROM profiles WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()

class MemoryKV:
    """In-process backend; optional byte capacity to exercise the full-storage path."""
    def __init__(self, capacity_bytes: Optional[int] = None):
        self.capacity_bytes = capacity_bytes
        self._data: Dict[str, Tuple[str, str]] = {}
        self._lock = threading.RLock()

    def _used(self) -> int:
        return sum(len(v) for v, _d in self._data.values())

    def get(self, key: str) -> Optional[Tuple[str, str]]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str, digest: str) -> None:
        with self._lock:
            # the old value under `key` still counts until it is deleted
            if self.capacity_bytes is not None and self._used() + len(value) > self.capacity_bytes:
                raise StorageFullError(f"{len(value)} bytes exceed capacity {self.capacity_bytes}")
            self._data[key] = (value, digest)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

# ---- profile store ----

class ProfileStore:
    """
    Best-effort persistence of the trained profile under one well-known key.
    - Versioned JSON envelope: {modelState, timestampMs, formatVersion}.
    - Corrupt, tampered or foreign-version records read back as absent.
    - Full backend: clear the record, retry once.
    Nothing here raises; callers get bool / None.
    """
    def __init__(self, backend=None, key: str = STORAGE_KEY, format_version: str = FORMAT_VERSION):
        self.backend = backend if backend is not None else SqliteKV()
        self.key = key
        self.format_version = format_version

    def _encode(self, state: ModelState) -> str:
        rec = PersistedRecord(model_state=state, timestamp_ms=utc_ts_ms(), format_version=self.format_version)
        return json.dumps(rec.to_record(), separators=(",", ":"))

    def _write(self, state: ModelState) -> None:
        payload = self._encode(state)
        self.backend.set(self.key, payload, digest_of(payload))

    def save(self, state: Optional[ModelState]) -> bool:
        if state is None:
            return False
        try:
            self._write(state)
            log.info("store.save", key=self.key, samples=state.training_sample_count)
            return True
        except StorageFullError as e:
            log.warning("store.save.full", key=self.key, err=str(e))
            self.clear()
            try:
                self._write(state)
                log.info("store.save.retry_ok", key=self.key)
                return True
            except Exception as retry_err:
                log.error("store.save.retry_failed", key=self.key, err=str(retry_err))
                return False
        except Exception as e:
            log.error("store.save.error", key=self.key, err=str(e))
            return False

    def _read_envelope(self) -> Optional[Dict[str, Any]]:
        row = self.backend.get(self.key)
        if row is None:
            return None
        value, digest = row
        if digest != digest_of(value):
            log.warning("store.load.digest_mismatch", key=self.key)
            return None
        env = json.loads(value)
        if not isinstance(env, dict):
            raise ValueError("record is not an object")
        return env

    def load(self) -> Optional[ModelState]:
        try:
            env = self._read_envelope()
            if env is None:
                return None
            if env.get("formatVersion") != self.format_version:
                log.warning("store.load.version", got=env.get("formatVersion"), want=self.format_version)
                return None
            state_rec = env.get("modelState")
            if not isinstance(state_rec, dict):
                return None
            return ModelState.from_record(state_rec)
        except Exception as e:
            log.error("store.load.error", key=self.key, err=str(e))
            return None

    def exists(self) -> bool:
        try:
            return self.backend.get(self.key) is not None
        except Exception as e:
            log.error("store.exists.error", key=self.key, err=str(e))
            return False

    def clear(self) -> bool:
        try:
            self.backend.delete(self.key)
            return True
        except Exception as e:
            log.error("store.clear.error", key=self.key, err=str(e))
            return False

    def metadata(self) -> Optional[Dict[str, Any]]:
        try:
            env = self._read_envelope()
            if env is None:
                return None
            return {"timestampMs": env.get("timestampMs"), "formatVersion": env.get("formatVersion")}
        except Exception as e:
            log.error("store.metadata.error", key=self.key, err=str(e))
            return None
