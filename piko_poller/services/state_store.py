# piko_poller/services/state_store.py

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateStore:
    """SQLite-backed object/state store.

    Objects carry typed metadata ("common"); states carry the latest value with
    its ack flag. ``persist=False`` keeps everything in memory.
    """

    def __init__(self, path: Optional[Union[Path, str]] = None, *, persist: bool = True):
        default_path = Path.home() / ".piko_poller_state.db"
        self._persist = persist
        self._log = logging.getLogger("piko.state")
        if self._persist:
            resolved = Path(path).expanduser() if path else default_path
            resolved.parent.mkdir(parents=True, exist_ok=True)
            self.path: Optional[Path] = resolved
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._init_schema()
        else:
            self.path = None
            self._conn = None
            self._memory: Dict[str, Dict[str, Any]] = {
                "objects": {},
                "states": {},
            }

    # ------------------------------------------------------------------
    def _init_schema(self) -> None:
        stmts = [
            """
            CREATE TABLE IF NOT EXISTS objects (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                common TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS states (
                id TEXT PRIMARY KEY,
                val TEXT,
                ack INTEGER NOT NULL,
                ts TEXT NOT NULL
            )
            """,
        ]
        for stmt in stmts:
            self._conn.execute(stmt)
        self._conn.commit()

    # ------------------------------------------------------------------
    def flush(self) -> None:
        if self._persist and self._conn:
            self._conn.commit()

    def close(self) -> None:
        if self._persist and self._conn:
            self._conn.commit()
            self._conn.close()
            self._conn = None

    # Objects ---------------------------------------------------------
    def ensure_object_exists(self, obj_id: str, common: Dict[str, Any], obj_type: str = "state") -> bool:
        """Create the object unless it exists. Returns True when it was created."""
        if not self._persist:
            if obj_id in self._memory["objects"]:
                return False
            self._memory["objects"][obj_id] = {"type": obj_type, "common": dict(common)}
            return True
        cur = self._conn.execute(
            """
            INSERT INTO objects(id, type, common, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO NOTHING
            """,
            (obj_id, obj_type, json.dumps(common), _now()),
        )
        self._conn.commit()
        return cur.rowcount > 0

    def get_object(self, obj_id: str) -> Optional[Dict[str, Any]]:
        if not self._persist:
            entry = self._memory["objects"].get(obj_id)
            if entry is None:
                return None
            return {"type": entry["type"], "common": dict(entry["common"])}
        cur = self._conn.execute("SELECT type, common FROM objects WHERE id = ?", (obj_id,))
        row = cur.fetchone()
        if not row:
            return None
        return {"type": row["type"], "common": json.loads(row["common"])}

    def object_ids(self) -> List[str]:
        if not self._persist:
            return sorted(self._memory["objects"])
        cur = self._conn.execute("SELECT id FROM objects ORDER BY id")
        return [row["id"] for row in cur.fetchall()]

    def delete_object(self, obj_id: str) -> None:
        if not self._persist:
            self._memory["objects"].pop(obj_id, None)
            self._memory["states"].pop(obj_id, None)
            return
        with self._conn:
            self._conn.execute("DELETE FROM objects WHERE id = ?", (obj_id,))
            self._conn.execute("DELETE FROM states WHERE id = ?", (obj_id,))

    # States ----------------------------------------------------------
    def write_value(self, obj_id: str, value: Any, ack: bool = True) -> None:
        ts = _now()
        if not self._persist:
            self._memory["states"][obj_id] = {"val": value, "ack": bool(ack), "ts": ts}
            return
        self._conn.execute(
            """
            INSERT INTO states(id, val, ack, ts)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET val=excluded.val, ack=excluded.ack, ts=excluded.ts
            """,
            (obj_id, json.dumps(value), 1 if ack else 0, ts),
        )
        self._conn.commit()

    def get_state(self, obj_id: str) -> Optional[Dict[str, Any]]:
        if not self._persist:
            entry = self._memory["states"].get(obj_id)
            return dict(entry) if entry else None
        cur = self._conn.execute("SELECT val, ack, ts FROM states WHERE id = ?", (obj_id,))
        row = cur.fetchone()
        if not row:
            return None
        return {"val": json.loads(row["val"]), "ack": bool(row["ack"]), "ts": row["ts"]}

    def state_timestamps(self) -> Dict[str, str]:
        if not self._persist:
            return {key: entry["ts"] for key, entry in self._memory["states"].items()}
        cur = self._conn.execute("SELECT id, ts FROM states")
        return {row["id"]: row["ts"] for row in cur.fetchall()}

    # ------------------------------------------------------------------
    def __del__(self):
        try:
            self.close()
        except Exception:
            pass
