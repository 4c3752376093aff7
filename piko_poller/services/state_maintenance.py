from __future__ import annotations

import datetime as dt

from piko_poller.services.state_publisher import CONNECTION_ID


def _cutoff(days: int) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    return (now - dt.timedelta(days=days)).isoformat()


def prune_stale(store, stale_days: int, *, vacuum: bool = True) -> list[str]:
    """Delete field objects whose value has not been written for ``stale_days``.

    Objects that never received a value count as stale too. Returns the
    deleted ids.
    """
    cutoff = _cutoff(stale_days)
    written = store.state_timestamps()
    removed: list[str] = []
    for obj_id in store.object_ids():
        if obj_id == CONNECTION_ID:
            continue
        ts = written.get(obj_id)
        if ts is None or ts < cutoff:
            store.delete_object(obj_id)
            removed.append(obj_id)

    conn = getattr(store, "_conn", None)
    if vacuum and getattr(store, "_persist", False) and conn is not None:
        conn.execute("VACUUM")
    return removed
