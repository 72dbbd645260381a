"""Materialized dashboard snapshot and the write-side subscription that rebuilds it.

The snapshot is a single row (`metrics_snapshots.id == "dashboard"`) replaced
wholesale on every rebuild. Concurrent rebuilds are last-write-wins.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from itertools import chain
from typing import Any, Dict, Iterable, Optional, Set

from sqlalchemy import event
from sqlalchemy.orm import Session, sessionmaker

from backend.app.core.settings import settings
from backend.app.db import models
from backend.app.db.session import SessionLocal, session_scope
from backend.app.services import aggregation
from backend.app.services.collections import fetch_source_collections, load_source_collections

logger = logging.getLogger(__name__)

SNAPSHOT_ID = "dashboard"
WATCHED_COLLECTIONS = frozenset({"sales", "vehicles", "users", "dealerships", "goals"})

_PENDING_KEY = "metrics_touched_collections"


def compute_snapshot_payload(session: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    return aggregation.build_dashboard_metrics(load_source_collections(session), now=now)


async def compute_snapshot_payload_async(now: Optional[datetime] = None) -> Dict[str, Any]:
    """Fresh recompute with the five collection reads fanned out concurrently."""
    source = await fetch_source_collections()
    return aggregation.build_dashboard_metrics(source, now=now)


def write_snapshot(session: Session, payload: Dict[str, Any], now: datetime) -> None:
    snapshot = session.get(models.MetricsSnapshot, SNAPSHOT_ID)
    if snapshot is None:
        session.add(models.MetricsSnapshot(id=SNAPSHOT_ID, payload=payload, last_updated=now))
    else:
        snapshot.payload = payload
        snapshot.last_updated = now


def refresh_metrics_snapshot(now: Optional[datetime] = None) -> bool:
    """Rebuild and overwrite the snapshot. Never raises: failures leave the old snapshot."""
    now = now or datetime.now(timezone.utc)
    try:
        with session_scope() as session:
            payload = compute_snapshot_payload(session, now=now)
            write_snapshot(session, payload, now)
    except Exception:
        logger.exception("Dashboard metrics refresh failed; keeping previous snapshot")
        return False
    logger.info("Dashboard metrics updated (%d enriched sales)", len(payload["enriched_sales"]))
    return True


def read_snapshot(session: Session) -> Optional[Dict[str, Any]]:
    snapshot = session.get(models.MetricsSnapshot, SNAPSHOT_ID)
    if snapshot is None:
        return None
    return snapshot.payload


def on_collections_changed(collections: Iterable[str]) -> bool:
    touched = sorted(set(collections) & WATCHED_COLLECTIONS)
    if not touched:
        return False
    logger.debug("Source collections changed: %s", ", ".join(touched))
    return refresh_metrics_snapshot()


def _touched_tables(session: Session) -> Set[str]:
    tables: Set[str] = set()
    for obj in chain(session.new, session.dirty, session.deleted):
        name = getattr(obj, "__tablename__", None)
        if name in WATCHED_COLLECTIONS:
            tables.add(name)
    return tables


def _record_changes(session: Session, flush_context: Any) -> None:
    touched = _touched_tables(session)
    if touched:
        session.info.setdefault(_PENDING_KEY, set()).update(touched)


def _refresh_after_commit(session: Session) -> None:
    touched = session.info.pop(_PENDING_KEY, None)
    if touched and settings.metrics_auto_refresh:
        on_collections_changed(touched)


def _discard_changes(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)


_LISTENERS = (
    ("after_flush", _record_changes),
    ("after_commit", _refresh_after_commit),
    ("after_rollback", _discard_changes),
)


def subscribe_to_source_changes(target: sessionmaker = SessionLocal) -> None:
    """Rebuild the snapshot after any commit that wrote a watched collection (idempotent)."""
    for name, listener in _LISTENERS:
        if not event.contains(target, name, listener):
            event.listen(target, name, listener)


def unsubscribe_from_source_changes(target: sessionmaker = SessionLocal) -> None:
    for name, listener in _LISTENERS:
        if event.contains(target, name, listener):
            event.remove(target, name, listener)
