"""
Overlay API routes.

Handles:
  /api/snapshot
  /api/overlay
  /api/overlay/ships/{ship_id}
  /api/overlay/systems/shipments
  /api/resolve/system
  /api/time
  /api/time/toggle_pause
  /api/time/freeze
  /api/time/reset
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel

from data_store import SnapshotError, SnapshotStore, get_store
from overlay_service import (
    LookupCache,
    OverlaySnapshot,
    build_ship_descriptors,
    find_ship_descriptor,
    get_lookup_cache,
    system_shipment_counts,
)
from sim_service import (
    clock_paused,
    clock_state,
    freeze_clock_at,
    reset_overlay_clock,
    resolve_evaluation_time,
    set_clock_paused,
)
from universe_service import resolve_system_id, system_name

router = APIRouter(tags=["overlay"])


# ── Snapshot ───────────────────────────────────────────────

@router.put("/api/snapshot")
def api_replace_snapshot(
    payload: Any = Body(...),
    store: SnapshotStore = Depends(get_store),
) -> Dict[str, Any]:
    try:
        store.replace(payload)
    except SnapshotError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return store.summary()


@router.get("/api/snapshot")
def api_snapshot_summary(store: SnapshotStore = Depends(get_store)) -> Dict[str, Any]:
    return store.summary()


# ── Overlay ────────────────────────────────────────────────

@router.get("/api/overlay")
def api_overlay(
    t: Optional[float] = None,
    partner: Optional[str] = None,
    store: SnapshotStore = Depends(get_store),
    cache: LookupCache = Depends(get_lookup_cache),
) -> Dict[str, Any]:
    snapshot = OverlaySnapshot.from_store(store)
    now_ms = resolve_evaluation_time(t)
    descriptors = build_ship_descriptors(snapshot, now_ms, partner, cache)
    return {
        "version": snapshot.version,
        "evaluated_at_ms": now_ms,
        "ships": [d.model_dump() for d in descriptors],
    }


@router.get("/api/overlay/ships/{ship_id}")
def api_overlay_ship(
    ship_id: str,
    t: Optional[float] = None,
    store: SnapshotStore = Depends(get_store),
    cache: LookupCache = Depends(get_lookup_cache),
) -> Dict[str, Any]:
    snapshot = OverlaySnapshot.from_store(store)
    descriptor = find_ship_descriptor(snapshot, ship_id, resolve_evaluation_time(t), cache=cache)
    if descriptor is None:
        raise HTTPException(status_code=404, detail="Ship not found")
    return descriptor.model_dump()


@router.get("/api/overlay/systems/shipments")
def api_system_shipments(
    store: SnapshotStore = Depends(get_store),
    cache: LookupCache = Depends(get_lookup_cache),
) -> Dict[str, Any]:
    snapshot = OverlaySnapshot.from_store(store)
    by_system = system_shipment_counts(snapshot, cache)
    return {
        "version": snapshot.version,
        "systems": {
            system_id: {
                "count": len(entries),
                "shipments": [e.model_dump() for e in entries],
            }
            for system_id, entries in by_system.items()
        },
    }


# ── Resolution helpers ─────────────────────────────────────

@router.get("/api/resolve/system")
def api_resolve_system(
    q: str,
    store: SnapshotStore = Depends(get_store),
    cache: LookupCache = Depends(get_lookup_cache),
) -> Dict[str, Any]:
    lookups = cache.world_lookups(OverlaySnapshot.from_store(store))
    resolved = resolve_system_id(lookups, q)
    return {
        "query": q,
        "system_id": resolved,
        "system_name": system_name(lookups, resolved),
    }


# ── Overlay clock ──────────────────────────────────────────

class FreezeClockReq(BaseModel):
    epoch_ms: float


@router.get("/api/time")
def api_time() -> Dict[str, Any]:
    return clock_state()


@router.post("/api/time/toggle_pause")
def api_toggle_pause() -> Dict[str, Any]:
    set_clock_paused(not clock_paused())
    return clock_state()


@router.post("/api/time/freeze")
def api_freeze_clock(req: FreezeClockReq) -> Dict[str, Any]:
    if req.epoch_ms < 0:
        raise HTTPException(status_code=400, detail="epoch_ms must be non-negative")
    freeze_clock_at(req.epoch_ms)
    return clock_state()


@router.post("/api/time/reset")
def api_reset_clock() -> Dict[str, Any]:
    reset_overlay_clock()
    return clock_state()
