"""
Overlay clock.

Vehicle positions are evaluated against epoch milliseconds.  The clock runs
at ``OVERLAY_CLOCK_SCALE`` times wall time from an anchor pair (real ms,
overlay ms).  Pausing or freezing moves the anchor; it never rewinds the
real side.
"""

import os
import threading
import time
from typing import Optional

OVERLAY_CLOCK_SCALE = float(os.environ.get("OVERLAY_CLOCK_SCALE", "1"))

_CLOCK_LOCK = threading.Lock()
_anchor = {
    "real_ms": time.time() * 1000.0,
    "overlay_ms": time.time() * 1000.0,
    "paused": False,
}


def _real_now_ms() -> float:
    return time.time() * 1000.0


def _overlay_ms_at(now_real_ms: float) -> float:
    # Caller holds _CLOCK_LOCK.
    if _anchor["paused"]:
        return _anchor["overlay_ms"]
    return _anchor["overlay_ms"] + (now_real_ms - _anchor["real_ms"]) * OVERLAY_CLOCK_SCALE


def _move_anchor(now_real_ms: float, overlay_ms: float, paused: bool) -> None:
    _anchor["real_ms"] = now_real_ms
    _anchor["overlay_ms"] = float(overlay_ms)
    _anchor["paused"] = bool(paused)


def overlay_now_ms() -> float:
    now_real_ms = _real_now_ms()
    with _CLOCK_LOCK:
        return _overlay_ms_at(now_real_ms)


def resolve_evaluation_time(t: Optional[float]) -> float:
    """Explicit query time when given, else the overlay clock."""
    return float(t) if t is not None else overlay_now_ms()


def clock_paused() -> bool:
    with _CLOCK_LOCK:
        return _anchor["paused"]


def effective_clock_scale() -> float:
    return 0.0 if clock_paused() else OVERLAY_CLOCK_SCALE


def set_clock_paused(paused: bool) -> None:
    now_real_ms = _real_now_ms()
    with _CLOCK_LOCK:
        _move_anchor(now_real_ms, _overlay_ms_at(now_real_ms), paused)


def freeze_clock_at(epoch_ms: float) -> None:
    """Pin the overlay clock to ``epoch_ms`` until it is resumed or reset."""
    now_real_ms = _real_now_ms()
    with _CLOCK_LOCK:
        _move_anchor(now_real_ms, epoch_ms, True)


def reset_overlay_clock() -> None:
    now_real_ms = _real_now_ms()
    with _CLOCK_LOCK:
        _move_anchor(now_real_ms, now_real_ms, False)


def clock_state() -> dict:
    return {
        "now_ms": overlay_now_ms(),
        "clock_scale": effective_clock_scale(),
        "paused": clock_paused(),
    }
