import logging
from typing import Any, Dict

from fastapi import FastAPI

from data_store import get_store, load_startup_snapshot
from overlay_router import router as overlay_router

logging.basicConfig(level=logging.INFO)

app = FastAPI(title="Starlane Overlay")
app.include_router(overlay_router)


@app.on_event("startup")
def _startup():
    load_startup_snapshot()


@app.get("/api/health")
def api_health() -> Dict[str, Any]:
    return {
        "ok": True,
        "service": "starlane-overlay",
        "snapshot_version": get_store().version,
    }
