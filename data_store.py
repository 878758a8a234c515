import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

APP_DIR = Path(__file__).resolve().parent
DATA_DIR = Path(os.environ.get("DATA_DIR", str(APP_DIR / "data")))
SNAPSHOT_PATH = Path(os.environ.get("SNAPSHOT_PATH", str(DATA_DIR / "snapshot.json")))

# section name -> accepted container types
SNAPSHOT_SECTIONS: Dict[str, Tuple[type, ...]] = {
    "systems": (list, dict),
    "systemNames": (dict,),
    "universe": (dict,),
    "planets": (list, dict),
    "stations": (list,),
    "ships": (list,),
    "flights": (list,),
    "storage": (list,),
    "contracts": (list,),
}


class SnapshotError(ValueError):
    pass


def validate_snapshot(raw: Any) -> Dict[str, Any]:
    """Check section shapes and return a normalized snapshot dict.

    Unknown top-level keys are dropped; missing sections become empty.
    """
    if not isinstance(raw, dict):
        raise SnapshotError("Snapshot root must be an object")
    snapshot: Dict[str, Any] = {}
    for name, accepted in SNAPSHOT_SECTIONS.items():
        value = raw.get(name)
        if value is None:
            snapshot[name] = [] if list in accepted else {}
            continue
        if not isinstance(value, accepted):
            kinds = " or ".join("array" if t is list else "object" for t in accepted)
            raise SnapshotError(f"{name} must be an {kinds}")
        snapshot[name] = value
    return snapshot


def load_snapshot_file(path: Path = SNAPSHOT_PATH) -> Dict[str, Any]:
    if not path.exists():
        raise SnapshotError(f"Snapshot not found: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"Invalid JSON in {path}: {exc}") from exc
    return validate_snapshot(raw)


class SnapshotStore:
    """Holds the current data snapshot and its version counters.

    ``version`` bumps on every replace; ``section_versions`` only bump for
    sections whose content actually changed, so derived tables can be
    invalidated independently.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot: Dict[str, Any] = validate_snapshot({})
        self._version = 0
        self._section_versions: Dict[str, int] = {name: 0 for name in SNAPSHOT_SECTIONS}

    def replace(self, raw: Any) -> int:
        snapshot = validate_snapshot(raw)
        with self._lock:
            self._version += 1
            for name in SNAPSHOT_SECTIONS:
                if snapshot[name] != self._snapshot.get(name):
                    self._section_versions[name] = self._version
            self._snapshot = snapshot
            return self._version

    def clear(self) -> None:
        # Versions stay monotonic across clears.
        with self._lock:
            self._snapshot = validate_snapshot({})
            self._version += 1
            self._section_versions = {name: self._version for name in SNAPSHOT_SECTIONS}

    def current(self) -> Tuple[int, Dict[str, Any], Dict[str, int]]:
        with self._lock:
            return self._version, self._snapshot, dict(self._section_versions)

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def summary(self) -> Dict[str, Any]:
        version, snapshot, section_versions = self.current()
        return {
            "version": version,
            "counts": {name: len(snapshot[name]) for name in SNAPSHOT_SECTIONS},
            "section_versions": section_versions,
        }


_STORE = SnapshotStore()


def get_store() -> SnapshotStore:
    """FastAPI dependency returning the process-wide snapshot store."""
    return _STORE


def load_startup_snapshot(store: Optional[SnapshotStore] = None, path: Optional[Path] = None) -> bool:
    """Load the snapshot file into the store if present; log and continue on errors."""
    store = store or _STORE
    path = path or SNAPSHOT_PATH
    if not path.exists():
        logging.info("No snapshot at %s; starting with an empty store", path)
        return False
    try:
        store.replace(load_snapshot_file(path))
    except SnapshotError:
        logging.exception("Failed to load startup snapshot from %s", path)
        return False
    return True
