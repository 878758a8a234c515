"""
Per-vehicle overlay composition.

Turns one data snapshot into render-ready ``ShipDescriptor`` records by
composing location resolution, cargo aggregation and flight interpolation.
Derived lookup tables are memoized in ``LookupCache`` keyed on the versions
of the snapshot sections they are built from.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, Field

from cargo_service import (
    CapacityProfileMatch,
    LoadBar,
    ShipLoadInfo,
    ShipmentMatch,
    ShipmentTile,
    SystemShipment,
    build_ship_load_index,
    classify_ship_capacity,
    count_system_shipments,
    load_bar_descriptors,
    load_summary,
    shipment_tiles,
)
from constants import FLIGHT_SHIP_ID_FIELDS, SHIP_PRIMARY_ID_FIELDS
from contract_service import ShipmentContractIndex, build_shipment_contract_index, filter_shipments_by_partner
from data_store import SnapshotStore
from flight_service import (
    FlightPosition,
    FlightTiming,
    build_segment_pairs,
    compute_flight_timing,
    has_traversal_hints,
    interpolate_ship_position,
    is_flight_arrived,
)
from identifiers import first_present, normalize_lookup_key
from location_service import (
    LocationDetail,
    build_system_only_location,
    format_location_display,
    get_ship_location_details,
    get_ship_location_system_id,
    select_display_location,
)
from storage_service import StorageIndex, build_storage_index, ship_lookup_keys
from universe_service import WorldLookups, build_world_lookups

STATUS_TRANSIT = "transit"
STATUS_ARRIVED = "arrived"
STATUS_STL = "stl"
STATUS_IDLE = "idle"

WORLD_SECTIONS = ("systems", "systemNames", "universe", "planets", "stations")


class OverlaySnapshot(BaseModel):
    version: int = 0
    data: Dict[str, Any] = Field(default_factory=dict)
    section_versions: Dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_store(cls, store: SnapshotStore) -> "OverlaySnapshot":
        version, data, section_versions = store.current()
        return cls(version=version, data=data, section_versions=section_versions)

    def section(self, name: str) -> Any:
        return self.data.get(name)

    def section_key(self, *names: str) -> Tuple[int, ...]:
        # Snapshots built without section versions key on the overall version.
        return tuple(self.section_versions.get(name, self.version) for name in names)


class ShipDescriptor(BaseModel):
    ship_id: Optional[str] = None
    flight_id: Optional[str] = None
    name: Optional[str] = None
    status: str
    location: Optional[LocationDetail] = None
    location_label: str = "Unknown"
    origin: Optional[LocationDetail] = None
    destination: Optional[LocationDetail] = None
    position: Optional[FlightPosition] = None
    timing: Optional[FlightTiming] = None
    has_traversal_hints: bool = False
    load: Optional[ShipLoadInfo] = None
    load_summary: Optional[str] = None
    load_bars: List[LoadBar] = Field(default_factory=list)
    capacity_profile: Optional[CapacityProfileMatch] = None
    shipments: List[ShipmentMatch] = Field(default_factory=list)
    shipment_tiles: List[ShipmentTile] = Field(default_factory=list)


class LookupCache:
    """Memoizes derived tables per snapshot section version.

    Each table is rebuilt only when one of its source sections changed.
    Rebuilding is always safe to repeat and never mutates the old table.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[Tuple[int, ...], Any]] = {}
        self.builds: Dict[str, int] = {}

    def _memo(self, name: str, key: Tuple[int, ...], build: Callable[[], Any]) -> Any:
        with self._lock:
            cached = self._entries.get(name)
            if cached is not None and cached[0] == key:
                return cached[1]
        value = build()
        with self._lock:
            self._entries[name] = (key, value)
            self.builds[name] = self.builds.get(name, 0) + 1
        return value

    def world_lookups(self, snapshot: OverlaySnapshot) -> WorldLookups:
        return self._memo(
            "world",
            snapshot.section_key(*WORLD_SECTIONS),
            lambda: build_world_lookups(snapshot.data),
        )

    def storage_index(self, snapshot: OverlaySnapshot) -> StorageIndex:
        return self._memo(
            "storage",
            snapshot.section_key("storage"),
            lambda: build_storage_index(snapshot.section("storage")),
        )

    def contract_index(self, snapshot: OverlaySnapshot) -> ShipmentContractIndex:
        return self._memo(
            "contracts",
            snapshot.section_key("contracts"),
            lambda: build_shipment_contract_index(snapshot.section("contracts")),
        )

    def ship_load_index(self, snapshot: OverlaySnapshot) -> Dict[str, ShipLoadInfo]:
        return self._memo(
            "ship_loads",
            snapshot.section_key("ships", "storage", "contracts"),
            lambda: build_ship_load_index(
                snapshot.section("ships"),
                self.storage_index(snapshot),
                self.contract_index(snapshot),
            ),
        )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.builds.clear()


_DEFAULT_CACHE = LookupCache()


def get_lookup_cache() -> LookupCache:
    return _DEFAULT_CACHE


# ── Helpers ────────────────────────────────────────────────

def primary_ship_id(ship: Any) -> Optional[str]:
    value = first_present(ship, SHIP_PRIMARY_ID_FIELDS)
    return str(value).strip() if value is not None else None


def flight_ship_id(flight: Any) -> Optional[str]:
    value = first_present(flight, FLIGHT_SHIP_ID_FIELDS)
    return str(value).strip() if value is not None else None


def _ship_name(ship: Any, fallback: Optional[str]) -> Optional[str]:
    name = first_present(ship, ("Name", "ShipName", "DisplayName"))
    return str(name) if name is not None else fallback


def _index_ships(ships: Sequence[Any]) -> Dict[str, dict]:
    by_key: Dict[str, dict] = {}
    for ship in ships:
        if not isinstance(ship, dict):
            continue
        for value in (ship.get(field) for field in SHIP_PRIMARY_ID_FIELDS):
            key = normalize_lookup_key(value)
            if key:
                by_key.setdefault(key, ship)
    return by_key


def _load_for(load_index: Dict[str, ShipLoadInfo], ship: Any, fallback_id: Optional[str]) -> Optional[ShipLoadInfo]:
    for key in ship_lookup_keys(ship):
        if key in load_index:
            return load_index[key]
    key = normalize_lookup_key(fallback_id)
    return load_index.get(key) if key else None


def _load_fields(
    load: Optional[ShipLoadInfo],
    ship: Any,
    partner_filter: Optional[str],
    now_ms: float,
) -> Optional[Dict[str, Any]]:
    """Load-related descriptor fields, or None when the partner filter hides the ship."""
    shipments = filter_shipments_by_partner(load.shipments if load else [], partner_filter)
    if normalize_lookup_key(partner_filter) and not shipments:
        return None
    return {
        "load": load,
        "load_summary": load_summary(load),
        "load_bars": load_bar_descriptors(load),
        "capacity_profile": classify_ship_capacity(load, ship),
        "shipments": shipments,
        "shipment_tiles": shipment_tiles(shipments, now_ms),
    }


def _flight_descriptor(
    lookups: WorldLookups,
    flight: dict,
    ship: Optional[dict],
    load_index: Dict[str, ShipLoadInfo],
    now_ms: float,
    partner_filter: Optional[str],
) -> Optional[ShipDescriptor]:
    ship_id = primary_ship_id(ship) or flight_ship_id(flight)
    load_fields = _load_fields(_load_for(load_index, ship, ship_id), ship, partner_filter, now_ms)
    if load_fields is None:
        return None

    segment_pairs = build_segment_pairs(lookups, flight)
    pairs = segment_pairs.pairs
    flight_id = flight.get("FlightId")
    common = {
        "ship_id": ship_id,
        "flight_id": str(flight_id) if flight_id is not None else None,
        "name": _ship_name(ship, ship_id),
        **load_fields,
    }

    if not pairs:
        # Labels alone never make a flight STL; a segment must resolve a system.
        system_id = segment_pairs.segment_system_id
        if segment_pairs.stl_only and system_id:
            location = select_display_location(
                segment_pairs.final_location, build_system_only_location(lookups, system_id)
            )
            return ShipDescriptor(
                status=STATUS_STL,
                location=location,
                location_label=format_location_display(location),
                origin=segment_pairs.first_location,
                destination=segment_pairs.final_location,
                **common,
            )
        return None

    first_meta = select_display_location(segment_pairs.first_location, pairs[0].from_location)
    final_meta = select_display_location(segment_pairs.final_location, pairs[-1].to_location)
    position = interpolate_ship_position(pairs, now_ms, flight, ship)
    timing = compute_flight_timing(flight, pairs)

    if is_flight_arrived(position):
        status, location = STATUS_ARRIVED, final_meta
    else:
        status = STATUS_TRANSIT
        if position is not None and position.segment_index == 0:
            location = select_display_location(position.from_location, first_meta)
        else:
            location = position.from_location if position is not None else first_meta

    return ShipDescriptor(
        status=status,
        location=location,
        location_label=format_location_display(location),
        origin=first_meta,
        destination=final_meta,
        position=position,
        timing=timing,
        has_traversal_hints=has_traversal_hints(flight, ship),
        **common,
    )


def _idle_descriptor(
    lookups: WorldLookups,
    ship: dict,
    load_index: Dict[str, ShipLoadInfo],
    now_ms: float,
    partner_filter: Optional[str],
) -> Optional[ShipDescriptor]:
    ship_id = primary_ship_id(ship)
    load_fields = _load_fields(_load_for(load_index, ship, ship_id), ship, partner_filter, now_ms)
    if load_fields is None:
        return None
    location = get_ship_location_details(lookups, ship, get_ship_location_system_id(lookups, ship))
    return ShipDescriptor(
        ship_id=ship_id,
        name=_ship_name(ship, ship_id),
        status=STATUS_IDLE,
        location=location,
        location_label=format_location_display(location),
        **load_fields,
    )


# ── Composition ────────────────────────────────────────────

def build_ship_descriptors(
    snapshot: OverlaySnapshot,
    now_ms: float,
    partner_filter: Optional[str] = None,
    cache: Optional[LookupCache] = None,
) -> List[ShipDescriptor]:
    """One descriptor per vehicle; vehicles that fail to compose are logged and omitted."""
    cache = cache or LookupCache()
    lookups = cache.world_lookups(snapshot)
    load_index = cache.ship_load_index(snapshot)

    ships = [s for s in (snapshot.section("ships") or []) if isinstance(s, dict)]
    ships_by_key = _index_ships(ships)
    handled: Set[int] = set()
    descriptors: List[ShipDescriptor] = []

    for flight in snapshot.section("flights") or []:
        if not isinstance(flight, dict):
            continue
        ship_id = flight_ship_id(flight)
        ship = ships_by_key.get(normalize_lookup_key(ship_id) or "")
        try:
            descriptor = _flight_descriptor(lookups, flight, ship, load_index, now_ms, partner_filter)
        except Exception:
            logging.exception("Failed to build overlay descriptor for flight %s (ship %s)", flight.get("FlightId"), ship_id)
            continue
        if descriptor is None:
            continue
        if ship is not None:
            if id(ship) in handled:
                continue
            handled.add(id(ship))
        descriptors.append(descriptor)

    for ship in ships:
        if id(ship) in handled:
            continue
        try:
            descriptor = _idle_descriptor(lookups, ship, load_index, now_ms, partner_filter)
        except Exception:
            logging.exception("Failed to build overlay descriptor for ship %s", primary_ship_id(ship))
            continue
        if descriptor is not None:
            descriptors.append(descriptor)

    return descriptors


def find_ship_descriptor(
    snapshot: OverlaySnapshot,
    ship_id: str,
    now_ms: float,
    partner_filter: Optional[str] = None,
    cache: Optional[LookupCache] = None,
) -> Optional[ShipDescriptor]:
    wanted = normalize_lookup_key(ship_id)
    if not wanted:
        return None
    for descriptor in build_ship_descriptors(snapshot, now_ms, partner_filter, cache):
        if normalize_lookup_key(descriptor.ship_id) == wanted:
            return descriptor
    return None


def system_shipment_counts(
    snapshot: OverlaySnapshot,
    cache: Optional[LookupCache] = None,
) -> Dict[str, List[SystemShipment]]:
    cache = cache or LookupCache()
    return count_system_shipments(
        cache.world_lookups(snapshot),
        snapshot.section("storage"),
        cache.contract_index(snapshot),
    )
