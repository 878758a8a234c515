"""
Ship cargo load aggregation.

Combines a ship's chosen storage record, its embedded storage sub-record and
its own top-level fields into one ``ShipLoadInfo``: capacities, loads,
utilization ratios and the contract shipments it carries.

Ratios are floored at 0 but never capped, so values above 1.0 flag an
overloaded hold.
"""

import math
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from constants import (
    CAPACITY_PROFILE_TOLERANCE,
    PERCENT_SCALE_THRESHOLD,
    SHIP_CAPACITY_PROFILES,
    SHIP_EMBEDDED_STORAGE_FIELDS,
    SHIP_PERCENT_FIELDS,
    SHIPMENT_VOLUME_KEYS,
    SHIPMENT_WEIGHT_KEYS,
    STORAGE_ITEM_ID_FIELDS,
    STORAGE_ITEM_LIST_FIELDS,
    STORAGE_ITEM_VOLUME_FIELDS,
    STORAGE_ITEM_WEIGHT_FIELDS,
    STORAGE_PERCENT_FIELDS,
    STORAGE_VOLUME_CAPACITY_FIELDS,
    STORAGE_VOLUME_LOAD_FIELDS,
    STORAGE_WEIGHT_CAPACITY_FIELDS,
    STORAGE_WEIGHT_LOAD_FIELDS,
    UNKNOWN_CAPACITY_PROFILE,
)
from contract_service import (
    ContractConditionEntry,
    ShipmentContractIndex,
    is_delivery_shipment_type,
    lookup_contract_matches,
)
from identifiers import (
    first_list,
    first_numeric,
    first_numeric_from,
    first_present,
    normalize_lookup_key,
    to_numeric_value,
)
from storage_service import StorageIndex, select_storage_record, ship_lookup_keys
from universe_service import (
    WorldLookups,
    find_system_for_natural_id,
    find_system_for_planet,
    find_system_for_station,
)


class ShipmentSource(BaseModel):
    storage_id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None


class ShipmentMatch(BaseModel):
    storage_item: Dict[str, Any]
    shipment_item_key: Optional[str] = None
    contract_matches: List[ContractConditionEntry] = Field(default_factory=list)
    source: ShipmentSource = Field(default_factory=ShipmentSource)


class ShipLoadInfo(BaseModel):
    storage_record: Optional[Dict[str, Any]] = None
    volume_capacity: Optional[float] = None
    weight_capacity: Optional[float] = None
    volume_load: Optional[float] = None
    weight_load: Optional[float] = None
    volume_ratio: Optional[float] = None
    weight_ratio: Optional[float] = None
    ratio: Optional[float] = None
    shipments: List[ShipmentMatch] = Field(default_factory=list)


class LoadBar(BaseModel):
    key: str
    kind_label: str
    ratio: Optional[float] = None
    load: Optional[float] = None
    capacity: Optional[float] = None
    summary: str


class CapacityProfileMatch(BaseModel):
    key: str
    label: str
    volume_capacity: Optional[float] = None
    weight_capacity: Optional[float] = None


def normalize_percent(value: Any) -> Optional[float]:
    numeric = to_numeric_value(value)
    if numeric is None:
        return None
    if numeric > PERCENT_SCALE_THRESHOLD:
        return numeric / 100.0
    return numeric


def _ratio(load: Optional[float], capacity: Optional[float]) -> Optional[float]:
    if capacity is None or not math.isfinite(capacity) or capacity <= 0 or load is None:
        return None
    return max(0.0, load / capacity)


def _embedded_storage(ship: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for field in SHIP_EMBEDDED_STORAGE_FIELDS:
        value = ship.get(field)
        if isinstance(value, dict):
            return value
    return None


def _storage_items(record: Optional[Dict[str, Any]]) -> List[Any]:
    return first_list(record, STORAGE_ITEM_LIST_FIELDS)


def _collect_shipments(
    record: Optional[Dict[str, Any]],
    contract_index: ShipmentContractIndex,
    seen: set,
) -> List[ShipmentMatch]:
    if not isinstance(record, dict):
        return []
    shipments = []
    record_key = normalize_lookup_key(first_present(record, ("StorageId", "Id", "Name")) or "record")

    for position, item in enumerate(_storage_items(record)):
        if not isinstance(item, dict):
            continue
        candidate_ids = [item.get(field) for field in STORAGE_ITEM_ID_FIELDS]
        matched_key, matched = lookup_contract_matches(contract_index, candidate_ids)

        dedupe_key = (
            matched_key
            or normalize_lookup_key(item.get("MaterialId"))
            or normalize_lookup_key(item.get("ShipmentItemId"))
            or f"{record_key}::{position}"
        )
        if dedupe_key in seen:
            continue

        item_type = item.get("Type")
        likely_shipment = isinstance(item_type, str) and "shipment" in item_type.lower()
        if matched is None and not likely_shipment:
            continue
        seen.add(dedupe_key)

        shipments.append(ShipmentMatch(
            storage_item=item,
            shipment_item_key=matched_key,
            contract_matches=matched or [],
            source=ShipmentSource(
                storage_id=_text(record.get("StorageId") or record.get("Id")),
                name=_text(record.get("Name") or record.get("StorageName")),
                type=_text(record.get("Type")),
            ),
        ))
    return shipments


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def compute_ship_load_info(
    ship: Any,
    storage_record: Optional[Dict[str, Any]],
    contract_index: ShipmentContractIndex,
) -> Optional[ShipLoadInfo]:
    """Aggregate one ship's load state, or None when it reports no cargo signal."""
    if not isinstance(ship, dict):
        return None
    embedded = _embedded_storage(ship)
    sources = [storage_record, embedded, ship]

    volume_capacity = first_numeric_from(sources, STORAGE_VOLUME_CAPACITY_FIELDS)
    weight_capacity = first_numeric_from(sources, STORAGE_WEIGHT_CAPACITY_FIELDS)
    volume_load = first_numeric_from(sources, STORAGE_VOLUME_LOAD_FIELDS)
    weight_load = first_numeric_from(sources, STORAGE_WEIGHT_LOAD_FIELDS)
    percent = first_numeric_from(sources, STORAGE_PERCENT_FIELDS)
    if percent is None:
        percent = first_numeric(ship, SHIP_PERCENT_FIELDS)

    volume_ratio = _ratio(volume_load, volume_capacity)
    weight_ratio = _ratio(weight_load, weight_capacity)
    percent_ratio = normalize_percent(percent)
    ratio_candidates = [r for r in (volume_ratio, weight_ratio, percent_ratio) if r is not None and math.isfinite(r)]
    ratio = max(ratio_candidates) if ratio_candidates else None

    seen: set = set()
    shipments = _collect_shipments(storage_record, contract_index, seen)
    shipments += _collect_shipments(embedded, contract_index, seen)

    if (
        storage_record is None
        and volume_capacity is None
        and weight_capacity is None
        and volume_load is None
        and weight_load is None
        and ratio is None
        and not shipments
    ):
        return None

    if volume_load is None and volume_capacity is not None and volume_ratio is not None:
        volume_load = volume_ratio * volume_capacity
    if weight_load is None and weight_capacity is not None and weight_ratio is not None:
        weight_load = weight_ratio * weight_capacity

    return ShipLoadInfo(
        storage_record=storage_record,
        volume_capacity=volume_capacity,
        weight_capacity=weight_capacity,
        volume_load=volume_load,
        weight_load=weight_load,
        volume_ratio=volume_ratio,
        weight_ratio=weight_ratio,
        ratio=max(0.0, ratio) if ratio is not None else None,
        shipments=shipments,
    )


def build_ship_load_index(
    ships: Optional[Sequence[Any]],
    storage_index: StorageIndex,
    contract_index: ShipmentContractIndex,
) -> Dict[str, ShipLoadInfo]:
    """Map every normalized key of every ship to its load info; first ship wins a key."""
    index: Dict[str, ShipLoadInfo] = {}
    for ship in ships or []:
        if not isinstance(ship, dict):
            continue
        keys = ship_lookup_keys(ship)
        storage_record = select_storage_record(storage_index, keys)
        info = compute_ship_load_info(ship, storage_record, contract_index)
        if info is None:
            continue
        for key in keys:
            index.setdefault(key, info)
    return index


# ── Capacity classification ────────────────────────────────

def _approx_matches(expected: float, actual: Optional[float]) -> bool:
    if actual is None:
        return False
    if expected == 0:
        return actual == 0
    tolerance = max(1.0, expected * CAPACITY_PROFILE_TOLERANCE)
    return abs(actual - expected) <= tolerance


def classify_ship_capacity(load_info: Optional[ShipLoadInfo], ship: Any = None) -> CapacityProfileMatch:
    """Match a ship's hold capacities to one of the known hull profiles."""
    volume_capacity = load_info.volume_capacity if load_info else None
    weight_capacity = load_info.weight_capacity if load_info else None
    if volume_capacity is None and isinstance(ship, dict):
        volume_capacity = first_numeric(ship, STORAGE_VOLUME_CAPACITY_FIELDS)
    if weight_capacity is None and isinstance(ship, dict):
        weight_capacity = first_numeric(ship, STORAGE_WEIGHT_CAPACITY_FIELDS)

    volume = round(volume_capacity) if volume_capacity is not None else None
    weight = round(weight_capacity) if weight_capacity is not None else None

    matched = None
    if weight is not None and volume is not None:
        matched = next(
            (p for p in SHIP_CAPACITY_PROFILES
             if _approx_matches(p["weight"], weight) and _approx_matches(p["volume"], volume)),
            None,
        )
    else:
        single = weight if weight is not None else volume
        if single is not None:
            matched = next(
                (p for p in SHIP_CAPACITY_PROFILES
                 if p["weight"] == p["volume"] and _approx_matches(p["weight"], single)),
                None,
            )

    profile = matched or UNKNOWN_CAPACITY_PROFILE
    return CapacityProfileMatch(
        key=profile["key"],
        label=profile["label"],
        volume_capacity=volume_capacity,
        weight_capacity=weight_capacity,
    )


# ── Render-ready summaries ─────────────────────────────────

def format_capacity_value(value: Any) -> str:
    numeric = to_numeric_value(value)
    if numeric is None:
        return "Unknown"
    magnitude = abs(numeric)
    if magnitude >= 1_000_000_000:
        return f"{numeric / 1_000_000_000:.2f}B"
    if magnitude >= 1_000_000:
        return f"{numeric / 1_000_000:.2f}M"
    if magnitude >= 1_000:
        return f"{numeric / 1_000:.1f}k"
    if magnitude >= 1:
        return f"{numeric:.0f}" if numeric % 1 == 0 else f"{numeric:.1f}"
    if magnitude == 0:
        return "0"
    return f"{numeric:.2f}"


def _percent_text(ratio: float) -> str:
    over = " (Over)" if ratio > 1 else ""
    return f"{min(ratio, 1.0) * 100:.1f}%{over}"


def load_summary(info: Optional[ShipLoadInfo]) -> Optional[str]:
    if info is None:
        return None
    ratios = [max(0.0, r) for r in (info.ratio, info.volume_ratio, info.weight_ratio) if r is not None]
    if not ratios:
        return None
    return f"Util {_percent_text(max(ratios))}"


def _bar_summary(kind_label: str, ratio: Optional[float], load: Optional[float], capacity: Optional[float]) -> str:
    parts = [f"{kind_label} {_percent_text(ratio)}" if ratio is not None else kind_label]
    if load is not None and capacity is not None:
        parts.append(f"{format_capacity_value(load)} / {format_capacity_value(capacity)}")
    elif capacity is not None:
        parts.append(f"Cap {format_capacity_value(capacity)}")
    elif load is not None:
        parts.append(f"Load {format_capacity_value(load)}")
    return " · ".join(parts)


def load_bar_descriptors(info: Optional[ShipLoadInfo]) -> List[LoadBar]:
    if info is None:
        return []
    bars: List[LoadBar] = []
    dimensions = (
        ("volume", "Vol", info.volume_ratio, info.volume_load, info.volume_capacity),
        ("weight", "Wt", info.weight_ratio, info.weight_load, info.weight_capacity),
    )
    for key, kind_label, ratio, load, capacity in dimensions:
        if ratio is None:
            ratio = _ratio(load, capacity)
        if ratio is None and load is None and capacity is None:
            continue
        bars.append(LoadBar(
            key=key,
            kind_label=kind_label,
            ratio=ratio,
            load=load,
            capacity=capacity,
            summary=_bar_summary(kind_label, ratio, load, capacity),
        ))
    if not bars and info.ratio is not None:
        bars.append(LoadBar(
            key="utilization",
            kind_label="Util",
            ratio=max(0.0, info.ratio),
            summary=_bar_summary("Util", max(0.0, info.ratio), None, None),
        ))
    return bars


# ── Shipment tiles ─────────────────────────────────────────

MISSING_METRIC_TEXT = "-"
UNKNOWN_DESTINATION = "Unknown destination"
_MS_PER_HOUR = 60 * 60 * 1000


class ShipmentTile(BaseModel):
    id: str
    contract_label: str
    destination: str
    weight: Optional[float] = None
    volume: Optional[float] = None
    weight_text: str = MISSING_METRIC_TEXT
    volume_text: str = MISSING_METRIC_TEXT
    deadline_epoch_ms: Optional[float] = None
    remaining_hours: Optional[int] = None
    deadline_text: str = ""
    lines: List[str] = Field(default_factory=list)


def _pick_metric(source: Any, keys: frozenset) -> Optional[float]:
    """First non-zero numeric value under a key in ``keys`` (case-insensitive)."""
    if not isinstance(source, dict):
        return None
    for key, value in source.items():
        if not isinstance(key, str) or key.strip().lower() not in keys:
            continue
        numeric = to_numeric_value(value)
        if numeric is not None and numeric != 0:
            return numeric
    return None


def _deep_pick_metric(root: Any, keys: frozenset) -> Optional[float]:
    stack = [root]
    visited = set()
    while stack:
        current = stack.pop()
        if not isinstance(current, (dict, list)) or id(current) in visited:
            continue
        visited.add(id(current))
        found = _pick_metric(current, keys)
        if found is not None:
            return found
        children = current if isinstance(current, list) else list(current.values())
        stack.extend(child for child in children if isinstance(child, (dict, list)))
    return None


def _resolve_metric(
    match: ContractConditionEntry,
    keys: frozenset,
    storage_item: Dict[str, Any],
    storage_fields: Sequence[str],
) -> Optional[float]:
    # Match fields, then the raw condition, then anything nested under either,
    # then the storage item itself.
    resolved = (
        _pick_metric({"weight": match.weight, "volume": match.volume}, keys)
        or _pick_metric(match.condition, keys)
        or _deep_pick_metric(match.condition, keys)
        or _deep_pick_metric([match.dependencies, match.destination, match.party], keys)
    )
    if resolved is not None:
        return resolved
    for field in storage_fields:
        numeric = to_numeric_value(storage_item.get(field))
        if numeric is not None and numeric != 0:
            return numeric
    return None


def _remaining_hours(deadline_epoch_ms: float, now_ms: float) -> int:
    # Halves round up.
    return math.floor((deadline_epoch_ms - now_ms) / _MS_PER_HOUR + 0.5)


def format_remaining_time(remaining_hours: int) -> str:
    days, hours = divmod(remaining_hours, 24)
    if remaining_hours > 0 and days > 0:
        return f"{days}d {hours}h"
    return f"{remaining_hours}h"


def build_shipment_tile(shipment: ShipmentMatch, position: int, now_ms: float) -> Optional[ShipmentTile]:
    """Render-ready facts for one carried shipment, or None without a delivery match."""
    deliveries = [
        m for m in shipment.contract_matches
        if is_delivery_shipment_type(
            m.condition_type or m.condition_type_raw or m.condition.get("Type") or m.condition.get("type")
        )
    ]
    if not deliveries:
        return None
    match = deliveries[0]

    contract_key = match.contract_local_id or match.contract_id or shipment.shipment_item_key
    contract_label = str(contract_key) if contract_key else f"Shipment {position + 1}"
    destination = str(match.destination or match.party or shipment.source.name or UNKNOWN_DESTINATION)

    item = shipment.storage_item
    weight = _resolve_metric(match, SHIPMENT_WEIGHT_KEYS, item, STORAGE_ITEM_WEIGHT_FIELDS)
    volume = _resolve_metric(match, SHIPMENT_VOLUME_KEYS, item, STORAGE_ITEM_VOLUME_FIELDS)
    weight_text = format_capacity_value(weight) if weight is not None else MISSING_METRIC_TEXT
    volume_text = format_capacity_value(volume) if volume is not None else MISSING_METRIC_TEXT

    remaining_hours = None
    deadline_text = ""
    if match.deadline_epoch_ms:
        remaining_hours = _remaining_hours(match.deadline_epoch_ms, now_ms)
        deadline_text = format_remaining_time(remaining_hours)

    headline = f"Contract {contract_label}"
    if deadline_text:
        headline += f" ({deadline_text})"
    return ShipmentTile(
        id=shipment.shipment_item_key or str(position),
        contract_label=contract_label,
        destination=destination,
        weight=weight,
        volume=volume,
        weight_text=weight_text,
        volume_text=volume_text,
        deadline_epoch_ms=match.deadline_epoch_ms,
        remaining_hours=remaining_hours,
        deadline_text=deadline_text,
        lines=[headline, f"Wt {weight_text} · Vol {volume_text}", f"Dest {destination}"],
    )


def shipment_tiles(shipments: Optional[Sequence[ShipmentMatch]], now_ms: float) -> List[ShipmentTile]:
    tiles = []
    for position, shipment in enumerate(shipments or []):
        tile = build_shipment_tile(shipment, position, now_ms)
        if tile is not None:
            tiles.append(tile)
    return tiles


# ── Per-system shipment tally ──────────────────────────────

class SystemShipment(BaseModel):
    amount: float = 1
    weight: float = 0
    volume: float = 0
    contract: Optional[ContractConditionEntry] = None
    storage_type: Optional[str] = None
    location_name: Optional[str] = None


def storage_system_id(lookups: WorldLookups, storage: Dict[str, Any]) -> Optional[str]:
    """Locate the system a storage record sits in."""
    system_id = None
    if storage.get("Type") in ("WAREHOUSE_STORE", "STATION_STORE"):
        system_id = find_system_for_station(lookups, storage.get("StorageId"), storage.get("AddressableId"))
    if not system_id and storage.get("PlanetNaturalId"):
        system_id = find_system_for_planet(lookups, storage["PlanetNaturalId"])
    if not system_id:
        system_id = find_system_for_natural_id(lookups, storage.get("StorageNaturalId") or storage.get("NaturalId"))
    if not system_id:
        for field in ("AddressableId", "LocationName"):
            value = storage.get(field)
            if isinstance(value, str) and "." in value:
                system_id = value.split(".")[-1]
                break
    if not system_id and storage.get("SystemId"):
        system_id = storage["SystemId"]
    return str(system_id) if system_id else None


def count_system_shipments(
    lookups: WorldLookups,
    storage_records: Optional[Sequence[Any]],
    contract_index: ShipmentContractIndex,
) -> Dict[str, List[SystemShipment]]:
    """Shipment items currently held in storage, grouped by system id."""
    by_system: Dict[str, List[SystemShipment]] = {}
    for storage in storage_records or []:
        if not isinstance(storage, dict):
            continue
        system_id = storage_system_id(lookups, storage)
        if not system_id:
            continue
        for item in _storage_items(storage):
            if not isinstance(item, dict):
                continue
            candidate_ids = [item.get(field) for field in STORAGE_ITEM_ID_FIELDS[:4]]
            _, matched = lookup_contract_matches(contract_index, candidate_ids)
            item_type = item.get("Type")
            is_shipment = isinstance(item_type, str) and "shipment" in item_type.lower()
            if not is_shipment and matched is None:
                continue
            by_system.setdefault(system_id, []).append(SystemShipment(
                amount=to_numeric_value(item.get("MaterialAmount") or item.get("Amount")) or 1,
                weight=to_numeric_value(item.get("TotalWeight")) or 0,
                volume=to_numeric_value(item.get("TotalVolume")) or 0,
                contract=matched[0] if matched else None,
                storage_type=_text(storage.get("Type")),
                location_name=_text(storage.get("LocationName") or storage.get("PlanetName")),
            ))
    return by_system
