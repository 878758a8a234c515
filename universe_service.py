"""
Universe lookups and system resolution.

Builds the per-data-version lookup tables for systems, planets and stations
and resolves arbitrary candidate values (ids, display names, "Name (CODE)"
labels, noisy station names, natural ids) to a canonical system id.
"""

import re
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from identifiers import first_present, normalize_lookup_key, safe_string, to_numeric_value

_STATION_WORD_RE = re.compile(r"\bstation\b")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_PAREN_CODE_RE = re.compile(r"\(([A-Za-z0-9\-]+)\)")

SYSTEM_ID_FIELDS = ("SystemId", "SystemID", "Id", "ID", "id")
SYSTEM_NAME_FIELDS = ("Name", "SystemName", "name")
SYSTEM_NATURAL_ID_FIELDS = ("NaturalId", "SystemNaturalId", "naturalId")
SYSTEM_X_FIELDS = ("X", "x", "PositionX")
SYSTEM_Y_FIELDS = ("Y", "y", "PositionY")


class MapPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float


class WorldLookups(BaseModel):
    """Lookup tables derived from one data snapshot.  Treat as read-only."""

    system_ids: FrozenSet[str] = frozenset()
    system_ids_by_folded: Dict[str, str] = Field(default_factory=dict)
    system_names: Dict[str, str] = Field(default_factory=dict)
    system_natural_ids: Dict[str, str] = Field(default_factory=dict)
    systems_by_name: Dict[str, str] = Field(default_factory=dict)
    systems_by_natural_id: Dict[str, str] = Field(default_factory=dict)
    system_centers: Dict[str, MapPoint] = Field(default_factory=dict)
    planets_by_id: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    planets_by_natural_id: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    stations: List[Dict[str, Any]] = Field(default_factory=list)


# ── Table construction ─────────────────────────────────────

def _iter_system_records(raw: Any) -> List[Tuple[str, Dict[str, Any]]]:
    out: List[Tuple[str, Dict[str, Any]]] = []
    if isinstance(raw, dict):
        for key, value in raw.items():
            if isinstance(value, dict):
                sid = first_present(value, SYSTEM_ID_FIELDS)
                if sid is None:
                    sid = key
                out.append((str(sid).strip(), value))
            elif isinstance(value, str):
                out.append((str(key).strip(), {"Name": value}))
    elif isinstance(raw, list):
        for value in raw:
            if not isinstance(value, dict):
                continue
            sid = first_present(value, SYSTEM_ID_FIELDS)
            if sid is None:
                continue
            out.append((str(sid).strip(), value))
    return [(sid, rec) for sid, rec in out if sid]


def _iter_planets(raw: Any) -> List[Dict[str, Any]]:
    if isinstance(raw, dict):
        planets = []
        for system_id, entries in raw.items():
            if not isinstance(entries, list):
                continue
            for planet in entries:
                if isinstance(planet, dict):
                    if not planet.get("SystemId"):
                        planet = {**planet, "SystemId": system_id}
                    planets.append(planet)
        return planets
    if isinstance(raw, list):
        return [p for p in raw if isinstance(p, dict)]
    return []


def build_world_lookups(snapshot: Dict[str, Any]) -> WorldLookups:
    """Build every system/planet/station table from a raw snapshot dict.

    Accepted sections (all optional):
      ``systems``      list of records, or mapping id → record / name
      ``systemNames``  mapping id → display name
      ``universe``     mapping id → list of ``{Name, NaturalId}`` aliases
      ``planets``      mapping system id → list of planets, or a flat list
      ``stations``     list of station records
    """
    system_ids = set()
    names: Dict[str, str] = {}
    natural_ids: Dict[str, str] = {}
    by_name: Dict[str, str] = {}
    by_natural: Dict[str, str] = {}
    centers: Dict[str, MapPoint] = {}

    for sid, rec in _iter_system_records(snapshot.get("systems")):
        system_ids.add(sid)
        name = first_present(rec, SYSTEM_NAME_FIELDS)
        if isinstance(name, str):
            names.setdefault(sid, name.strip())
            by_name[name.strip().lower()] = sid
        natural = first_present(rec, SYSTEM_NATURAL_ID_FIELDS)
        if isinstance(natural, str):
            natural_ids.setdefault(sid, natural.strip())
            by_natural[natural.strip().upper()] = sid
        x = first_present(rec, SYSTEM_X_FIELDS, coerce=to_numeric_value)
        y = first_present(rec, SYSTEM_Y_FIELDS, coerce=to_numeric_value)
        if x is not None and y is not None:
            centers[sid] = MapPoint(x=x, y=y)

    raw_names = snapshot.get("systemNames")
    if isinstance(raw_names, dict):
        for sid, name in raw_names.items():
            if not sid or not isinstance(name, str):
                continue
            system_ids.add(str(sid))
            names[str(sid)] = name
            by_name[name.strip().lower()] = str(sid)

    universe = snapshot.get("universe")
    if isinstance(universe, dict):
        for sid, entries in universe.items():
            if not sid or not isinstance(entries, list):
                continue
            system_ids.add(str(sid))
            for entry in entries:
                if not isinstance(entry, dict):
                    continue
                entry_name = entry.get("Name")
                entry_natural = entry.get("NaturalId")
                if isinstance(entry_name, str) and entry_name.strip():
                    by_name[entry_name.strip().lower()] = str(sid)
                if isinstance(entry_natural, str) and entry_natural.strip():
                    by_natural[entry_natural.strip().upper()] = str(sid)
                    natural_ids.setdefault(str(sid), entry_natural.strip())

    planets_by_id: Dict[str, Dict[str, Any]] = {}
    planets_by_natural: Dict[str, Dict[str, Any]] = {}
    for planet in _iter_planets(snapshot.get("planets")):
        if planet.get("PlanetId"):
            planets_by_id[str(planet["PlanetId"]).lower()] = planet
        if planet.get("PlanetNaturalId"):
            planets_by_natural[str(planet["PlanetNaturalId"]).upper()] = planet

    stations = [s for s in (snapshot.get("stations") or []) if isinstance(s, dict)]

    return WorldLookups(
        system_ids=frozenset(system_ids),
        system_ids_by_folded={sid.lower(): sid for sid in sorted(system_ids)},
        system_names=names,
        system_natural_ids=natural_ids,
        systems_by_name=by_name,
        systems_by_natural_id=by_natural,
        system_centers=centers,
        planets_by_id=planets_by_id,
        planets_by_natural_id=planets_by_natural,
        stations=stations,
    )


# ── Resolution ─────────────────────────────────────────────

def _clean_station_name(normalized_name: str) -> str:
    cleaned = _STATION_WORD_RE.sub("", normalized_name)
    cleaned = _NON_ALNUM_RE.sub("", cleaned)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def resolve_system_id(lookups: WorldLookups, candidate: Any) -> Optional[str]:
    """Map ``candidate`` to a canonical system id, or None when unresolved."""
    if isinstance(candidate, bool) or isinstance(candidate, (dict, list, tuple)):
        return None
    value = safe_string(candidate)
    if value is None or value == "":
        return None
    text = str(value)

    if text in lookups.system_ids:
        return text
    folded = lookups.system_ids_by_folded.get(text.lower())
    if folded is not None:
        return folded

    normalized_name = text.strip().lower()
    if normalized_name in lookups.systems_by_name:
        return lookups.systems_by_name[normalized_name]

    cleaned = _clean_station_name(normalized_name)
    if cleaned and cleaned in lookups.systems_by_name:
        return lookups.systems_by_name[cleaned]

    paren = _PAREN_CODE_RE.search(text)
    if paren:
        code = paren.group(1).upper()
        if code in lookups.systems_by_natural_id:
            return lookups.systems_by_natural_id[code]

    return lookups.systems_by_natural_id.get(text.upper())


def find_planet(lookups: WorldLookups, value: Any) -> Optional[Dict[str, Any]]:
    raw = safe_string(value)
    if raw is None or raw == "" or isinstance(raw, (dict, list, bool)):
        return None
    text = str(raw)
    return lookups.planets_by_id.get(text.lower()) or lookups.planets_by_natural_id.get(text.upper())


def system_name(lookups: WorldLookups, system_id: Optional[str]) -> Optional[str]:
    if not system_id:
        return None
    return lookups.system_names.get(system_id)


def system_center(lookups: WorldLookups, system_id: Any) -> Optional[MapPoint]:
    sid = safe_string(system_id)
    if not sid:
        return None
    return lookups.system_centers.get(str(sid))


def find_system_for_planet(lookups: WorldLookups, planet_natural_id: Any) -> Optional[str]:
    planet = find_planet(lookups, planet_natural_id)
    if not planet:
        return None
    sid = planet.get("SystemId")
    return str(sid) if sid else None


def find_system_for_station(
    lookups: WorldLookups,
    storage_id: Any = None,
    addressable_id: Any = None,
) -> Optional[str]:
    """Match a storage record to a station by warehouse / addressable id."""
    for station in lookups.stations:
        warehouse_id = station.get("WarehouseId")
        if addressable_id and warehouse_id == addressable_id:
            return station.get("SystemId")
        if storage_id and warehouse_id == storage_id:
            return station.get("SystemId")
        if addressable_id and station.get("AddressableId") == addressable_id:
            return station.get("SystemId")
    return None


def find_system_for_natural_id(lookups: WorldLookups, natural_id: Any) -> Optional[str]:
    key = normalize_lookup_key(natural_id)
    if not key:
        return None
    return lookups.systems_by_natural_id.get(key.upper())
