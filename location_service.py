"""
Location detail extraction and selection.

Raw location references ("location lines") come as bare strings or as
records tagged system/planet/station, often several per ship or flight leg
and each only partially filled.  ``extract_location_details`` folds one list
of lines into a single ``LocationDetail``; ``select_display_location`` picks
the most specific of several details describing the same place.

The extractor threads an immutable ``LocationDetail`` through one pure merge
step per entry.  For every attribute the first non-empty value wins; later
entries only fill gaps.  The display label keeps the lowest rank seen
(planet 0, station 1, system 2).
"""

import re
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from constants import (
    DISPLAY_PRIORITY,
    GENERIC_LOCATION_LABELS,
    LABEL_LENGTH_MARGIN,
    LINE_ADDRESS_FIELDS,
    LINE_ID_FIELDS,
    LINE_NAME_FIELDS,
    LINE_NATURAL_ID_FIELDS,
    LINE_PLANET_FIELDS,
    LINE_SYSTEM_FALLBACK_FIELDS,
    LINE_SYSTEM_FIELDS,
    LINE_TYPE_FIELDS,
    SHIP_LOCATION_LABEL_FIELDS,
    SHIP_LOCATION_LINE_FIELDS,
    SHIP_NESTED_LOCATION_FIELDS,
    SHIP_SYSTEM_ID_FIELDS,
    STATION_ID_FIELDS,
    STATION_NAME_FIELDS,
    STATION_NATURAL_ID_FIELDS,
    UNKNOWN_DISPLAY_PRIORITY,
)
from identifiers import first_present, safe_string
from universe_service import WorldLookups, find_planet, resolve_system_id, system_name

_LABEL_SEGMENT_RE = re.compile(r"^(.*)\s+\(([A-Za-z0-9\-]+)\)$")


class LocationDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    system_id: Optional[str] = None
    system_name: Optional[str] = None
    system_natural_id: Optional[str] = None
    planet_id: Optional[str] = None
    planet_natural_id: Optional[str] = None
    planet_name: Optional[str] = None
    station_id: Optional[str] = None
    station_natural_id: Optional[str] = None
    station_name: Optional[str] = None
    display_name: Optional[str] = None
    display_kind: Optional[str] = None
    display_priority: Optional[int] = None

    def has_content(self) -> bool:
        return any(
            getattr(self, field)
            for field in (
                "system_id",
                "system_name",
                "system_natural_id",
                "planet_id",
                "planet_natural_id",
                "planet_name",
                "station_id",
                "station_natural_id",
                "station_name",
            )
        )


# ── Pure merge helpers ─────────────────────────────────────

def _as_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _upper(value: Any) -> Optional[str]:
    text = _as_text(value)
    return text.upper() if text is not None else None


def _fill(detail: LocationDetail, **values: Any) -> LocationDetail:
    """Set each attribute only if it is still empty and the value is not."""
    update = {}
    for field, value in values.items():
        if getattr(detail, field) or value is None or value == "":
            continue
        update[field] = value if isinstance(value, str) else str(value)
    return detail.model_copy(update=update) if update else detail


def _offer_display(detail: LocationDetail, kind: str, label: Any, priority: int) -> LocationDetail:
    if label is None:
        return detail
    current = detail.display_priority
    if current is None or priority < current:
        return detail.model_copy(
            update={"display_kind": kind, "display_name": str(label), "display_priority": priority}
        )
    if priority == current and not detail.display_name:
        return detail.model_copy(update={"display_kind": kind, "display_name": str(label)})
    return detail


def _fill_system_name(lookups: WorldLookups, detail: LocationDetail) -> LocationDetail:
    if detail.system_name or not detail.system_id:
        return detail
    return _fill(
        detail,
        system_name=system_name(lookups, detail.system_id) or detail.system_natural_id,
    )


def _merge_planet_entry(
    lookups: WorldLookups,
    detail: LocationDetail,
    planet: Optional[dict],
    fallback_id: Any,
    fallback_natural_id: Any,
    fallback_name: Any,
) -> LocationDetail:
    planet = planet or {}
    if not detail.planet_id:
        raw_id = planet.get("PlanetId") if planet.get("PlanetId") is not None else fallback_id
        detail = _fill(detail, planet_id=_as_text(raw_id))
    if not detail.planet_natural_id:
        detail = _fill(detail, planet_natural_id=_upper(planet.get("PlanetNaturalId") or fallback_natural_id))
    if not detail.planet_name:
        detail = _fill(
            detail,
            planet_name=planet.get("PlanetName") or fallback_name or detail.planet_natural_id or detail.planet_id,
        )
    detail = _fill(detail, system_natural_id=_as_text(planet.get("SystemNaturalId")))
    planet_system = planet.get("SystemId")
    if planet_system:
        detail = _fill(detail, system_id=str(planet_system))
        if not detail.system_name:
            detail = _fill(
                detail,
                system_name=system_name(lookups, str(planet_system)) or detail.system_natural_id,
            )
    label = detail.planet_name or fallback_name or detail.planet_natural_id or detail.planet_id
    return _offer_display(detail, "planet", label, DISPLAY_PRIORITY["planet"])


def _merge_planet_candidate(
    lookups: WorldLookups,
    detail: LocationDetail,
    value: Any,
    fallback_name: Any = None,
) -> Tuple[LocationDetail, bool]:
    raw = safe_string(value)
    if not raw or isinstance(raw, (dict, list)):
        return detail, False
    planet = find_planet(lookups, raw)
    if not planet:
        return detail, False
    detail = _merge_planet_entry(
        lookups, detail, planet, raw, raw, fallback_name or planet.get("PlanetName") or raw
    )
    return detail, True


def _merge_station_entry(
    lookups: WorldLookups,
    detail: LocationDetail,
    entry: dict,
    line_id: Any,
    line_natural_id: Any,
    line_name: Any,
) -> LocationDetail:
    station_id = first_present(entry, STATION_ID_FIELDS) or line_id
    station_natural_id = first_present(entry, STATION_NATURAL_ID_FIELDS) or line_natural_id
    station_name = line_name or first_present(entry, STATION_NAME_FIELDS)

    detail = _fill(detail, station_id=_as_text(station_id), station_natural_id=_upper(station_natural_id))
    detail = _fill(detail, station_name=station_name or detail.station_natural_id or detail.station_id)

    if not detail.system_id:
        resolved = resolve_system_id(lookups, entry.get("SystemId") or entry.get("SystemNaturalId"))
        detail = _fill(detail, system_id=resolved)
    detail = _fill(detail, system_natural_id=_as_text(entry.get("SystemNaturalId")))
    detail = _fill_system_name(lookups, detail)

    label = detail.station_name or detail.station_natural_id or detail.station_id
    return _offer_display(detail, "station", label, DISPLAY_PRIORITY["station"])


def _merge_string_entry(lookups: WorldLookups, detail: LocationDetail, entry: str) -> LocationDetail:
    detail, handled = _merge_planet_candidate(lookups, detail, entry)
    if handled:
        return detail
    resolved = resolve_system_id(lookups, entry)
    detail = _fill(detail, system_id=resolved)
    if not detail.system_name:
        name = (resolved and system_name(lookups, resolved)) or safe_string(entry)
        detail = _fill(detail, system_name=name)
        if detail.system_name:
            detail = _offer_display(detail, "system", detail.system_name, DISPLAY_PRIORITY["system"])
    return detail


def _merge_record_entry(lookups: WorldLookups, detail: LocationDetail, entry: dict) -> LocationDetail:
    type_raw = first_present(entry, LINE_TYPE_FIELDS)
    line_type = type_raw.lower() if isinstance(type_raw, str) else ""
    line_id = first_present(entry, LINE_ID_FIELDS)
    line_natural_id = first_present(entry, LINE_NATURAL_ID_FIELDS)
    line_name = first_present(entry, LINE_NAME_FIELDS)
    base_name = line_name or _upper(line_natural_id) or _as_text(line_id)

    if line_type == "station":
        detail = _merge_station_entry(lookups, detail, entry, line_id, line_natural_id, line_name)

    if line_type == "planet":
        detail = _fill(
            detail,
            planet_id=_as_text(line_id),
            planet_natural_id=_upper(line_natural_id),
            planet_name=base_name,
        )

    planet_resolved = False
    for identifier in [*(entry.get(field) for field in LINE_PLANET_FIELDS), line_id, line_natural_id]:
        detail, planet_resolved = _merge_planet_candidate(lookups, detail, identifier, line_name)
        if planet_resolved:
            break

    if planet_resolved:
        detail = _fill_system_name(lookups, detail)
    elif line_type == "planet":
        label = detail.planet_name or base_name or detail.planet_natural_id or detail.planet_id
        detail = _offer_display(detail, "planet", label, DISPLAY_PRIORITY["planet"])

    detail = _fill(detail, system_natural_id=_as_text(entry.get("SystemNaturalId")))

    if not detail.system_id:
        candidates = [
            *(entry.get(field) for field in LINE_SYSTEM_FIELDS),
            line_id,
            line_natural_id,
            *(entry.get(field) for field in LINE_ADDRESS_FIELDS),
        ]
        for candidate in candidates:
            resolved = resolve_system_id(lookups, candidate)
            if resolved:
                detail = _fill(detail, system_id=resolved)
                break

    if not detail.system_name:
        resolved_name = system_name(lookups, detail.system_id)
        fallback = base_name or detail.system_natural_id or detail.system_id
        detail = _fill(detail, system_name=resolved_name or detail.system_natural_id or fallback)

    if detail.system_name:
        detail = _offer_display(detail, "system", detail.system_name, DISPLAY_PRIORITY["system"])
    return detail


def _as_entries(lines: Any) -> List[Any]:
    if isinstance(lines, list):
        return lines
    if lines is None or lines == "":
        return []
    return [lines]


# ── Extraction ─────────────────────────────────────────────

def extract_system_id(lookups: WorldLookups, lines: Any) -> Optional[str]:
    """Scan location lines purely for a resolvable system id."""
    for entry in _as_entries(lines):
        if isinstance(entry, str):
            resolved = resolve_system_id(lookups, entry)
            if resolved:
                return resolved
            continue
        if isinstance(entry, dict):
            for field in LINE_SYSTEM_FALLBACK_FIELDS:
                resolved = resolve_system_id(lookups, entry.get(field))
                if resolved:
                    return resolved
    return None


def extract_location_details(lookups: WorldLookups, lines: Any) -> LocationDetail:
    detail = LocationDetail()
    for entry in _as_entries(lines):
        if isinstance(entry, str):
            detail = _merge_string_entry(lookups, detail, entry)
        elif isinstance(entry, dict):
            detail = _merge_record_entry(lookups, detail, entry)

    if not detail.system_id:
        detail = _fill(detail, system_id=extract_system_id(lookups, lines))

    if not detail.system_name and detail.system_id:
        detail = _fill(
            detail,
            system_name=system_name(lookups, detail.system_id) or detail.system_natural_id or detail.system_id,
        )
        detail = _offer_display(detail, "system", detail.system_name, DISPLAY_PRIORITY["system"])

    if detail.display_name is None:
        planet_label = detail.planet_name or detail.planet_natural_id or detail.planet_id
        station_label = detail.station_name or detail.station_natural_id or detail.station_id
        if planet_label:
            detail = detail.model_copy(update={
                "display_kind": "planet", "display_priority": 0, "display_name": planet_label,
            })
        elif station_label:
            detail = detail.model_copy(update={
                "display_kind": "station", "display_priority": 1, "display_name": station_label,
            })
        elif detail.system_name:
            detail = detail.model_copy(update={
                "display_kind": "system", "display_priority": 2, "display_name": detail.system_name,
            })

    if not detail.display_name:
        fallback_label = (
            detail.planet_name
            or detail.station_name
            or detail.system_name
            or detail.system_natural_id
            or detail.system_id
        )
        if fallback_label:
            detail = detail.model_copy(update={"display_name": fallback_label})
    return detail


def _parse_label_segment(segment: str) -> Tuple[str, Optional[str]]:
    match = _LABEL_SEGMENT_RE.match(segment)
    if match:
        return match.group(1).strip(), match.group(2).strip()
    return segment.strip(), None


def derive_location_from_label(lookups: WorldLookups, label: Any) -> Optional[LocationDetail]:
    """Parse labels like ``"Antares (ANT) - Hub Station (HUB) - Moria (MO-1a)"``."""
    if not isinstance(label, str):
        return None
    segments = [part.strip() for part in label.split(" - ") if part.strip()]
    if not segments:
        return None

    entries: List[dict] = []
    system_label, system_code = _parse_label_segment(segments[0])
    if system_label:
        entries.append({
            "Type": "system",
            "LineName": system_label,
            "LineNaturalId": system_code,
            "Name": system_label,
            "NaturalId": system_code,
        })

    for segment in segments[1:]:
        name, code = _parse_label_segment(segment)
        if not name:
            continue
        lowered = name.lower()
        if "station" in lowered:
            entries.append({
                "Type": "station",
                "LineName": name,
                "LineNaturalId": code,
                "StationName": name,
                "StationNaturalId": code,
            })
            continue
        if "orbit" in lowered:
            continue
        entries.append({
            "Type": "planet",
            "LineName": name,
            "LineNaturalId": code,
            "PlanetName": name,
            "PlanetNaturalId": code,
        })

    if not entries:
        return None
    derived = extract_location_details(lookups, entries)
    return _fill(derived, system_name=system_label or None, system_natural_id=system_code)


def build_system_only_location(lookups: WorldLookups, system_id: Any) -> Optional[LocationDetail]:
    resolved = resolve_system_id(lookups, system_id)
    if not resolved:
        return None
    label = system_name(lookups, resolved) or resolved
    return LocationDetail(
        system_id=resolved,
        system_name=label,
        system_natural_id=lookups.system_natural_ids.get(resolved) or resolved,
        display_name=label,
        display_kind="system",
        display_priority=DISPLAY_PRIORITY["system"],
    )


# ── Selection ──────────────────────────────────────────────

def candidate_label(candidate: Optional[LocationDetail]) -> str:
    if candidate is None:
        return ""
    label = (
        candidate.display_name
        or candidate.station_name
        or candidate.planet_name
        or candidate.system_name
        or candidate.system_natural_id
        or candidate.station_natural_id
        or candidate.planet_natural_id
        or candidate.system_id
        or candidate.station_id
        or candidate.planet_id
        or ""
    )
    return label.strip()


def is_generic_label(candidate: Optional[LocationDetail]) -> bool:
    label = candidate_label(candidate).lower()
    return not label or label in GENERIC_LOCATION_LABELS


def has_explicit_identifier(candidate: Optional[LocationDetail]) -> bool:
    if candidate is None:
        return False
    return bool(
        candidate.station_natural_id
        or candidate.station_id
        or candidate.planet_natural_id
        or candidate.planet_id
    )


def effective_priority(candidate: LocationDetail) -> int:
    if candidate.display_priority is not None:
        return candidate.display_priority
    if candidate.planet_id or candidate.planet_natural_id:
        return DISPLAY_PRIORITY["planet"]
    if candidate.station_id or candidate.station_natural_id:
        return DISPLAY_PRIORITY["station"]
    if candidate.system_id:
        return DISPLAY_PRIORITY["system"]
    return UNKNOWN_DISPLAY_PRIORITY


def _beats(candidate: LocationDetail, best: LocationDetail) -> bool:
    """Tie-break between two candidates of equal priority."""
    if has_explicit_identifier(candidate) and not has_explicit_identifier(best):
        return True
    if not is_generic_label(candidate) and is_generic_label(best):
        return True
    candidate_text = candidate_label(candidate)
    best_text = candidate_label(best)
    if candidate_text and not best_text:
        return True
    return bool(candidate_text and best_text and len(candidate_text) > len(best_text) + LABEL_LENGTH_MARGIN)


def select_display_location(*candidates: Optional[LocationDetail]) -> Optional[LocationDetail]:
    best: Optional[LocationDetail] = None
    best_priority = None
    for candidate in candidates:
        if candidate is None:
            continue
        priority = effective_priority(candidate)
        if best is None or priority < best_priority:
            best, best_priority = candidate, priority
            continue
        if priority == best_priority and _beats(candidate, best):
            best = candidate
    return best


# ── Ship locations ─────────────────────────────────────────

def get_ship_location_system_id(lookups: WorldLookups, ship: Optional[dict]) -> Optional[str]:
    if not isinstance(ship, dict):
        return None
    for field in SHIP_SYSTEM_ID_FIELDS:
        resolved = resolve_system_id(lookups, ship.get(field))
        if resolved:
            return resolved
    for field in SHIP_NESTED_LOCATION_FIELDS:
        resolved = extract_system_id(lookups, ship.get(field))
        if resolved:
            return resolved
    if ship.get("LocationLines"):
        return extract_system_id(lookups, ship["LocationLines"])
    return None


def get_ship_location_details(
    lookups: WorldLookups,
    ship: Optional[dict],
    fallback_system_id: Any = None,
) -> Optional[LocationDetail]:
    if not isinstance(ship, dict):
        return build_system_only_location(lookups, fallback_system_id)

    candidates: List[Optional[LocationDetail]] = []
    for field in SHIP_LOCATION_LINE_FIELDS:
        if ship.get(field):
            candidates.append(extract_location_details(lookups, ship[field]))
    for field in SHIP_LOCATION_LABEL_FIELDS:
        candidates.append(derive_location_from_label(lookups, ship.get(field)))
    candidates.append(build_system_only_location(lookups, fallback_system_id))

    candidates = [c for c in candidates if c is not None and c.has_content()]
    if not candidates:
        return build_system_only_location(lookups, fallback_system_id)
    return select_display_location(*candidates)


def format_location_display(location: Optional[LocationDetail]) -> str:
    if location is None:
        return "Unknown"
    label = location.display_name or location.planet_name or location.station_name or location.system_name

    if location.display_kind == "station" or location.station_name or location.station_natural_id:
        identifier = location.station_natural_id or location.station_id
        if label and identifier and label != identifier:
            return f"{label} ({identifier})"
        return label or identifier or "Unknown"

    planet_identifier = location.planet_natural_id or location.planet_id
    if planet_identifier:
        name = label or location.planet_name
        if name and name != planet_identifier:
            return f"{name} ({planet_identifier})"
        return planet_identifier

    if label:
        return label
    return location.system_name or location.system_natural_id or location.system_id or "Unknown"
