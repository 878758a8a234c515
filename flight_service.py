"""
Flight segment pairing and position interpolation.

A flight is a list of raw segments.  ``build_segment_pairs`` resolves each
segment's endpoints to systems and keeps only the legs that actually cross
between two different systems with known map centers; those legs are what
``interpolate_ship_position`` walks along.
"""

import math
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from constants import (
    ARRIVAL_PROGRESS_THRESHOLD,
    FLIGHT_ARRIVAL_FIELDS,
    FLIGHT_DEPARTURE_FIELDS,
    FLIGHT_PROGRESS_FIELDS,
    FLIGHT_SEGMENT_INDEX_FIELDS,
    SEGMENT_ARRIVAL_FIELDS,
    SEGMENT_DEPARTURE_FIELDS,
    SEGMENT_DURATION_FIELDS,
    SHIP_PROGRESS_FIELDS,
    SHIP_SEGMENT_INDEX_FIELDS,
)
from identifiers import clamp01, first_list, first_present, to_index_value, to_numeric_value
from location_service import (
    LocationDetail,
    derive_location_from_label,
    extract_location_details,
    select_display_location,
)
from universe_service import MapPoint, WorldLookups, system_center


class TimeBounds(BaseModel):
    departure: Optional[float] = None
    arrival: Optional[float] = None
    duration: Optional[float] = None


class SegmentPair(BaseModel):
    from_id: str
    to_id: str
    from_center: MapPoint
    to_center: MapPoint
    segment: Dict[str, Any] = Field(default_factory=dict)
    index: int
    time_bounds: TimeBounds
    from_location: LocationDetail
    to_location: LocationDetail


class SegmentPairs(BaseModel):
    pairs: List[SegmentPair] = Field(default_factory=list)
    first_location: Optional[LocationDetail] = None
    final_location: Optional[LocationDetail] = None
    # First system resolved from the segment endpoints, before any label merge.
    segment_system_id: Optional[str] = None
    stl_only: bool = True
    raw_segment_count: int = 0


class FlightTiming(BaseModel):
    departure: Optional[float] = None
    arrival: Optional[float] = None
    duration: Optional[float] = None


class Heading(BaseModel):
    x: float
    y: float


class FlightPosition(BaseModel):
    x: float
    y: float
    heading: Heading
    segment_index: int
    total_segments: int
    progress: float
    from_id: str
    to_id: str
    from_location: Optional[LocationDetail] = None
    to_location: Optional[LocationDetail] = None
    time_bounds: TimeBounds


def _positive_or_none(value: Any) -> Optional[float]:
    # Zero and unparseable values both read as "not reported".
    numeric = to_numeric_value(value)
    return numeric if numeric else None


def segment_time_bounds(segment: Any) -> TimeBounds:
    if not isinstance(segment, dict):
        return TimeBounds()
    departure = _positive_or_none(first_present(segment, SEGMENT_DEPARTURE_FIELDS))
    arrival = _positive_or_none(first_present(segment, SEGMENT_ARRIVAL_FIELDS))
    duration = _positive_or_none(first_present(segment, SEGMENT_DURATION_FIELDS))
    if duration is None and departure and arrival:
        duration = arrival - departure or None
    return TimeBounds(departure=departure, arrival=arrival, duration=duration)


def _segment_start(segment: Any) -> float:
    bounds = segment_time_bounds(segment)
    if bounds.departure is not None:
        return bounds.departure
    if bounds.arrival is not None:
        return bounds.arrival
    return 0.0


def build_segment_pairs(lookups: WorldLookups, flight: Any) -> SegmentPairs:
    """Resolve a flight's raw segments into drawable inter-system legs."""
    if not isinstance(flight, dict):
        return SegmentPairs()
    raw_segments = [s for s in first_list(flight, ("Segments",)) if isinstance(s, dict)]
    # sorted() is stable, so segments without times keep their input order.
    raw_segments = sorted(raw_segments, key=_segment_start)

    pairs: List[SegmentPair] = []
    previous: Optional[LocationDetail] = None
    first_location: Optional[LocationDetail] = None
    final_location: Optional[LocationDetail] = None
    segment_system_id: Optional[str] = None
    stl_only = True

    for segment in raw_segments:
        origin = extract_location_details(lookups, segment.get("OriginLines"))
        destination = extract_location_details(lookups, segment.get("DestinationLines"))
        if segment_system_id is None:
            segment_system_id = origin.system_id or destination.system_id or None

        if destination.system_id or destination.planet_name or destination.planet_natural_id:
            final_location = destination

        if origin.system_id:
            effective_from = origin
        elif previous is not None and previous.system_id:
            effective_from = previous
        else:
            effective_from = origin
        effective_to = next(
            (loc for loc in (destination, origin, previous) if loc is not None and loc.system_id),
            None,
        )

        if first_location is None and effective_from.system_id:
            first_location = effective_from

        carried = destination if destination.system_id else (effective_to or previous)
        if (
            not effective_from.system_id
            or effective_to is None
            or effective_from.system_id == effective_to.system_id
        ):
            previous = carried
            continue

        stl_only = False
        from_center = system_center(lookups, effective_from.system_id)
        to_center = system_center(lookups, effective_to.system_id)
        if from_center is None or to_center is None:
            previous = carried
            continue

        pairs.append(SegmentPair(
            from_id=effective_from.system_id,
            to_id=effective_to.system_id,
            from_center=from_center,
            to_center=to_center,
            segment=segment,
            index=len(pairs),
            time_bounds=segment_time_bounds(segment),
            from_location=effective_from,
            to_location=effective_to,
        ))
        previous = carried

    if first_location is None and pairs:
        first_location = pairs[0].from_location
    first_location = select_display_location(first_location, derive_location_from_label(lookups, flight.get("Origin")))

    if final_location is None and pairs:
        final_location = pairs[-1].to_location
    if final_location is None and previous is not None and previous.system_id:
        final_location = previous
    final_location = select_display_location(
        final_location, derive_location_from_label(lookups, flight.get("Destination"))
    )

    return SegmentPairs(
        pairs=pairs,
        first_location=first_location,
        final_location=final_location,
        segment_system_id=segment_system_id,
        stl_only=stl_only,
        raw_segment_count=len(raw_segments),
    )


def _epoch_values(record: Any, fields: Sequence[str]) -> List[float]:
    if not isinstance(record, dict):
        return []
    values = []
    for field in fields:
        numeric = to_numeric_value(record.get(field))
        if numeric is not None and numeric > 0:
            values.append(numeric)
    return values


def compute_flight_timing(flight: Any, segments: Sequence[SegmentPair]) -> FlightTiming:
    departures = [p.time_bounds.departure for p in segments if p.time_bounds.departure is not None]
    arrivals = [p.time_bounds.arrival for p in segments if p.time_bounds.arrival is not None]
    departures += _epoch_values(flight, FLIGHT_DEPARTURE_FIELDS)
    arrivals += _epoch_values(flight, FLIGHT_ARRIVAL_FIELDS)

    departure = min(departures) if departures else None
    arrival = max(arrivals) if arrivals else None
    duration = None
    if departure is not None and arrival is not None and arrival > departure:
        duration = arrival - departure
    return FlightTiming(departure=departure, arrival=arrival, duration=duration)


def _segment_index_hint(flight: Any, ship: Any) -> Optional[int]:
    for source, fields in ((flight, FLIGHT_SEGMENT_INDEX_FIELDS), (ship, SHIP_SEGMENT_INDEX_FIELDS)):
        if not isinstance(source, dict):
            continue
        for field in fields:
            index = to_index_value(source.get(field))
            if index is not None:
                return index
    return None


def _progress_hint(flight: Any, ship: Any) -> Optional[float]:
    for source, fields in ((flight, FLIGHT_PROGRESS_FIELDS), (ship, SHIP_PROGRESS_FIELDS)):
        if not isinstance(source, dict):
            continue
        for field in fields:
            value = source.get(field)
            if isinstance(value, bool):
                continue
            numeric = to_numeric_value(value)
            if numeric is not None:
                return numeric
    return None


def has_traversal_hints(flight: Any, ship: Any) -> bool:
    return _segment_index_hint(flight, ship) is not None or _progress_hint(flight, ship) is not None


def interpolate_ship_position(
    segments: Sequence[SegmentPair],
    now_ms: float,
    flight: Any = None,
    ship: Any = None,
) -> Optional[FlightPosition]:
    """Locate a vehicle along its inter-system legs at ``now_ms``.

    The active leg is the first segment-index hint (clamped), else the last
    leg.  Progress comes from the leg's time window, else its reported
    duration, else a progress hint, else 1 on the final leg and 0 before it.
    """
    if not segments:
        return None

    last_index = len(segments) - 1
    hint = _segment_index_hint(flight, ship)
    selected = max(0, min(last_index, hint)) if hint is not None else last_index
    pair = segments[selected]
    bounds = pair.time_bounds
    departure, arrival, duration = bounds.departure, bounds.arrival, bounds.duration

    progress: Optional[float] = None
    if departure and arrival and arrival > departure:
        progress = clamp01((now_ms - departure) / (arrival - departure))
    elif duration is not None and duration > 0 and departure:
        progress = clamp01((now_ms - departure) / duration)

    if progress is None:
        reported = _progress_hint(flight, ship)
        if reported is not None:
            progress = clamp01(reported)

    if progress is None:
        progress = 1.0 if selected >= last_index else 0.0

    dx = pair.to_center.x - pair.from_center.x
    dy = pair.to_center.y - pair.from_center.y
    length = math.hypot(dx, dy) or 1.0

    return FlightPosition(
        x=pair.from_center.x + dx * progress,
        y=pair.from_center.y + dy * progress,
        heading=Heading(x=dx / length, y=dy / length),
        segment_index=selected,
        total_segments=len(segments),
        progress=progress,
        from_id=pair.from_id,
        to_id=pair.to_id,
        from_location=pair.from_location,
        to_location=pair.to_location,
        time_bounds=bounds,
    )


def is_flight_arrived(position: Optional[FlightPosition]) -> bool:
    """True once the vehicle is on its final leg and effectively at the end."""
    if position is None:
        return False
    on_final = position.segment_index >= position.total_segments - 1
    return on_final and position.progress >= ARRIVAL_PROGRESS_THRESHOLD
