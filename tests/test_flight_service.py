"""
Unit tests for flight segment pairing and position interpolation.
"""

import pytest


def _pair(from_xy=(0, 0), to_xy=(100, 0), departure=None, arrival=None, duration=None, index=0):
    from flight_service import SegmentPair, TimeBounds
    from location_service import LocationDetail
    from universe_service import MapPoint

    return SegmentPair(
        from_id=f"from-{index}",
        to_id=f"to-{index}",
        from_center=MapPoint(x=from_xy[0], y=from_xy[1]),
        to_center=MapPoint(x=to_xy[0], y=to_xy[1]),
        index=index,
        time_bounds=TimeBounds(departure=departure, arrival=arrival, duration=duration),
        from_location=LocationDetail(system_id=f"from-{index}"),
        to_location=LocationDetail(system_id=f"to-{index}"),
    )


class TestSegmentTimeBounds:
    def test_reads_alternate_fields(self):
        from flight_service import segment_time_bounds
        bounds = segment_time_bounds({"SegmentDepartureEpochMs": 100, "ArrivalTimeEpochMs": "400"})
        assert bounds.departure == 100
        assert bounds.arrival == 400
        assert bounds.duration == 300

    def test_explicit_duration(self):
        from flight_service import segment_time_bounds
        bounds = segment_time_bounds({"DepartureEpochMs": 100, "DurationMs": 50})
        assert bounds.arrival is None
        assert bounds.duration == 50

    def test_missing(self):
        from flight_service import segment_time_bounds
        bounds = segment_time_bounds(None)
        assert bounds.departure is None and bounds.arrival is None and bounds.duration is None


class TestBuildSegmentPairs:
    def test_segments_sorted_and_paired(self, lookups, sample_snapshot):
        from flight_service import build_segment_pairs
        result = build_segment_pairs(lookups, sample_snapshot["flights"][0])
        assert [(p.from_id, p.to_id) for p in result.pairs] == [("sys-ant", "sys-hor"), ("sys-hor", "sys-mor")]
        assert [p.index for p in result.pairs] == [0, 1]
        assert result.pairs[0].from_center.x == 0
        assert result.pairs[1].to_center.x == 600
        assert not result.stl_only

    def test_first_and_final_locations(self, lookups, sample_snapshot):
        from flight_service import build_segment_pairs
        result = build_segment_pairs(lookups, sample_snapshot["flights"][0])
        assert result.first_location.system_id == "sys-ant"
        assert result.final_location.system_id == "sys-mor"

    def test_intra_system_flight_is_stl_only(self, lookups, sample_snapshot):
        from flight_service import build_segment_pairs
        result = build_segment_pairs(lookups, sample_snapshot["flights"][1])
        assert result.pairs == []
        assert result.stl_only
        assert result.raw_segment_count == 1
        assert result.first_location.system_id == "sys-hor"
        assert result.first_location.display_kind == "planet"

    def test_previous_location_carried_forward(self, lookups):
        from flight_service import build_segment_pairs
        flight = {"Segments": [
            {"OriginLines": ["Antares"], "DestinationLines": ["Hortus"], "DepartureTimeEpochMs": 1},
            {"OriginLines": [], "DestinationLines": ["Moria"], "DepartureTimeEpochMs": 2},
        ]}
        result = build_segment_pairs(lookups, flight)
        assert [(p.from_id, p.to_id) for p in result.pairs] == [("sys-ant", "sys-hor"), ("sys-hor", "sys-mor")]

    def test_unknown_center_dropped_but_not_stl(self, lookups):
        from flight_service import build_segment_pairs
        lookups = lookups.model_copy(update={"system_centers": {}})
        flight = {"Segments": [{"OriginLines": ["Antares"], "DestinationLines": ["Hortus"]}]}
        result = build_segment_pairs(lookups, flight)
        assert result.pairs == []
        assert not result.stl_only

    def test_label_refines_endpoints(self, lookups):
        from flight_service import build_segment_pairs
        flight = {
            "Destination": "Hortus (HOR) - Verdant (HOR-2b)",
            "Segments": [{"OriginLines": ["Antares"], "DestinationLines": ["Hortus"]}],
        }
        result = build_segment_pairs(lookups, flight)
        assert result.final_location.display_kind == "planet"
        assert result.final_location.planet_name == "Verdant"

    def test_segment_system_ignores_flight_labels(self, lookups):
        from flight_service import build_segment_pairs
        flight = {
            "Origin": "Antares (ANT)",
            "Destination": "Moria (MOR)",
            "Segments": [{"OriginLines": ["Nowhere"], "DestinationLines": ["Elsewhere"]}],
        }
        result = build_segment_pairs(lookups, flight)
        assert result.first_location.system_id == "sys-ant"
        assert result.segment_system_id is None

    def test_segment_system_from_first_resolved_endpoint(self, lookups, sample_snapshot):
        from flight_service import build_segment_pairs
        assert build_segment_pairs(lookups, sample_snapshot["flights"][1]).segment_system_id == "sys-hor"

    def test_scalar_segments_ignored(self, lookups):
        from flight_service import build_segment_pairs
        result = build_segment_pairs(lookups, {"Segments": 5})
        assert result.raw_segment_count == 0

    def test_no_segments(self, lookups):
        from flight_service import build_segment_pairs
        result = build_segment_pairs(lookups, {"ShipId": "x"})
        assert result.pairs == []
        assert result.raw_segment_count == 0
        assert build_segment_pairs(lookups, None).pairs == []


class TestComputeFlightTiming:
    def test_earliest_departure_latest_arrival(self):
        from flight_service import compute_flight_timing
        pairs = [_pair(departure=1000, arrival=2000), _pair(departure=2000, arrival=3000, index=1)]
        timing = compute_flight_timing({"ScheduledArrivalEpochMs": 3500}, pairs)
        assert timing.departure == 1000
        assert timing.arrival == 3500
        assert timing.duration == 2500

    def test_nothing_known(self):
        from flight_service import compute_flight_timing
        timing = compute_flight_timing({}, [_pair()])
        assert timing.departure is None and timing.duration is None


class TestInterpolateShipPosition:
    def test_two_segments_second_half_elapsed(self):
        from flight_service import interpolate_ship_position
        pairs = [
            _pair((0, 0), (100, 0), departure=1000, arrival=2000, index=0),
            _pair((100, 0), (100, 100), departure=2000, arrival=3000, index=1),
        ]
        position = interpolate_ship_position(pairs, 2500)
        assert position.segment_index == 1
        assert position.total_segments == 2
        assert position.progress == pytest.approx(0.5)
        assert (position.x, position.y) == (pytest.approx(100), pytest.approx(50))
        assert (position.heading.x, position.heading.y) == (pytest.approx(0), pytest.approx(1))

    def test_segment_hint_clamped(self):
        from flight_service import interpolate_ship_position
        pairs = [_pair(index=0), _pair(index=1)]
        assert interpolate_ship_position(pairs, 0, {"CurrentSegmentIndex": 7}).segment_index == 1
        assert interpolate_ship_position(pairs, 0, None, {"SegmentIndex": -3}).segment_index == 0

    def test_huge_segment_hint_ignored(self):
        from flight_service import interpolate_ship_position
        pairs = [_pair(index=0), _pair(index=1)]
        assert interpolate_ship_position(pairs, 0, {"CurrentSegmentIndex": 10 ** 400}).segment_index == 1

    def test_flight_hint_beats_ship_hint(self):
        from flight_service import interpolate_ship_position
        pairs = [_pair(index=0), _pair(index=1)]
        position = interpolate_ship_position(pairs, 0, {"CurrentSegmentIndex": 0}, {"CurrentSegmentIndex": 1})
        assert position.segment_index == 0

    def test_duration_used_without_arrival(self):
        from flight_service import interpolate_ship_position
        position = interpolate_ship_position([_pair(departure=1000, duration=400)], 1100)
        assert position.progress == pytest.approx(0.25)

    def test_progress_hint_clamped(self):
        from flight_service import interpolate_ship_position
        pairs = [_pair()]
        assert interpolate_ship_position(pairs, 0, {"Progress": 0.3}).progress == pytest.approx(0.3)
        assert interpolate_ship_position(pairs, 0, None, {"Completion": "1.7"}).progress == 1.0

    def test_binary_fallback(self):
        from flight_service import interpolate_ship_position
        pairs = [_pair(index=0), _pair(index=1)]
        assert interpolate_ship_position(pairs, 0, {"CurrentSegmentIndex": 0}).progress == 0.0
        assert interpolate_ship_position(pairs, 0).progress == 1.0

    def test_zero_length_segment_heading(self):
        from flight_service import interpolate_ship_position
        position = interpolate_ship_position([_pair((5, 5), (5, 5))], 0)
        assert (position.heading.x, position.heading.y) == (0.0, 0.0)
        assert (position.x, position.y) == (5.0, 5.0)

    def test_progress_monotonic_in_time(self):
        from flight_service import interpolate_ship_position
        pairs = [_pair(departure=1000, arrival=2000)]
        progresses = [interpolate_ship_position(pairs, t).progress for t in range(0, 3001, 250)]
        assert progresses == sorted(progresses)
        assert progresses[0] == 0.0 and progresses[-1] == 1.0

    def test_empty_segments(self):
        from flight_service import interpolate_ship_position
        assert interpolate_ship_position([], 0) is None


class TestIsFlightArrived:
    def test_threshold_on_final_segment(self):
        from flight_service import interpolate_ship_position, is_flight_arrived
        pairs = [_pair(departure=0.5, arrival=1000.5)]
        assert not is_flight_arrived(interpolate_ship_position(pairs, 998.5))
        assert is_flight_arrived(interpolate_ship_position(pairs, 1000.0))

    def test_not_arrived_before_final_segment(self):
        from flight_service import interpolate_ship_position, is_flight_arrived
        pairs = [_pair(index=0), _pair(index=1)]
        position = interpolate_ship_position(pairs, 0, {"CurrentSegmentIndex": 0, "Progress": 1})
        assert not is_flight_arrived(position)
        assert not is_flight_arrived(None)
