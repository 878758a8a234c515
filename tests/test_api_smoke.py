"""
API smoke tests: hit every endpoint and verify it doesn't crash.

These run against the FastAPI TestClient with the sample snapshot loaded.
The goal is not to validate composition logic in depth (see the service
tests) but to catch:
  - import errors / missing dependencies
  - serialization failures in the response models
  - 500-level crashes from unexpected None values
"""


TWO_LEG_MIDPOINT_MS = 2_500_000


# ── Health & clock ──────────────────────────────────────────────────────────

class TestHealthAndClock:
    def test_health(self, client):
        r = client.get("/api/health")
        assert r.status_code == 200
        data = r.json()
        assert data["ok"] is True
        assert data["snapshot_version"] >= 1

    def test_time(self, client):
        r = client.get("/api/time")
        assert r.status_code == 200
        data = r.json()
        assert data["paused"] is False
        assert data["now_ms"] > 0

    def test_toggle_pause(self, client):
        r = client.post("/api/time/toggle_pause")
        assert r.status_code == 200
        assert r.json()["paused"] is True
        assert r.json()["clock_scale"] == 0.0
        r = client.post("/api/time/toggle_pause")
        assert r.json()["paused"] is False

    def test_freeze_drives_overlay(self, client):
        r = client.post("/api/time/freeze", json={"epoch_ms": TWO_LEG_MIDPOINT_MS})
        assert r.status_code == 200
        assert r.json()["now_ms"] == TWO_LEG_MIDPOINT_MS
        statuses = {s["ship_id"]: s["status"] for s in client.get("/api/overlay").json()["ships"]}
        assert statuses["ship-1"] == "transit"

    def test_freeze_rejects_negative(self, client):
        r = client.post("/api/time/freeze", json={"epoch_ms": -1})
        assert r.status_code == 400

    def test_reset_resumes_wall_clock(self, client):
        client.post("/api/time/freeze", json={"epoch_ms": 0})
        r = client.post("/api/time/reset")
        assert r.status_code == 200
        assert r.json()["paused"] is False
        assert r.json()["now_ms"] > TWO_LEG_MIDPOINT_MS


# ── Snapshot ────────────────────────────────────────────────────────────────

class TestSnapshotEndpoints:
    def test_summary(self, client):
        r = client.get("/api/snapshot")
        assert r.status_code == 200
        counts = r.json()["counts"]
        assert counts["ships"] == 3
        assert counts["flights"] == 2

    def test_replace(self, client, sample_snapshot):
        before = client.get("/api/snapshot").json()["version"]
        sample_snapshot["ships"] = sample_snapshot["ships"][:1]
        r = client.put("/api/snapshot", json=sample_snapshot)
        assert r.status_code == 200
        data = r.json()
        assert data["version"] == before + 1
        assert data["counts"]["ships"] == 1

    def test_replace_rejects_bad_shape(self, client):
        r = client.put("/api/snapshot", json={"ships": "nope"})
        assert r.status_code == 400
        assert "ships" in r.json()["detail"]

    def test_replace_rejects_non_object(self, client):
        r = client.put("/api/snapshot", json=[1, 2, 3])
        assert r.status_code == 400


# ── Overlay ─────────────────────────────────────────────────────────────────

class TestOverlayEndpoints:
    def test_overlay(self, client):
        r = client.get("/api/overlay", params={"t": TWO_LEG_MIDPOINT_MS})
        assert r.status_code == 200
        data = r.json()
        assert data["evaluated_at_ms"] == TWO_LEG_MIDPOINT_MS
        statuses = {s["ship_id"]: s["status"] for s in data["ships"]}
        assert statuses == {"ship-1": "transit", "ship-2": "idle", "ship-3": "stl"}

    def test_overlay_without_time_uses_clock(self, client):
        r = client.get("/api/overlay")
        assert r.status_code == 200
        statuses = {s["ship_id"]: s["status"] for s in r.json()["ships"]}
        assert statuses["ship-1"] == "arrived"

    def test_overlay_partner_filter(self, client):
        r = client.get("/api/overlay", params={"t": TWO_LEG_MIDPOINT_MS, "partner": "ICO"})
        assert r.status_code == 200
        assert [s["ship_id"] for s in r.json()["ships"]] == ["ship-1"]

    def test_overlay_ship(self, client):
        r = client.get("/api/overlay/ships/ship-1", params={"t": TWO_LEG_MIDPOINT_MS})
        assert r.status_code == 200
        data = r.json()
        assert data["position"]["segment_index"] == 1
        assert abs(data["position"]["progress"] - 0.5) < 1e-9

    def test_overlay_ship_not_found(self, client):
        r = client.get("/api/overlay/ships/ghost")
        assert r.status_code == 404

    def test_system_shipments(self, client):
        r = client.get("/api/overlay/systems/shipments")
        assert r.status_code == 200
        assert r.json()["systems"]["sys-ant"]["count"] == 1

    def test_resolve_system(self, client):
        r = client.get("/api/resolve/system", params={"q": "Hortus Station"})
        assert r.status_code == 200
        data = r.json()
        assert data["system_id"] == "sys-hor"
        assert data["system_name"] == "Hortus"

    def test_resolve_unknown_system(self, client):
        r = client.get("/api/resolve/system", params={"q": "Nowhere"})
        assert r.status_code == 200
        assert r.json()["system_id"] is None


# ── Empty store ─────────────────────────────────────────────────────────────

class TestEmptyStore:
    def test_overlay_empty(self, empty_client):
        r = empty_client.get("/api/overlay")
        assert r.status_code == 200
        assert r.json()["ships"] == []

    def test_system_shipments_empty(self, empty_client):
        r = empty_client.get("/api/overlay/systems/shipments")
        assert r.status_code == 200
        assert r.json()["systems"] == {}
