"""
Shared pytest fixtures for the Starlane overlay tests.

Provides:
  - A small sample universe snapshot (three systems, planets, a station,
    ships, flights, storage and contracts)
  - World lookups built from it
  - FastAPI TestClient with the sample snapshot loaded
"""

import copy
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict

import pytest

# ---------------------------------------------------------------------------
# Ensure the project root is on sys.path so we can import app modules
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Point the data dir at an empty temp directory so startup finds no snapshot.
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="starlane_test_")
os.environ["DATA_DIR"] = _TEST_DATA_DIR
os.environ.pop("SNAPSHOT_PATH", None)


# ---------------------------------------------------------------------------
# Sample snapshot
# ---------------------------------------------------------------------------

def _system_line(system_id: str, name: str, code: str) -> Dict[str, Any]:
    return {"Type": "SYSTEM", "LineId": system_id, "LineName": name, "LineNaturalId": code}


SAMPLE_SNAPSHOT: Dict[str, Any] = {
    "systems": [
        {"SystemId": "sys-ant", "Name": "Antares", "NaturalId": "ANT", "X": 0, "Y": 0},
        {"SystemId": "sys-hor", "Name": "Hortus", "NaturalId": "HOR", "X": 300, "Y": 400},
        {"SystemId": "sys-mor", "Name": "Moria", "NaturalId": "MOR", "X": 600, "Y": 400},
    ],
    "planets": {
        "sys-ant": [{"PlanetId": "p-ant-1", "PlanetNaturalId": "ANT-1a", "PlanetName": "Promitor"}],
        "sys-hor": [{"PlanetId": "p-hor-2", "PlanetNaturalId": "HOR-2b", "PlanetName": "Verdant"}],
    },
    "stations": [
        {
            "StationId": "st-ant",
            "NaturalId": "ANT-STA",
            "Name": "Antares Station",
            "SystemId": "sys-ant",
            "WarehouseId": "wh-ant",
        },
    ],
    "ships": [
        {"ShipId": "ship-1", "Name": "Hauler One", "StorageId": "store-ship-1"},
        {
            "ShipId": "ship-2",
            "Name": "Idle Two",
            "StorageId": "store-ship-2",
            "SystemId": "sys-ant",
            "AddressLines": [
                {
                    "Type": "STATION",
                    "StationName": "Antares Station",
                    "StationNaturalId": "ANT-STA",
                    "SystemId": "sys-ant",
                },
                "Antares",
            ],
        },
        {"ShipId": "ship-3", "Name": "Local Three", "CargoPercentFull": 40},
    ],
    "flights": [
        {
            "FlightId": "fl-1",
            "ShipId": "ship-1",
            "Origin": "Antares (ANT)",
            "Destination": "Moria (MOR)",
            "Segments": [
                {
                    "OriginLines": [_system_line("sys-hor", "Hortus", "HOR")],
                    "DestinationLines": [_system_line("sys-mor", "Moria", "MOR")],
                    "DepartureTimeEpochMs": 2_000_000,
                    "ArrivalTimeEpochMs": 3_000_000,
                },
                {
                    "OriginLines": [_system_line("sys-ant", "Antares", "ANT")],
                    "DestinationLines": [_system_line("sys-hor", "Hortus", "HOR")],
                    "DepartureTimeEpochMs": 1_000_000,
                    "ArrivalTimeEpochMs": 2_000_000,
                },
            ],
        },
        {
            "FlightId": "fl-3",
            "ShipId": "ship-3",
            "Segments": [
                {
                    "OriginLines": [
                        {"Type": "PLANET", "LineId": "p-hor-2", "LineNaturalId": "HOR-2b", "LineName": "Verdant"},
                    ],
                    "DestinationLines": [_system_line("sys-hor", "Hortus", "HOR")],
                    "DepartureTimeEpochMs": 1_000_000,
                    "ArrivalTimeEpochMs": 1_500_000,
                },
            ],
        },
    ],
    "storage": [
        {
            "StorageId": "store-ship-1",
            "AddressableId": "ship-1",
            "Type": "SHIP_STORE",
            "Name": "Hauler One Hold",
            "WeightCapacity": 1000,
            "VolumeCapacity": 1000,
            "WeightLoad": 250,
            "VolumeLoad": 500,
            "Timestamp": "2024-01-01T00:00:00Z",
            "StorageItems": [
                {
                    "MaterialId": "mat-x",
                    "ShipmentItemId": "shp-1",
                    "Type": "SHIPMENT",
                    "TotalWeight": 250,
                    "TotalVolume": 500,
                },
            ],
        },
        {
            "StorageId": "fuel-ship-1",
            "AddressableId": "ship-1",
            "Type": "FTL_FUEL_STORE",
            "WeightCapacity": 100,
            "VolumeCapacity": 100,
        },
        {
            "StorageId": "store-ship-2",
            "AddressableId": "ship-2",
            "Type": "SHIP_STORE",
            "WeightCapacity": 3000,
            "VolumeCapacity": 1000,
            "WeightLoad": 0,
            "VolumeLoad": 0,
        },
        {
            "StorageId": "wh-ant",
            "AddressableId": "wh-ant",
            "Type": "WAREHOUSE_STORE",
            "Name": "Antares Warehouse",
            "StorageItems": [
                {"ShipmentItemId": "shp-2", "Type": "SHIPMENT", "TotalWeight": 10, "TotalVolume": 5},
            ],
        },
    ],
    "contracts": [
        {
            "ContractId": "c-1",
            "ContractLocalId": "ABC-1",
            "Status": "PARTIALLY_FULFILLED",
            "PartnerName": "Insitor Cooperative",
            "PartnerCompanyCode": "ICO",
            "Type": "CONTRACT",
            "Conditions": [
                {"Type": "DELIVERY_SHIPMENT", "ShipmentItemId": "shp-1", "ConditionIndex": 2, "Destination": "Moria (MOR)"},
                {"Type": "PICKUP_SHIPMENT", "ShipmentItemId": "shp-1", "ConditionIndex": 1},
                {"Type": "DELIVERY_SHIPMENT", "ShipmentItemId": "shp-1", "ConditionIndex": 0},
            ],
        },
        {
            "ContractId": "c-2",
            "PartnerCompanyCode": "NCC",
            "Conditions": [{"Type": "delivery-shipment", "ShipmentItemId": "shp-2", "ConditionIndex": 0}],
        },
    ],
}


@pytest.fixture()
def sample_snapshot() -> Dict[str, Any]:
    """A fresh deep copy of the sample snapshot; tests may mutate it."""
    return copy.deepcopy(SAMPLE_SNAPSHOT)


@pytest.fixture()
def lookups(sample_snapshot):
    from universe_service import build_world_lookups
    return build_world_lookups(sample_snapshot)


@pytest.fixture()
def overlay_snapshot(sample_snapshot):
    from overlay_service import OverlaySnapshot
    return OverlaySnapshot(version=1, data=sample_snapshot)


# ---------------------------------------------------------------------------
# FastAPI TestClient
# ---------------------------------------------------------------------------

@pytest.fixture()
def client(sample_snapshot):
    """Starlette TestClient wired to the FastAPI app, with the sample snapshot loaded."""
    from fastapi.testclient import TestClient
    from data_store import get_store
    from main import app

    store = get_store()
    store.replace(sample_snapshot)
    with TestClient(app) as c:
        yield c
    store.clear()


@pytest.fixture()
def empty_client():
    from fastapi.testclient import TestClient
    from data_store import get_store
    from main import app

    get_store().clear()
    with TestClient(app) as c:
        yield c


# ---------------------------------------------------------------------------
# Overlay clock helpers
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_overlay_clock():
    """Ensure the overlay clock is reset between tests."""
    from sim_service import reset_overlay_clock
    reset_overlay_clock()
    yield
    reset_overlay_clock()
