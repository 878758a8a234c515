"""
Canonical shared constants for the Starlane overlay service.

Field-name accessor rules for the raw records delivered by the data-fetch
layer, plus the tunable heuristics used by the resolvers.  Every service
module reads field spellings from here so the contract with the fetch
collaborator lives in one place.
"""

from typing import Any, Dict, List, Tuple

# ---------------------------------------------------------------------------
# Storage capacity / load fields
# ---------------------------------------------------------------------------

STORAGE_PERCENT_FIELDS: Tuple[str, ...] = (
    "PercentFull",
    "percentFull",
    "FillPercent",
    "FillPercentage",
    "Utilization",
    "UsagePercent",
)

SHIP_PERCENT_FIELDS: Tuple[str, ...] = (
    "CargoPercentFull",
    "StoragePercentFull",
    "CargoUsage",
    "CargoUtilization",
    "LoadPercent",
    "CapacityPercent",
)

STORAGE_WEIGHT_CAPACITY_FIELDS: Tuple[str, ...] = ("WeightCapacity", "weightCapacity")
STORAGE_VOLUME_CAPACITY_FIELDS: Tuple[str, ...] = ("VolumeCapacity", "volumeCapacity")
STORAGE_WEIGHT_LOAD_FIELDS: Tuple[str, ...] = ("WeightLoad", "weightLoad")
STORAGE_VOLUME_LOAD_FIELDS: Tuple[str, ...] = ("VolumeLoad", "volumeLoad")

STORAGE_TIMESTAMP_FIELDS: Tuple[str, ...] = (
    "Timestamp",
    "timestamp",
    "LastUpdated",
    "lastUpdated",
    "UpdatedAt",
    "updatedAt",
)

STORAGE_ITEM_LIST_FIELDS: Tuple[str, ...] = ("StorageItems", "Items")

# Every key a storage record may be looked up by.
STORAGE_RECORD_KEY_FIELDS: Tuple[str, ...] = (
    "StorageId",
    "StorageID",
    "StorageNaturalId",
    "StorageNaturalID",
    "StorageName",
    "StorageLabel",
    "AddressableId",
    "AddressableID",
    "AddressId",
    "AddressID",
    "Id",
    "ID",
    "Name",
    "NaturalId",
    "NaturalID",
    "LocationId",
    "OwnerId",
)

STORAGE_ITEM_ID_FIELDS: Tuple[str, ...] = (
    "ShipmentItemId",
    "ShipmentItemID",
    "MaterialId",
    "MaterialID",
    "ItemId",
    "ItemID",
    "Id",
    "ID",
)

# ---------------------------------------------------------------------------
# Ship identity / storage reference fields
# ---------------------------------------------------------------------------

SHIP_ID_FIELDS: Tuple[str, ...] = (
    "ShipId",
    "Id",
    "Ship",
    "Registration",
    "Name",
    "ShipName",
    "DisplayName",
    "AddressableId",
    "AddressId",
    "StorageAddressableId",
)

SHIP_PRIMARY_ID_FIELDS: Tuple[str, ...] = ("ShipId", "Id", "Ship", "Registration", "Name")

_NESTED_STORAGE_KEYS: Tuple[str, ...] = (
    "StorageId",
    "StorageID",
    "Id",
    "Name",
    "StorageNaturalId",
    "StorageNaturalID",
    "NaturalId",
    "AddressableId",
    "AddressableID",
)

SHIP_STORAGE_FIELDS: Tuple[Any, ...] = (
    "StorageId",
    "StorageID",
    "StorageNaturalId",
    "StorageNaturalID",
    "StorageName",
    "CurrentStorageId",
    "CurrentStorageID",
    *(("Storage", key) for key in _NESTED_STORAGE_KEYS),
    *(("CurrentStorage", key) for key in _NESTED_STORAGE_KEYS),
)

SHIP_EMBEDDED_STORAGE_FIELDS: Tuple[str, ...] = ("Storage", "CurrentStorage")

# ---------------------------------------------------------------------------
# Location reference fields
# ---------------------------------------------------------------------------

SHIP_SYSTEM_ID_FIELDS: Tuple[str, ...] = (
    "CurrentSystemId",
    "SystemId",
    "CurrentLocationSystemId",
    "LocationSystemId",
    "LocationId",
    "LocationSystemNaturalId",
    "LocationNaturalId",
    "LastKnownSystemId",
    "LastSystemId",
    "LastLocationSystemId",
    "HomeSystemId",
    "SystemNaturalId",
)

SHIP_NESTED_LOCATION_FIELDS: Tuple[str, ...] = (
    "CurrentLocation",
    "Location",
    "DockedAt",
    "LastLocation",
    "HomeLocation",
    "BasedAt",
    "Station",
)

SHIP_LOCATION_LINE_FIELDS: Tuple[str, ...] = (
    "AddressLines",
    "LocationLines",
    "CurrentLocationLines",
    "LastLocationLines",
    "HomeLocationLines",
    "DockingLines",
    "DockedAt",
    "LastLocation",
    "HomeLocation",
)

SHIP_LOCATION_LABEL_FIELDS: Tuple[str, ...] = ("Location", "LastLocation", "HomeLocation")

LINE_TYPE_FIELDS: Tuple[str, ...] = ("Type", "type", "LineType", "lineType", "Category", "category")
LINE_ID_FIELDS: Tuple[str, ...] = ("LineId", "Id", "Identifier", "Line", "Value")
LINE_NATURAL_ID_FIELDS: Tuple[str, ...] = ("LineNaturalId", "NaturalId", "Code")
LINE_NAME_FIELDS: Tuple[str, ...] = ("LineName", "Name", "DisplayName")

STATION_ID_FIELDS: Tuple[str, ...] = ("StationId", "StationIdentifier", "Identifier")
STATION_NATURAL_ID_FIELDS: Tuple[str, ...] = ("StationNaturalId", "NaturalId")
STATION_NAME_FIELDS: Tuple[str, ...] = ("StationName", "Name", "DisplayName")

LINE_SYSTEM_FIELDS: Tuple[str, ...] = (
    "SystemId",
    "SystemNaturalId",
    "OriginSystemId",
    "DestinationSystemId",
    "FromSystemId",
    "ToSystemId",
)

# Trailing fields scanned by the pure system-id fallback.
LINE_SYSTEM_FALLBACK_FIELDS: Tuple[str, ...] = (
    "SystemId",
    "SystemNaturalId",
    "OriginSystemId",
    "DestinationSystemId",
    "NaturalId",
    "LineId",
    "LineNaturalId",
    "Id",
    "Line",
    "Address",
    "From",
    "To",
)

LINE_ADDRESS_FIELDS: Tuple[str, ...] = ("Id", "Line", "Address", "From", "To")

LINE_PLANET_FIELDS: Tuple[str, ...] = ("PlanetId", "PlanetNaturalId", "Planet", "PlanetIdentifier")

GENERIC_LOCATION_LABELS = frozenset({"station", "system", "planet"})

DISPLAY_PRIORITY: Dict[str, int] = {"planet": 0, "station": 1, "system": 2}
UNKNOWN_DISPLAY_PRIORITY = 5

# ---------------------------------------------------------------------------
# Flight fields
# ---------------------------------------------------------------------------

SEGMENT_DEPARTURE_FIELDS: Tuple[str, ...] = (
    "SegmentDepartureEpochMs",
    "DepartureEpochMs",
    "SegmentDepartureTimeEpochMs",
    "DepartureTimeEpochMs",
)
SEGMENT_ARRIVAL_FIELDS: Tuple[str, ...] = (
    "SegmentArrivalEpochMs",
    "ArrivalEpochMs",
    "SegmentArrivalTimeEpochMs",
    "ArrivalTimeEpochMs",
)
SEGMENT_DURATION_FIELDS: Tuple[str, ...] = ("DurationMs", "SegmentDurationMs")

FLIGHT_DEPARTURE_FIELDS: Tuple[str, ...] = (
    "DepartureEpochMs",
    "DepartureTimeEpochMs",
    "ScheduledDepartureEpochMs",
    "StartEpochMs",
    "SegmentDepartureEpochMs",
)
FLIGHT_ARRIVAL_FIELDS: Tuple[str, ...] = (
    "ArrivalEpochMs",
    "ArrivalTimeEpochMs",
    "ScheduledArrivalEpochMs",
    "EndEpochMs",
    "SegmentArrivalEpochMs",
)

FLIGHT_SHIP_ID_FIELDS: Tuple[str, ...] = ("ShipId", "shipId", "Ship")
FLIGHT_SEGMENT_INDEX_FIELDS: Tuple[str, ...] = ("CurrentSegmentIndex", "SegmentIndex")
SHIP_SEGMENT_INDEX_FIELDS: Tuple[str, ...] = ("CurrentSegmentIndex", "SegmentIndex", "CurrentSegment")
FLIGHT_PROGRESS_FIELDS: Tuple[str, ...] = ("Progress", "Completion", "SegmentProgress")
SHIP_PROGRESS_FIELDS: Tuple[str, ...] = ("Progress", "SegmentProgress", "Completion")

# ---------------------------------------------------------------------------
# Contract fields
# ---------------------------------------------------------------------------

DELIVERY_SHIPMENT_TYPE = "DELIVERY_SHIPMENT"
DELIVERY_SHIPMENT_TOKENS = frozenset({"DELIVERYSHIPMENT", "DELIVERSHIPMENT"})

CONTRACT_LOCAL_ID_FIELDS: Tuple[str, ...] = (
    "ContractLocalId",
    "ContractNumber",
    "ContractCode",
    "contractLocalId",
    "contractNumber",
    "contractCode",
)
CONDITION_SHIPMENT_ITEM_FIELDS: Tuple[str, ...] = (
    "ShipmentItemId",
    "ShipmentItemID",
    "MaterialId",
    "MaterialID",
)

# Lower-cased keys searched for a shipment's weight/volume in contract data.
SHIPMENT_WEIGHT_KEYS = frozenset({
    "weight", "totalweight", "materialweight", "shipmentweight",
    "expectedweight", "payloadweight", "mass",
})
SHIPMENT_VOLUME_KEYS = frozenset({
    "volume", "totalvolume", "materialvolume", "shipmentvolume",
    "expectedvolume", "payloadvolume", "space",
})
STORAGE_ITEM_WEIGHT_FIELDS: Tuple[str, ...] = ("TotalWeight", "MaterialWeight", "Weight")
STORAGE_ITEM_VOLUME_FIELDS: Tuple[str, ...] = ("TotalVolume", "MaterialVolume", "Volume")

# ---------------------------------------------------------------------------
# Tunable heuristics
# ---------------------------------------------------------------------------
# The exact values are empirically tuned; only their relative ordering matters.

STORAGE_TYPE_SCORES: List[Tuple[Tuple[str, ...], int]] = [
    (("shipstore",), 300),
    (("ship", "store"), 240),
    (("ship",), 180),
    (("ftlfuel",), 90),
    (("stlfuel",), 80),
    (("store",), 60),
]

STORAGE_SCORE_WEIGHTS: Dict[str, int] = {
    "mobile_store": 25,
    "weight_capacity": 40,
    "volume_capacity": 40,
    "weight_load": 20,
    "volume_load": 20,
    "name": 5,
}

LABEL_LENGTH_MARGIN = 2
PERCENT_SCALE_THRESHOLD = 1.5
ARRIVAL_PROGRESS_THRESHOLD = 0.999
CAPACITY_PROFILE_TOLERANCE = 0.02

SHIP_CAPACITY_PROFILES: List[Dict[str, Any]] = [
    {"key": "weight3000_volume1000", "weight": 3000, "volume": 1000, "label": "Wt 3000 / Vol 1000"},
    {"key": "weight1000_volume3000", "weight": 1000, "volume": 3000, "label": "Wt 1000 / Vol 3000"},
    {"key": "capacity100", "weight": 100, "volume": 100, "label": "100 / 100"},
    {"key": "capacity500", "weight": 500, "volume": 500, "label": "500 / 500"},
    {"key": "capacity1000", "weight": 1000, "volume": 1000, "label": "1000 / 1000"},
    {"key": "capacity2000", "weight": 2000, "volume": 2000, "label": "2000 / 2000"},
    {"key": "capacity5000", "weight": 5000, "volume": 5000, "label": "5000 / 5000"},
]

UNKNOWN_CAPACITY_PROFILE: Dict[str, Any] = {"key": "unknown", "label": "Unknown Capacity"}

SHIP_CAPACITY_PROFILE_BY_KEY: Dict[str, Dict[str, Any]] = {p["key"]: p for p in SHIP_CAPACITY_PROFILES}
