"""
Shipment ↔ contract matching.

Indexes the delivery-shipment conditions of all contracts by the shipment
item they reference, so a cargo item found in a storage record can be
matched back to the obligation it fulfills.
"""

import math
import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from constants import (
    CONDITION_SHIPMENT_ITEM_FIELDS,
    CONTRACT_LOCAL_ID_FIELDS,
    DELIVERY_SHIPMENT_TOKENS,
    DELIVERY_SHIPMENT_TYPE,
)
from identifiers import first_list, first_present, normalize_lookup_key, parse_epoch_ms, to_numeric_value

_NON_LETTER_RE = re.compile(r"[^A-Z]")


class ContractConditionEntry(BaseModel):
    """One delivery-shipment condition, denormalized with its contract."""

    model_config = ConfigDict(frozen=True)

    contract_id: Optional[str] = None
    contract_local_id: Optional[str] = None
    contract_status: Optional[str] = None
    partner_name: Optional[str] = None
    partner_code: Optional[str] = None
    contract_type: Optional[str] = None
    contract_type_normalized: Optional[str] = None
    due_date_epoch_ms: Optional[float] = None
    timestamp_epoch_ms: Optional[float] = None
    condition_id: Optional[str] = None
    condition_type: str = DELIVERY_SHIPMENT_TYPE
    condition_type_raw: Optional[str] = None
    condition_status: Optional[str] = None
    condition_index: Optional[float] = None
    destination: Any = None
    party: Any = None
    weight: Optional[float] = None
    volume: Optional[float] = None
    deadline_epoch_ms: Optional[float] = None
    dependencies: List[Any] = Field(default_factory=list)
    condition: Dict[str, Any] = Field(default_factory=dict)


ShipmentContractIndex = Dict[str, List[ContractConditionEntry]]


def normalize_delivery_shipment_type(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    collapsed = _NON_LETTER_RE.sub("", text.upper())
    if collapsed in DELIVERY_SHIPMENT_TOKENS:
        return DELIVERY_SHIPMENT_TYPE
    return None


def is_delivery_shipment_type(value: Any) -> bool:
    return normalize_delivery_shipment_type(value) is not None


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _condition_type(condition: Dict[str, Any]) -> Any:
    return condition.get("Type") or condition.get("type")


def _sort_key(entry: ContractConditionEntry):
    index = entry.condition_index
    if index is None or not math.isfinite(index):
        index = math.inf
    return (index, entry.condition_type or "")


def build_shipment_contract_index(contracts: Optional[Sequence[Any]]) -> ShipmentContractIndex:
    """Map normalized shipment-item id → sorted condition entries."""
    index: ShipmentContractIndex = {}

    for contract in contracts or []:
        if not isinstance(contract, dict):
            continue

        raw_contract_type = contract.get("Type") or contract.get("type")
        conditions = [c for c in first_list(contract, ("Conditions", "conditions")) if isinstance(c, dict)]
        normalized_contract_type = normalize_delivery_shipment_type(raw_contract_type)
        has_delivery_condition = any(is_delivery_shipment_type(_condition_type(c)) for c in conditions)
        if not normalized_contract_type and not has_delivery_condition:
            continue

        contract_fields = {
            "contract_id": _text(contract.get("ContractId") or contract.get("contractId")),
            "contract_local_id": _text(first_present(contract, CONTRACT_LOCAL_ID_FIELDS)),
            "contract_status": _text(contract.get("Status") or contract.get("status")),
            "partner_name": _text(contract.get("PartnerName") or contract.get("partnerName")),
            "partner_code": _text(contract.get("PartnerCompanyCode") or contract.get("partnerCompanyCode")),
            "contract_type": normalized_contract_type
            or (raw_contract_type if isinstance(raw_contract_type, str) else None),
            "contract_type_normalized": normalized_contract_type,
            "due_date_epoch_ms": to_numeric_value(first_present(contract, ("DueDateEpochMs", "dueDateEpochMs"))),
            "timestamp_epoch_ms": parse_epoch_ms(first_present(contract, ("Timestamp", "timestamp"))),
        }

        for condition in conditions:
            raw_condition_type = _condition_type(condition)
            normalized_condition_type = normalize_delivery_shipment_type(raw_condition_type)
            if not normalized_condition_type:
                continue
            item_key = normalize_lookup_key(first_present(condition, CONDITION_SHIPMENT_ITEM_FIELDS))
            if not item_key:
                continue

            dependencies = first_list(condition, ("Dependencies", "dependencies"))
            entry = ContractConditionEntry(
                **contract_fields,
                condition_id=_text(condition.get("ConditionId") or condition.get("conditionId")),
                condition_type=normalized_condition_type,
                condition_type_raw=raw_condition_type if isinstance(raw_condition_type, str) else None,
                condition_status=_text(condition.get("Status") or condition.get("status")),
                condition_index=to_numeric_value(first_present(condition, ("ConditionIndex", "conditionIndex"))),
                destination=condition.get("Destination") or condition.get("destination"),
                party=condition.get("Party") or condition.get("party"),
                weight=to_numeric_value(first_present(condition, ("Weight", "weight"))),
                volume=to_numeric_value(first_present(condition, ("Volume", "volume"))),
                deadline_epoch_ms=to_numeric_value(first_present(condition, ("DeadlineEpochMs", "deadlineEpochMs"))),
                dependencies=list(dependencies),
                condition=condition,
            )
            index.setdefault(item_key, []).append(entry)

    for entries in index.values():
        entries.sort(key=_sort_key)
    return index


def lookup_contract_matches(index: ShipmentContractIndex, candidate_ids: Sequence[Any]):
    """Return ``(matched_key, entries)`` for the first candidate id in the index."""
    for candidate in candidate_ids:
        key = normalize_lookup_key(candidate)
        if key and key in index:
            return key, list(index[key])
    return None, None


# ── Partner filter ─────────────────────────────────────────

def matches_partner_filter(entry: Optional[ContractConditionEntry], partner_filter: Any) -> bool:
    """Substring match of the normalized partner code against ``partner_filter``."""
    needle = normalize_lookup_key(partner_filter)
    if not needle:
        return True
    if entry is None:
        return False
    candidates = [
        entry.partner_code,
        entry.condition.get("PartnerCompanyCode"),
        entry.condition.get("partnerCompanyCode"),
    ]
    for value in candidates:
        normalized = normalize_lookup_key(value)
        if normalized and needle in normalized:
            return True
    return False


def filter_shipments_by_partner(shipments: Optional[Sequence[Any]], partner_filter: Any) -> List[Any]:
    items = list(shipments or [])
    if not normalize_lookup_key(partner_filter):
        return items
    return [
        shipment
        for shipment in items
        if any(matches_partner_filter(match, partner_filter) for match in shipment.contract_matches)
    ]
