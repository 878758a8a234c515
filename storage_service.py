"""
Storage record scoring and selection.

A vehicle's cargo hold is one of several structurally similar storage
records (warehouses, fuel tanks, ship stores) whose lookup keys overlap.
Records are scored on type tag and field richness; the highest score wins,
then the most recent timestamp, then the first record seen.

Scores are memoized in an explicit side-table (``ScoreCache``) that lives
for one index build.  It is keyed by ``id(record)``; the records it refers
to are held by the same index, so the ids stay valid for its lifetime.
"""

import math
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence

from constants import (
    SHIP_ID_FIELDS,
    SHIP_STORAGE_FIELDS,
    STORAGE_RECORD_KEY_FIELDS,
    STORAGE_SCORE_WEIGHTS,
    STORAGE_TIMESTAMP_FIELDS,
    STORAGE_TYPE_SCORES,
    STORAGE_VOLUME_CAPACITY_FIELDS,
    STORAGE_VOLUME_LOAD_FIELDS,
    STORAGE_WEIGHT_CAPACITY_FIELDS,
    STORAGE_WEIGHT_LOAD_FIELDS,
)
from identifiers import collect_present, first_numeric, first_present, normalize_lookup_key, parse_epoch_ms


class StorageScore(NamedTuple):
    score: float
    timestamp_ms: float


ScoreCache = Dict[int, StorageScore]

UNSCORED = StorageScore(-math.inf, -math.inf)


def storage_type_score(type_tag: Any) -> int:
    if not isinstance(type_tag, str):
        return 0
    normalized = "".join(ch for ch in type_tag.lower() if "a" <= ch <= "z")
    for tokens, score in STORAGE_TYPE_SCORES:
        if all(token in normalized for token in tokens):
            return score
    return 0


def evaluate_storage_record(record: Any, score_cache: Optional[ScoreCache] = None) -> StorageScore:
    if not isinstance(record, dict):
        return UNSCORED
    if score_cache is not None and id(record) in score_cache:
        return score_cache[id(record)]

    score = storage_type_score(record.get("Type"))
    if record.get("FixedStore") is False:
        score += STORAGE_SCORE_WEIGHTS["mobile_store"]
    if first_numeric(record, STORAGE_WEIGHT_CAPACITY_FIELDS) is not None:
        score += STORAGE_SCORE_WEIGHTS["weight_capacity"]
    if first_numeric(record, STORAGE_VOLUME_CAPACITY_FIELDS) is not None:
        score += STORAGE_SCORE_WEIGHTS["volume_capacity"]
    if first_numeric(record, STORAGE_WEIGHT_LOAD_FIELDS) is not None:
        score += STORAGE_SCORE_WEIGHTS["weight_load"]
    if first_numeric(record, STORAGE_VOLUME_LOAD_FIELDS) is not None:
        score += STORAGE_SCORE_WEIGHTS["volume_load"]
    if record.get("Name"):
        score += STORAGE_SCORE_WEIGHTS["name"]

    timestamp = parse_epoch_ms(first_present(record, STORAGE_TIMESTAMP_FIELDS))
    evaluation = StorageScore(float(score), timestamp if timestamp is not None else -math.inf)
    if score_cache is not None:
        score_cache[id(record)] = evaluation
    return evaluation


def pick_preferred_storage_record(
    existing: Optional[dict],
    candidate: Optional[dict],
    score_cache: Optional[ScoreCache] = None,
) -> Optional[dict]:
    """Return whichever record wins; ``existing`` on a full tie."""
    if not candidate:
        return existing or None
    if not existing:
        return candidate
    if existing is candidate:
        return existing
    existing_eval = evaluate_storage_record(existing, score_cache)
    candidate_eval = evaluate_storage_record(candidate, score_cache)
    if candidate_eval > existing_eval:
        return candidate
    return existing


def storage_record_keys(record: dict) -> List[str]:
    keys = []
    for value in collect_present(record, STORAGE_RECORD_KEY_FIELDS):
        key = normalize_lookup_key(value)
        if key and key not in keys:
            keys.append(key)
    return keys


class StorageIndex:
    """Maps every normalized lookup key to its preferred storage record."""

    def __init__(self, records: Iterable[Any] = ()):
        self.records: List[dict] = [r for r in records if isinstance(r, dict)]
        self.score_cache: ScoreCache = {}
        self._by_key: Dict[str, dict] = {}
        for record in self.records:
            for key in storage_record_keys(record):
                existing = self._by_key.get(key)
                preferred = pick_preferred_storage_record(existing, record, self.score_cache)
                if preferred is not None and preferred is not existing:
                    self._by_key[key] = preferred

    def __len__(self) -> int:
        return len(self._by_key)

    def __contains__(self, key: Any) -> bool:
        normalized = normalize_lookup_key(key)
        return normalized is not None and normalized in self._by_key

    def get(self, key: Any) -> Optional[dict]:
        normalized = normalize_lookup_key(key)
        if not normalized:
            return None
        return self._by_key.get(normalized)

    def evaluate(self, record: Any) -> StorageScore:
        return evaluate_storage_record(record, self.score_cache)


def build_storage_index(records: Optional[Sequence[Any]]) -> StorageIndex:
    return StorageIndex(records or [])


def ship_lookup_keys(ship: Any) -> List[str]:
    """Every normalized key a ship may be referenced by, identity keys first."""
    if not isinstance(ship, dict):
        return []
    keys: List[str] = []
    for value in collect_present(ship, SHIP_ID_FIELDS) + collect_present(ship, SHIP_STORAGE_FIELDS):
        key = normalize_lookup_key(value)
        if key and key not in keys:
            keys.append(key)
    return keys


def select_storage_record(index: StorageIndex, candidate_keys: Iterable[Any]) -> Optional[dict]:
    """Pick the best-scoring record among those referenced by ``candidate_keys``."""
    best: Optional[dict] = None
    best_eval: Optional[StorageScore] = None
    for candidate in candidate_keys:
        record = index.get(candidate)
        if record is None:
            continue
        evaluation = index.evaluate(record)
        if best_eval is None or evaluation > best_eval:
            best, best_eval = record, evaluation
    return best


def select_ship_storage_record(index: StorageIndex, ship: Any) -> Optional[dict]:
    return select_storage_record(index, ship_lookup_keys(ship))
