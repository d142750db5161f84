"""
Per-slot validation and merge rules used when importing a snapshot.

Merge policy:

- scalar and config slots: the incoming value is taken only when the local
  value is empty or still the slot default; otherwise local wins.
- collection slots: union by record ``id``. Local records keep their order
  and content; incoming records with an unseen id are appended in incoming
  order. Merging the same incoming data twice changes nothing.
"""

from __future__ import annotations

import copy
from typing import Any, List

from .exceptions import MalformedSnapshotError
from .registry import Slot, SlotKind

_SCALAR_TYPES = (str, bool, int, float, type(None))


def _valid_id(value: Any) -> bool:
    return isinstance(value, (str, int)) and not isinstance(value, bool)


def validate_value(slot: Slot, value: Any) -> None:
    """Raise :class:`MalformedSnapshotError` if ``value`` does not fit ``slot``."""
    if slot.kind is SlotKind.SCALAR:
        if not isinstance(value, _SCALAR_TYPES):
            raise MalformedSnapshotError(slot.key, f"expected a scalar, got {type(value).__name__}")
    elif slot.kind is SlotKind.CONFIG:
        if not isinstance(value, dict):
            raise MalformedSnapshotError(slot.key, f"expected an object, got {type(value).__name__}")
    elif slot.kind is SlotKind.COLLECTION:
        if not isinstance(value, list):
            raise MalformedSnapshotError(slot.key, f"expected a list, got {type(value).__name__}")
        for index, record in enumerate(value):
            if not isinstance(record, dict):
                raise MalformedSnapshotError(slot.key, f"record {index} is not an object")
            if not _valid_id(record.get("id")):
                raise MalformedSnapshotError(slot.key, f"record {index} has no usable id")


def is_empty(slot: Slot, value: Any) -> bool:
    """True when ``value`` carries no user data for ``slot``."""
    if value is None or value == slot.default:
        return True
    if isinstance(value, (str, list, dict)) and not value:
        return True
    return False


def merge_records(local: List[dict], incoming: List[dict]) -> List[dict]:
    """Union two record lists by id, local first; local wins on conflict."""
    merged = [copy.deepcopy(r) for r in local]
    seen = {r.get("id") for r in local if isinstance(r, dict)}
    for record in incoming:
        record_id = record.get("id")
        if record_id in seen:
            continue
        seen.add(record_id)
        merged.append(copy.deepcopy(record))
    return merged


def merge_value(slot: Slot, local: Any, incoming: Any) -> Any:
    """Combine the local and incoming value of one slot under the merge policy."""
    if slot.kind is SlotKind.COLLECTION:
        # a corrupt local value (not a list) counts as empty
        local_records = local if isinstance(local, list) else []
        return merge_records(local_records, incoming)
    if is_empty(slot, local):
        return copy.deepcopy(incoming)
    return local
