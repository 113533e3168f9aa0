"""Reconcile generated field values with user-authored ones."""

import json
from typing import Any, Protocol


class FieldMergePolicy(Protocol):
    """Decides which of two values survives for each generated field."""

    def merge(self, existing: dict[str, Any], generated: dict[str, Any]) -> dict[str, Any]: ...


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return ",".join(_as_text(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def is_empty_value(value: Any) -> bool:
    """None, blank strings and empty collections count as empty. 0 and False do not."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


class LengthHeuristicMergePolicy:
    """
    Keep user content unless the generated value is clearly an enhancement.

    For each generated key:
      - existing empty -> take generated
      - generated text longer than ``enhancement_ratio`` x existing text -> take generated
      - otherwise keep existing
    Keys that only exist on the user side are always preserved.
    """

    def __init__(self, enhancement_ratio: float = 1.5):
        self.enhancement_ratio = enhancement_ratio

    def merge(self, existing: dict[str, Any], generated: dict[str, Any]) -> dict[str, Any]:
        merged = dict(existing)
        for key, value in generated.items():
            current = existing.get(key)
            if is_empty_value(current):
                merged[key] = value
            elif len(_as_text(value)) > len(_as_text(current)) * self.enhancement_ratio:
                merged[key] = value
        return merged
