from __future__ import annotations

from typing import Any, Dict, List, Tuple

from composer.engine.constants import (
    ACTION_ADD_FILLER,
    ACTION_REMOVE_FILLER,
    ACTION_TRIM_EXCESS,
    ATTRIBUTE_TO_FILLER_NAME,
    CATEGORY_FILLER,
    DEFAULT_FILLER_ATTRIBUTE,
    MAINBOARD_SIZE,
)
from composer.engine.utils import coerce_positive_int, make_entry, normalize_attribute_set

VERSION = "count_reconciler_v1"


def _repair_action(iteration: int, action: str, name: str, count: int) -> Dict[str, Any]:
    return {
        "iteration": int(iteration),
        "action": action,
        "name": name,
        "count": int(count),
    }


def distribute_filler_v1(deficit: int, attribute_set: Any) -> List[Tuple[str, int]]:
    """
    Split `deficit` filler copies over the attribute set: integer division,
    remainder to the first attributes in W,U,B,R,G order.
    """
    attributes = normalize_attribute_set(attribute_set)
    if len(attributes) == 0:
        attributes = (DEFAULT_FILLER_ATTRIBUTE,)
    if deficit <= 0:
        return []
    base, remainder = divmod(int(deficit), len(attributes))
    out: List[Tuple[str, int]] = []
    for idx, attribute in enumerate(attributes):
        count = base + (1 if idx < remainder else 0)
        if count > 0:
            out.append((ATTRIBUTE_TO_FILLER_NAME[attribute], count))
    return out


def _most_abundant_filler(entries: List[Dict[str, Any]]) -> str:
    counts: Dict[str, int] = {}
    for entry in entries:
        if entry.get("is_filler"):
            counts[entry["name"]] = counts.get(entry["name"], 0) + 1
    if len(counts) == 0:
        return ""
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[0][0]


def reconcile_counts_v1(
    entries: List[Dict[str, Any]],
    *,
    attribute_set: Any,
    mainboard_size: int = MAINBOARD_SIZE,
    iteration: int = 0,
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """
    Force the list to exactly `mainboard_size` entries.

    Shortfall is covered with filler spread over the attribute set. Excess is
    removed filler-first (most abundant filler name, last occurrence), then
    substantive entries from the end. Returns (entries, repair_actions).
    """
    size = coerce_positive_int(mainboard_size, default=MAINBOARD_SIZE)
    out = [dict(entry) for entry in entries]
    actions: List[Dict[str, Any]] = []

    deficit = size - len(out)
    if deficit > 0:
        for filler_name, count in distribute_filler_v1(deficit, attribute_set):
            for _ in range(count):
                out.append(make_entry(filler_name, CATEGORY_FILLER, reasons=["reconciled:shortfall"]))
            actions.append(_repair_action(iteration, ACTION_ADD_FILLER, filler_name, count))
        return out, actions

    excess = len(out) - size
    removed_filler: Dict[str, int] = {}
    while excess > 0:
        filler_name = _most_abundant_filler(out)
        if filler_name == "":
            break
        for idx in range(len(out) - 1, -1, -1):
            if out[idx].get("is_filler") and out[idx]["name"] == filler_name:
                del out[idx]
                break
        removed_filler[filler_name] = removed_filler.get(filler_name, 0) + 1
        excess -= 1
    for filler_name in sorted(removed_filler):
        actions.append(_repair_action(iteration, ACTION_REMOVE_FILLER, filler_name, removed_filler[filler_name]))

    while excess > 0:
        trimmed = out.pop()
        actions.append(_repair_action(iteration, ACTION_TRIM_EXCESS, trimmed["name"], 1))
        excess -= 1

    return out, actions
