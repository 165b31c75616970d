from __future__ import annotations

from typing import Any, Dict, List

from composer.engine.constants import (
    CATEGORY_CORE,
    CATEGORY_FILLER,
    CATEGORY_MUST_INCLUDE,
    CATEGORY_NON_FILLER_LAND,
    LAND_COUNT_MAX,
    LAND_COUNT_MIN,
    MAINBOARD_SIZE,
    SEVERITY_ERROR,
    SEVERITY_WARNING,
    VIOLATION_CATEGORY_SKEW,
    VIOLATION_COUNT_MISMATCH,
    VIOLATION_IDENTITY_IN_MAINBOARD,
    VIOLATION_ILLEGAL_DUPLICATE,
)
from composer.engine.utils import coerce_positive_int, is_filler_name, name_key, nonempty_str

VERSION = "legality_validator_v1"


def _violation(kind: str, severity: str, detail: str, **extra: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {"kind": kind, "severity": severity, "detail": detail}
    out.update(extra)
    return out


def _entry_name(item: Any) -> str:
    if isinstance(item, dict):
        return nonempty_str(item.get("name"))
    return nonempty_str(item)


def _entry_category(item: Any) -> str:
    if isinstance(item, dict):
        return nonempty_str(item.get("category"))
    return ""


def _violation_sort_key(violation: Dict[str, Any]) -> tuple:
    return (
        str(violation.get("severity") or ""),
        str(violation.get("kind") or ""),
        str(violation.get("name") or violation.get("category") or ""),
        str(violation.get("detail") or ""),
    )


def validate_composition_v1(
    mainboard: List[Any],
    *,
    identity_name: str,
    mainboard_size: int = MAINBOARD_SIZE,
    budget: Dict[str, int] | None = None,
) -> Dict[str, Any]:
    """
    Structural report over a mainboard given as names or entry dicts.

    Errors: count mismatch, non-filler duplicates, identity present. Land and
    category-shortfall skews are warnings and never affect `is_valid`.
    """
    size = coerce_positive_int(mainboard_size, default=MAINBOARD_SIZE)
    names = [_entry_name(item) for item in mainboard]
    violations: List[Dict[str, Any]] = []

    if len(names) != size:
        violations.append(
            _violation(
                VIOLATION_COUNT_MISMATCH,
                SEVERITY_ERROR,
                f"Deck has {len(names)} cards, expected {size}",
                expected=size,
                actual=len(names),
            )
        )

    display_by_key: Dict[str, str] = {}
    counts_by_key: Dict[str, int] = {}
    for name in names:
        if name == "" or is_filler_name(name):
            continue
        key = name_key(name)
        display_by_key.setdefault(key, name)
        counts_by_key[key] = counts_by_key.get(key, 0) + 1
    for key, count in counts_by_key.items():
        if count > 1:
            display = display_by_key[key]
            violations.append(
                _violation(
                    VIOLATION_ILLEGAL_DUPLICATE,
                    SEVERITY_ERROR,
                    f"Illegal duplicate: {display} ({count} copies)",
                    name=display,
                    count=count,
                )
            )

    identity_key = name_key(identity_name)
    identity_hits = len([name for name in names if identity_key != "" and name_key(name) == identity_key])
    if identity_hits > 0:
        violations.append(
            _violation(
                VIOLATION_IDENTITY_IN_MAINBOARD,
                SEVERITY_ERROR,
                f"Commander {nonempty_str(identity_name)} appears in the mainboard ({identity_hits} copies)",
                name=nonempty_str(identity_name),
                count=identity_hits,
            )
        )

    filler_count = len([name for name in names if is_filler_name(name)])
    category_counts: Dict[str, int] = {}
    for item in mainboard:
        category = _entry_category(item)
        # Seeded must-include items are budgeted as core.
        if category == CATEGORY_MUST_INCLUDE:
            category = CATEGORY_CORE
        if category != "":
            category_counts[category] = category_counts.get(category, 0) + 1
    land_count = filler_count + category_counts.get(CATEGORY_NON_FILLER_LAND, 0)

    if land_count < LAND_COUNT_MIN:
        violations.append(
            _violation(
                VIOLATION_CATEGORY_SKEW,
                SEVERITY_WARNING,
                f"Low land count: {land_count} (recommended {LAND_COUNT_MIN}-{LAND_COUNT_MAX})",
                category="lands",
                count=land_count,
            )
        )
    elif land_count > LAND_COUNT_MAX:
        violations.append(
            _violation(
                VIOLATION_CATEGORY_SKEW,
                SEVERITY_WARNING,
                f"High land count: {land_count} (recommended {LAND_COUNT_MIN}-{LAND_COUNT_MAX})",
                category="lands",
                count=land_count,
            )
        )

    if isinstance(budget, dict):
        for category, target in budget.items():
            if category == CATEGORY_FILLER or not isinstance(target, int) or target <= 0:
                continue
            reached = category_counts.get(category, 0)
            if reached * 2 < target:
                violations.append(
                    _violation(
                        VIOLATION_CATEGORY_SKEW,
                        SEVERITY_WARNING,
                        f"Category {category} reached {reached} of {target}",
                        category=category,
                        count=reached,
                    )
                )

    violations = sorted(violations, key=_violation_sort_key)
    is_valid = not any(v["severity"] == SEVERITY_ERROR for v in violations)

    return {
        "version": VERSION,
        "is_valid": is_valid,
        "violations": violations,
        "counts": {
            "total": len(names),
            "filler": filler_count,
            "lands": land_count,
            "unique_non_filler": len(counts_by_key),
        },
    }


def error_kinds_v1(report: Dict[str, Any]) -> List[str]:
    violations = report.get("violations") if isinstance(report, dict) else None
    if not isinstance(violations, list):
        return []
    return sorted(
        {
            str(v.get("kind"))
            for v in violations
            if isinstance(v, dict) and v.get("severity") == SEVERITY_ERROR
        }
    )
