from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from composer.engine.bounded_retry_v1 import run_bounded_v1
from composer.engine.cancellation_v1 import CancellationToken
from composer.engine.constants import (
    ACTION_DROP_DUPLICATE,
    MAINBOARD_SIZE,
    MAX_REPAIR_ITERATIONS,
    REPAIR_EXHAUSTED,
    VIOLATION_IDENTITY_IN_MAINBOARD,
    VIOLATION_ILLEGAL_DUPLICATE,
)
from composer.engine.count_reconciler_v1 import reconcile_counts_v1
from composer.engine.legality_validator_v1 import error_kinds_v1, validate_composition_v1
from composer.engine.utils import coerce_nonnegative_int, is_filler_name, name_key

VERSION = "repair_engine_v1"

logger = logging.getLogger(__name__)

STATUS_OK = "OK"
STATUS_DEGRADED = "DEGRADED"


@dataclass(frozen=True)
class _RepairState:
    entries: Tuple[Dict[str, Any], ...]
    report: Dict[str, Any]
    actions: Tuple[Dict[str, Any], ...] = ()


def drop_duplicates_v1(
    entries: List[Dict[str, Any]],
    *,
    identity_name: str,
    iteration: int = 0,
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Keep the first occurrence of each non-filler name; drop later copies and the identity."""
    identity_key = name_key(identity_name)
    seen: set[str] = set()
    kept: List[Dict[str, Any]] = []
    dropped: Dict[str, int] = {}
    for entry in entries:
        if is_filler_name(entry.get("name")):
            kept.append(entry)
            continue
        key = name_key(entry.get("name"))
        if key == identity_key or key in seen:
            dropped[entry["name"]] = dropped.get(entry["name"], 0) + 1
            continue
        seen.add(key)
        kept.append(entry)
    actions = [
        {"iteration": int(iteration), "action": ACTION_DROP_DUPLICATE, "name": name, "count": dropped[name]}
        for name in sorted(dropped)
    ]
    return kept, actions


def repair_composition_v1(
    entries: List[Dict[str, Any]],
    report: Dict[str, Any],
    *,
    identity_name: str,
    attribute_set: Any,
    token: CancellationToken,
    mainboard_size: int = MAINBOARD_SIZE,
    max_iterations: int = MAX_REPAIR_ITERATIONS,
    budget: Dict[str, int] | None = None,
) -> Dict[str, Any]:
    """
    Validate/repair loop bounded by `max_iterations`.

    A report that is still invalid after the last iteration yields the
    best-effort entries with status DEGRADED and code REPAIR_EXHAUSTED.
    """
    ceiling = coerce_nonnegative_int(max_iterations, default=MAX_REPAIR_ITERATIONS)

    def _step(state: _RepairState, idx: int) -> _RepairState:
        token.raise_if_cancelled("repair")
        iteration = idx + 1
        kinds = error_kinds_v1(state.report)
        current = [dict(entry) for entry in state.entries]
        actions: List[Dict[str, Any]] = []

        if VIOLATION_ILLEGAL_DUPLICATE in kinds or VIOLATION_IDENTITY_IN_MAINBOARD in kinds:
            current, dropped = drop_duplicates_v1(current, identity_name=identity_name, iteration=iteration)
            actions.extend(dropped)

        current, reconciled = reconcile_counts_v1(
            current,
            attribute_set=attribute_set,
            mainboard_size=mainboard_size,
            iteration=iteration,
        )
        actions.extend(reconciled)

        next_report = validate_composition_v1(
            current,
            identity_name=identity_name,
            mainboard_size=mainboard_size,
            budget=budget,
        )
        logger.info(
            "REPAIR_ITERATION iteration=%s errors_before=%s actions=%s is_valid=%s",
            iteration,
            ",".join(kinds) or "none",
            len(actions),
            next_report["is_valid"],
        )
        return _RepairState(entries=tuple(current), report=next_report, actions=state.actions + tuple(actions))

    run = run_bounded_v1(
        _RepairState(entries=tuple(entries), report=report),
        step=_step,
        is_done=lambda state: bool(state.report.get("is_valid")),
        max_iterations=ceiling,
    )

    codes: List[str] = []
    status = STATUS_OK
    if not run.converged:
        status = STATUS_DEGRADED
        codes.append(REPAIR_EXHAUSTED)
        logger.warning(
            "REPAIR_EXHAUSTED iterations=%s errors=%s",
            run.iterations,
            ",".join(error_kinds_v1(run.state.report)),
        )

    return {
        "version": VERSION,
        "status": status,
        "entries": list(run.state.entries),
        "report": run.state.report,
        "repair_log_v1": list(run.state.actions),
        "iterations": run.iterations,
        "codes": codes,
    }
