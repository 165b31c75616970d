from __future__ import annotations

import logging
from typing import Any, Dict, List

from composer.engine.cancellation_v1 import CancellationToken
from composer.engine.category_generator_v1 import generate_all_categories_v1
from composer.engine.composition_planner_v1 import plan_composition_v1
from composer.engine.constants import (
    CATEGORY_MUST_INCLUDE,
    CATEGORY_ORDER,
    ENGINE_VERSION,
    PIPELINE_VERSION,
    ComposeConfigV1,
    resolve_compose_config_v1,
)
from composer.engine.count_reconciler_v1 import reconcile_counts_v1
from composer.engine.legality_validator_v1 import validate_composition_v1
from composer.engine.repair_engine_v1 import STATUS_OK, repair_composition_v1
from composer.engine.request_models_v1 import CompositionRequestV1
from composer.engine.strategy_selector_v1 import select_strategy_v1
from composer.engine.utils import sha256_hex, sorted_unique, stable_json_dumps

logger = logging.getLogger(__name__)

STAGE_STRATEGY_SELECTION = "StrategySelection"
STAGE_PLANNING = "Planning"
STAGE_CATEGORY_GENERATION = "CategoryGeneration"
STAGE_RECONCILIATION = "Reconciliation"
STAGE_VALIDATION = "Validation"
STAGE_REPAIR = "Repair"
STAGE_DONE_VALID = "Done:valid"
STAGE_DONE_DEGRADED = "Done:degraded"


def _coerce_request(request: Any) -> CompositionRequestV1:
    if isinstance(request, CompositionRequestV1):
        return request
    if isinstance(request, str):
        return CompositionRequestV1(request_text=request)
    return CompositionRequestV1.model_validate(request)


def _composition_counts(entries: List[Dict[str, Any]]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for entry in entries:
        category = str(entry.get("category") or "")
        counts[category] = counts.get(category, 0) + 1
    ordered: Dict[str, int] = {}
    if counts.get(CATEGORY_MUST_INCLUDE, 0) > 0:
        ordered[CATEGORY_MUST_INCLUDE] = counts[CATEGORY_MUST_INCLUDE]
    for category in CATEGORY_ORDER:
        ordered[category] = counts.get(category, 0)
    return ordered


def composition_hash_v1(identity_name: str, mainboard: List[str]) -> str:
    return sha256_hex(stable_json_dumps({"identity_name": identity_name, "mainboard": list(mainboard)}))


def compose(
    request: Any,
    *,
    oracle: Any,
    lookup: Any = None,
    token: CancellationToken | None = None,
    config: ComposeConfigV1 | None = None,
) -> Dict[str, Any]:
    """
    Compose one identity plus an exactly-sized mainboard from free-text intent.

    Oracle and lookup failures degrade the result and are reported in `codes`;
    the only exception raised for a well-formed request is
    CompositionCancelledError when `token` is cancelled or its deadline passes.
    """
    request_model = _coerce_request(request)
    token = token if token is not None else CancellationToken()
    config = config if config is not None else resolve_compose_config_v1()
    size = int(config.mainboard_size)
    stages: List[str] = []

    logger.info(
        "COMPOSE_START size=%s identity=%s verify=%s",
        size,
        request_model.identity_name or "-",
        bool(config.verify_candidates and lookup is not None),
    )

    token.raise_if_cancelled(STAGE_STRATEGY_SELECTION)
    stages.append(STAGE_STRATEGY_SELECTION)
    decision = select_strategy_v1(request_model, oracle=oracle, lookup=lookup, token=token, config=config)

    token.raise_if_cancelled(STAGE_PLANNING)
    stages.append(STAGE_PLANNING)
    budget = plan_composition_v1(decision.strategy_text, request_model.constraints, mainboard_size=size)

    token.raise_if_cancelled(STAGE_CATEGORY_GENERATION)
    stages.extend(f"{STAGE_CATEGORY_GENERATION}:{category}" for category in CATEGORY_ORDER)
    generated = generate_all_categories_v1(
        budget,
        decision=decision,
        constraints=request_model.constraints,
        oracle=oracle,
        lookup=lookup,
        token=token,
        config=config,
    )

    token.raise_if_cancelled(STAGE_RECONCILIATION)
    stages.append(STAGE_RECONCILIATION)
    entries, reconcile_actions = reconcile_counts_v1(
        generated["entries"],
        attribute_set=decision.attribute_set,
        mainboard_size=size,
        iteration=0,
    )

    stages.append(STAGE_VALIDATION)
    report = validate_composition_v1(
        entries,
        identity_name=decision.identity_name,
        mainboard_size=size,
        budget=budget,
    )

    repaired = repair_composition_v1(
        entries,
        report,
        identity_name=decision.identity_name,
        attribute_set=decision.attribute_set,
        token=token,
        mainboard_size=size,
        max_iterations=config.max_repair_iterations,
        budget=budget,
    )
    for _ in range(int(repaired["iterations"])):
        stages.extend([STAGE_REPAIR, STAGE_VALIDATION])

    token.raise_if_cancelled("finalize")
    status = repaired["status"]
    stages.append(STAGE_DONE_VALID if status == STATUS_OK else STAGE_DONE_DEGRADED)

    final_entries = repaired["entries"]
    mainboard = [entry["name"] for entry in final_entries]
    codes = sorted_unique(list(decision.codes) + list(generated["codes"]) + list(repaired["codes"]))

    logger.info(
        "COMPOSE_DONE status=%s size=%s repair_iterations=%s codes=%s",
        status,
        len(mainboard),
        repaired["iterations"],
        ",".join(codes) or "none",
    )

    return {
        "version": PIPELINE_VERSION,
        "engine_version": ENGINE_VERSION,
        "status": status,
        "codes": codes,
        "identity_name": decision.identity_name,
        "attribute_set": list(decision.attribute_set),
        "mainboard": mainboard,
        "mainboard_entries_v1": final_entries,
        "strategy_text": decision.strategy_text,
        "rationale": decision.rationale,
        "strategy_v1": decision.to_payload(),
        "budget_v1": budget,
        "composition_v1": _composition_counts(final_entries),
        "generation_v1": generated["categories_v1"],
        "validation": repaired["report"],
        "repair_log_v1": list(reconcile_actions) + list(repaired["repair_log_v1"]),
        "stages_v1": stages,
        "composition_hash_v1": composition_hash_v1(decision.identity_name, mainboard),
    }
