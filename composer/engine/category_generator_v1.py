from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, FrozenSet, Iterable, List, Tuple

from composer.engine.bounded_retry_v1 import run_bounded_v1
from composer.engine.cancellation_v1 import CancellationToken
from composer.engine.constants import (
    ATTRIBUTE_TO_FILLER_NAME,
    BASIC_NAMES,
    CANDIDATE_OFF_IDENTITY,
    CANDIDATE_UNVERIFIED,
    CATEGORY_CONTEXT,
    CATEGORY_CORE,
    CATEGORY_FILLER,
    CATEGORY_MUST_INCLUDE,
    CATEGORY_ORDER,
    PURPOSE_GENERATE_CATEGORY,
    SHORTFALL_EXHAUSTED,
    ComposeConfigV1,
    OracleMalformedError,
)
from composer.engine.oracle_contract_v1 import (
    build_oracle_request_v1,
    call_lookup_v1,
    call_oracle_v1,
    parse_candidate_names_v1,
)
from composer.engine.request_models_v1 import CompositionConstraintsV1, StrategyDecision
from composer.engine.utils import (
    canonical_filler_name,
    coerce_nonnegative_int,
    make_entry,
    name_key,
    nonempty_str,
    sorted_unique,
    stable_unique_preserve_order,
)

VERSION = "category_generator_v1"

logger = logging.getLogger(__name__)


def build_exclusion_keys_v1(
    entries: List[Dict[str, Any]],
    *,
    identity_name: str,
    must_exclude: Iterable[str] = (),
) -> FrozenSet[str]:
    keys = {name_key(entry.get("name")) for entry in entries if not entry.get("is_filler")}
    keys.add(name_key(identity_name))
    keys.update(name_key(name) for name in must_exclude)
    keys.discard("")
    return frozenset(keys)


def _exclusion_names(entries: List[Dict[str, Any]], identity_name: str, must_exclude: Iterable[str]) -> List[str]:
    return stable_unique_preserve_order(
        [identity_name] + [e["name"] for e in entries if not e.get("is_filler")] + list(must_exclude)
    )


def _category_context_text(category: str, decision: StrategyDecision, constraints: CompositionConstraintsV1) -> str:
    lines = [
        f"Category: {category}",
        f"Category purpose: {CATEGORY_CONTEXT.get(category, category)}",
        f"Commander: {decision.identity_name}",
        f"Strategy: {decision.strategy_text}",
        "Color identity: " + ("".join(decision.attribute_set) or "colorless"),
    ]
    if constraints.cost_ceiling is not None:
        lines.append(f"Budget ceiling (USD): {constraints.cost_ceiling:g}")
    if constraints.power_target is not None:
        lines.append(f"Power level target (1-4): {constraints.power_target}")
    return "\n".join(lines)


@dataclass(frozen=True)
class _PoolState:
    accepted: Tuple[Dict[str, Any], ...] = ()
    seen_keys: FrozenSet[str] = frozenset()
    codes: Tuple[str, ...] = ()
    rounds: int = 0
    filtered: int = 0


def _identity_filler_names(decision: StrategyDecision) -> FrozenSet[str]:
    """Basics (and their snow versions) producing the identity's attributes."""
    names = set()
    for attribute in decision.attribute_set:
        basic = ATTRIBUTE_TO_FILLER_NAME.get(attribute)
        if basic is None:
            continue
        names.add(basic)
        if basic in BASIC_NAMES:
            names.add(f"Snow-Covered {basic}")
    return frozenset(names)


def _verify_candidate(
    name: str,
    *,
    decision: StrategyDecision,
    lookup: Any,
    token: CancellationToken,
) -> Tuple[str, str]:
    """Returns (canonical_name, rejection_code); rejection_code is "" when accepted."""
    record = call_lookup_v1(lookup, name, token=token)
    if record is None:
        return name, CANDIDATE_UNVERIFIED
    if decision.attribute_set_resolved and not set(record["attribute_set"]).issubset(set(decision.attribute_set)):
        return record["name"], CANDIDATE_OFF_IDENTITY
    return record["name"], ""


def _screen_candidates(
    names: List[str],
    state: _PoolState,
    *,
    category: str,
    depth: int,
    limit: int,
    decision: StrategyDecision,
    lookup: Any,
    token: CancellationToken,
    verify: bool,
) -> _PoolState:
    accepted = list(state.accepted)
    seen_keys = set(state.seen_keys)
    codes = list(state.codes)
    filtered = state.filtered
    reason = f"generated:{category}:depth{depth}"
    allowed_filler = _identity_filler_names(decision)

    for raw_name in names:
        if len(accepted) >= limit:
            break
        clean = nonempty_str(raw_name)
        if clean == "":
            filtered += 1
            continue

        filler = canonical_filler_name(clean)
        if filler != "":
            if decision.attribute_set_resolved and filler not in allowed_filler:
                logger.info("CANDIDATE_REJECTED category=%s name=%s code=%s", category, filler, CANDIDATE_OFF_IDENTITY)
                codes.append(CANDIDATE_OFF_IDENTITY)
                filtered += 1
                continue
            accepted.append(make_entry(filler, category, reasons=[reason]))
            continue
        if category == CATEGORY_FILLER:
            filtered += 1
            continue
        if clean.casefold() in seen_keys:
            filtered += 1
            continue

        canonical = clean
        if verify and lookup is not None:
            canonical, rejection = _verify_candidate(clean, decision=decision, lookup=lookup, token=token)
            if rejection != "":
                logger.info("CANDIDATE_REJECTED category=%s name=%s code=%s", category, clean, rejection)
                codes.append(rejection)
                seen_keys.add(clean.casefold())
                filtered += 1
                continue
            if canonical.casefold() in seen_keys:
                seen_keys.add(clean.casefold())
                filtered += 1
                continue

        seen_keys.add(clean.casefold())
        seen_keys.add(canonical.casefold())
        accepted.append(make_entry(canonical, category, reasons=[reason]))

    return replace(
        state,
        accepted=tuple(accepted),
        seen_keys=frozenset(seen_keys),
        codes=tuple(codes),
        filtered=filtered,
    )


def generate_category_v1(
    category: str,
    target: int,
    *,
    decision: StrategyDecision,
    existing: List[Dict[str, Any]],
    constraints: CompositionConstraintsV1,
    oracle: Any,
    lookup: Any = None,
    token: CancellationToken,
    config: ComposeConfigV1,
) -> Dict[str, Any]:
    """
    Fill one category from the oracle, backfilling shortfalls up to
    config.max_backfill_depth extra rounds. Returns the accepted entries plus
    the codes raised; a short category is reported, never raised.
    """
    target = coerce_nonnegative_int(target, default=0)
    context_text = _category_context_text(category, decision, constraints)
    base_exclusion = build_exclusion_keys_v1(
        existing,
        identity_name=decision.identity_name,
        must_exclude=constraints.must_exclude,
    )
    base_exclusion_names = _exclusion_names(existing, decision.identity_name, constraints.must_exclude)
    max_rounds = 1 if category == CATEGORY_FILLER else int(config.max_backfill_depth) + 1

    def _round(state: _PoolState, depth: int) -> _PoolState:
        remaining = target - len(state.accepted)
        exclude_names = base_exclusion_names + [e["name"] for e in state.accepted if not e["is_filler"]]
        request = build_oracle_request_v1(
            purpose=PURPOSE_GENERATE_CATEGORY,
            category=category,
            desired_count=remaining,
            exclude_names=exclude_names,
            context_text=context_text,
        )
        raw, call_code = call_oracle_v1(oracle, request, token=token, timeout_s=config.oracle_timeout_s)
        spent = replace(state, rounds=state.rounds + 1)
        if call_code != "":
            return replace(spent, codes=spent.codes + (call_code,))
        try:
            names = parse_candidate_names_v1(raw)
        except OracleMalformedError as exc:
            logger.warning("CATEGORY_ORACLE_MALFORMED category=%s depth=%s detail=%s", category, depth, exc.detail[:200])
            return replace(spent, codes=spent.codes + (exc.code,))
        logger.debug("CATEGORY_POOL category=%s depth=%s requested=%s received=%s", category, depth, remaining, len(names))
        return _screen_candidates(
            names,
            spent,
            category=category,
            depth=depth,
            limit=target,
            decision=decision,
            lookup=lookup,
            token=token,
            verify=bool(config.verify_candidates),
        )

    run = run_bounded_v1(
        _PoolState(seen_keys=base_exclusion),
        step=_round,
        is_done=lambda state: len(state.accepted) >= target,
        max_iterations=max_rounds,
    )
    state = run.state
    codes = list(state.codes)
    if not run.converged:
        codes.append(SHORTFALL_EXHAUSTED)
        logger.warning(
            "SHORTFALL_EXHAUSTED category=%s target=%s accepted=%s rounds=%s",
            category,
            target,
            len(state.accepted),
            state.rounds,
        )

    return {
        "category": category,
        "target": target,
        "entries": list(state.accepted),
        "accepted": len(state.accepted),
        "filtered": state.filtered,
        "rounds": state.rounds,
        "codes": sorted_unique(codes),
    }


def seed_must_include_v1(
    names: Iterable[str],
    *,
    decision: StrategyDecision,
    constraints: CompositionConstraintsV1,
    lookup: Any = None,
    token: CancellationToken,
    config: ComposeConfigV1,
) -> Dict[str, Any]:
    exclusion = build_exclusion_keys_v1(
        [],
        identity_name=decision.identity_name,
        must_exclude=constraints.must_exclude,
    )
    state = _screen_candidates(
        list(names),
        _PoolState(seen_keys=exclusion),
        category=CATEGORY_MUST_INCLUDE,
        depth=0,
        limit=int(config.mainboard_size),
        decision=decision,
        lookup=lookup,
        token=token,
        verify=bool(config.verify_candidates),
    )
    entries = [dict(entry, reasons_v1=["must_include"]) for entry in state.accepted]
    return {
        "category": CATEGORY_MUST_INCLUDE,
        "target": len(entries),
        "entries": entries,
        "accepted": len(entries),
        "filtered": state.filtered,
        "rounds": 0,
        "codes": sorted_unique(state.codes),
    }


def generate_all_categories_v1(
    budget: Dict[str, int],
    *,
    decision: StrategyDecision,
    constraints: CompositionConstraintsV1,
    oracle: Any,
    lookup: Any = None,
    token: CancellationToken,
    config: ComposeConfigV1,
) -> Dict[str, Any]:
    """Seed must-include items, then fill every category in fixed order."""
    entries: List[Dict[str, Any]] = []
    codes: List[str] = []
    categories: List[Dict[str, Any]] = []

    if len(constraints.must_include) > 0:
        seeded = seed_must_include_v1(
            constraints.must_include,
            decision=decision,
            constraints=constraints,
            lookup=lookup,
            token=token,
            config=config,
        )
        entries.extend(seeded["entries"])
        codes.extend(seeded["codes"])
        categories.append({k: v for k, v in seeded.items() if k != "entries"})

    core_offset = len([entry for entry in entries if not entry["is_filler"]])

    for category in CATEGORY_ORDER:
        token.raise_if_cancelled(f"generate:{category}")
        target = coerce_nonnegative_int(budget.get(category), default=0)
        if category == CATEGORY_CORE:
            target = max(target - core_offset, 0)
        result = generate_category_v1(
            category,
            target,
            decision=decision,
            existing=entries,
            constraints=constraints,
            oracle=oracle,
            lookup=lookup,
            token=token,
            config=config,
        )
        entries.extend(result["entries"])
        codes.extend(result["codes"])
        categories.append({k: v for k, v in result.items() if k != "entries"})

    return {
        "entries": entries,
        "codes": sorted_unique(codes),
        "categories_v1": categories,
    }
