from __future__ import annotations

import logging
from typing import Any, List, Tuple

from composer.engine.cancellation_v1 import CancellationToken
from composer.engine.constants import (
    COLORLESS_ATTRIBUTE,
    DEFAULT_FILLER_ATTRIBUTE,
    LOOKUP_NOT_FOUND,
    PURPOSE_SELECT_STRATEGY,
    STRATEGY_FALLBACK,
    ComposeConfigV1,
    OracleMalformedError,
)
from composer.engine.oracle_contract_v1 import (
    build_oracle_request_v1,
    call_lookup_v1,
    call_oracle_v1,
    parse_strategy_descriptor_v1,
)
from composer.engine.request_models_v1 import (
    STRATEGY_SOURCE_FALLBACK,
    STRATEGY_SOURCE_ORACLE,
    CompositionRequestV1,
    StrategyDecision,
    StrategyDescriptorV1,
)
from composer.engine.utils import nonempty_str, normalize_attribute_set

VERSION = "strategy_selector_v1"

logger = logging.getLogger(__name__)


def _strategy_context_text(request: CompositionRequestV1) -> str:
    lines: List[str] = [f"Request: {request.request_text}"]
    identity_name = nonempty_str(request.identity_name)
    if identity_name != "":
        lines.append(f"Commander (fixed): {identity_name}")
    constraints = request.constraints
    if constraints.cost_ceiling is not None:
        lines.append(f"Budget ceiling (USD): {constraints.cost_ceiling:g}")
    if constraints.power_target is not None:
        lines.append(f"Power level target (1-4): {constraints.power_target}")
    if len(constraints.must_include) > 0:
        lines.append("Must include: " + ", ".join(constraints.must_include))
    if len(constraints.must_exclude) > 0:
        lines.append("Must exclude: " + ", ".join(constraints.must_exclude))
    return "\n".join(lines)


def _resolve_attribute_set(
    identity_name: str,
    descriptor: StrategyDescriptorV1 | None,
    *,
    lookup: Any,
    token: CancellationToken,
) -> Tuple[str, Tuple[str, ...], bool, List[str]]:
    """Returns (canonical_identity_name, attribute_set, resolved, codes); unresolved sets hold the filler default."""
    codes: List[str] = []
    if lookup is not None:
        record = call_lookup_v1(lookup, identity_name, token=token)
        if record is not None:
            attribute_set = record["attribute_set"]
            if len(attribute_set) == 0:
                attribute_set = (COLORLESS_ATTRIBUTE,)
            return record["name"], attribute_set, True, codes
        codes.append(LOOKUP_NOT_FOUND)

    if descriptor is not None:
        from_oracle = normalize_attribute_set(descriptor.attribute_set)
        if len(from_oracle) > 0:
            return identity_name, from_oracle, True, codes

    if LOOKUP_NOT_FOUND not in codes:
        codes.append(LOOKUP_NOT_FOUND)
    return identity_name, (DEFAULT_FILLER_ATTRIBUTE,), False, codes


def select_strategy_v1(
    request: CompositionRequestV1,
    *,
    oracle: Any,
    lookup: Any = None,
    token: CancellationToken,
    config: ComposeConfigV1,
) -> StrategyDecision:
    """
    Choose identity, strategy text and attribute set for one run.

    Never raises for oracle or lookup failures; those degrade to the default
    identity/strategy and are recorded in `codes`. Cancellation propagates.
    """
    codes: List[str] = []
    descriptor: StrategyDescriptorV1 | None = None

    oracle_request = build_oracle_request_v1(
        purpose=PURPOSE_SELECT_STRATEGY,
        context_text=_strategy_context_text(request),
        exclude_names=list(request.constraints.must_exclude),
    )
    raw, call_code = call_oracle_v1(
        oracle,
        oracle_request,
        token=token,
        timeout_s=config.oracle_timeout_s,
    )
    if call_code != "":
        codes.append(call_code)
    else:
        try:
            descriptor = parse_strategy_descriptor_v1(raw)
        except OracleMalformedError as exc:
            logger.warning("STRATEGY_ORACLE_MALFORMED detail=%s", exc.detail[:200])
            codes.append(exc.code)

    requested_identity = nonempty_str(request.identity_name)
    if requested_identity != "":
        identity_name = requested_identity
    elif descriptor is not None:
        identity_name = descriptor.identity
    else:
        identity_name = config.default_identity_name

    if descriptor is not None:
        strategy_text = descriptor.strategy_text
        rationale = descriptor.rationale
        source = STRATEGY_SOURCE_ORACLE
    else:
        strategy_text = config.default_strategy_text
        rationale = "Fallback selection: oracle response unavailable or unusable."
        source = STRATEGY_SOURCE_FALLBACK
        codes.append(STRATEGY_FALLBACK)
        logger.warning(
            "STRATEGY_FALLBACK identity=%s codes=%s",
            identity_name,
            ",".join(sorted(set(codes))),
        )

    identity_name, attribute_set, resolved, lookup_codes = _resolve_attribute_set(
        identity_name,
        descriptor,
        lookup=lookup,
        token=token,
    )
    codes.extend(lookup_codes)

    return StrategyDecision(
        identity_name=identity_name,
        attribute_set=attribute_set,
        attribute_set_resolved=resolved,
        strategy_text=strategy_text,
        rationale=rationale,
        source=source,
        codes=tuple(sorted(set(codes))),
    )
