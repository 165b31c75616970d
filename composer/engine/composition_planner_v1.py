from __future__ import annotations

import logging
import re
from typing import Dict, List, Tuple

from composer.engine.constants import (
    CATEGORY_ACCELERATION,
    CATEGORY_CORE,
    CATEGORY_FILLER,
    CATEGORY_INTERACTION,
    CATEGORY_ORDER,
    DEFAULT_CATEGORY_TARGETS,
    LOW_COST_CEILING,
    MAINBOARD_SIZE,
    MID_COST_CEILING,
)
from composer.engine.request_models_v1 import CompositionConstraintsV1
from composer.engine.utils import coerce_positive_int, nonempty_str

VERSION = "composition_planner_v1"

logger = logging.getLogger(__name__)

FIXED_CATEGORIES: Tuple[str, ...] = tuple(c for c in CATEGORY_ORDER if c != CATEGORY_FILLER)

# (keyword, category, delta); applied in this order.
STRATEGY_KEYWORD_HOOKS: Tuple[Tuple[str, str, int], ...] = (
    ("control", CATEGORY_INTERACTION, 2),
    ("combo", CATEGORY_CORE, 2),
    ("aggro", CATEGORY_ACCELERATION, -2),
    ("tribal", CATEGORY_CORE, 3),
)


def _keyword_present(text: str, keyword: str) -> bool:
    return re.search(rf"\b{re.escape(keyword)}\b", text, flags=re.IGNORECASE) is not None


def _shift(targets: Dict[str, int], category: str, delta: int, hooks: List[str], label: str) -> None:
    targets[category] = max(int(targets.get(category, 0)) + int(delta), 0)
    hooks.append(f"{label}:{category}{delta:+d}")


def plan_composition_v1(
    strategy_text: str,
    constraints: CompositionConstraintsV1 | None = None,
    *,
    mainboard_size: int = MAINBOARD_SIZE,
) -> Dict[str, int]:
    """
    Category budget for one run, keyed in fixed category order.

    Every hook adjusts a fixed category; filler absorbs the difference so the
    budget always sums to `mainboard_size` with filler >= 0.
    """
    size = coerce_positive_int(mainboard_size, default=MAINBOARD_SIZE)
    constraints = constraints if constraints is not None else CompositionConstraintsV1()

    targets: Dict[str, int] = {category: int(DEFAULT_CATEGORY_TARGETS[category]) for category in FIXED_CATEGORIES}
    hooks: List[str] = []

    cost_ceiling = constraints.cost_ceiling
    if cost_ceiling is not None:
        if float(cost_ceiling) < LOW_COST_CEILING:
            _shift(targets, CATEGORY_CORE, -4, hooks, "cost")
            _shift(targets, CATEGORY_ACCELERATION, -2, hooks, "cost")
        elif float(cost_ceiling) < MID_COST_CEILING:
            _shift(targets, CATEGORY_CORE, -2, hooks, "cost")

    power_target = constraints.power_target
    if power_target is not None:
        if int(power_target) >= 4:
            _shift(targets, CATEGORY_INTERACTION, 2, hooks, "power")
            _shift(targets, CATEGORY_ACCELERATION, 2, hooks, "power")
        elif int(power_target) <= 1:
            _shift(targets, CATEGORY_INTERACTION, -2, hooks, "power")

    text = nonempty_str(strategy_text)
    for keyword, category, delta in STRATEGY_KEYWORD_HOOKS:
        if _keyword_present(text, keyword):
            _shift(targets, category, delta, hooks, keyword)

    overflow = sum(targets.values()) - size
    for category in reversed(FIXED_CATEGORIES):
        if overflow <= 0:
            break
        cut = min(targets[category], overflow)
        targets[category] -= cut
        overflow -= cut

    budget: Dict[str, int] = {category: targets[category] for category in FIXED_CATEGORIES}
    budget[CATEGORY_FILLER] = size - sum(targets.values())

    logger.debug("PLAN_BUDGET size=%s hooks=%s filler=%s", size, ",".join(hooks) or "none", budget[CATEGORY_FILLER])
    return budget
