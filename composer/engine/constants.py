from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Tuple


# --- Versions (core) ---
ENGINE_VERSION = "0.1.0"
PIPELINE_VERSION = "pipeline_compose_v1"

# --- Deck shape ---
MAINBOARD_SIZE = 99
DEFAULT_IDENTITY_NAME = "Trostani, Selesnya's Voice"
DEFAULT_STRATEGY_TEXT = "Value-based midrange strategy"
DEFAULT_FILLER_ATTRIBUTE = "W"

ATTRIBUTE_ORDER: Tuple[str, ...] = ("W", "U", "B", "R", "G")
COLORLESS_ATTRIBUTE = "C"

ATTRIBUTE_TO_FILLER_NAME: Dict[str, str] = {
    "W": "Plains",
    "U": "Island",
    "B": "Swamp",
    "R": "Mountain",
    "G": "Forest",
    "C": "Wastes",
}

BASIC_NAMES = frozenset({"Plains", "Island", "Swamp", "Mountain", "Forest"})
SNOW_BASIC_NAMES = frozenset(
    {
        "Snow-Covered Plains",
        "Snow-Covered Island",
        "Snow-Covered Swamp",
        "Snow-Covered Mountain",
        "Snow-Covered Forest",
    }
)
FILLER_NAMES = frozenset(set(BASIC_NAMES).union(SNOW_BASIC_NAMES).union({"Wastes"}))

# --- Categories ---
CATEGORY_CORE = "core"
CATEGORY_SUPPORT = "support"
CATEGORY_ACCELERATION = "acceleration"
CATEGORY_INTERACTION = "interaction"
CATEGORY_ADVANTAGE = "advantage"
CATEGORY_NON_FILLER_LAND = "non_filler_land"
CATEGORY_FILLER = "filler"
CATEGORY_MUST_INCLUDE = "must_include"

CATEGORY_ORDER: Tuple[str, ...] = (
    CATEGORY_CORE,
    CATEGORY_SUPPORT,
    CATEGORY_ACCELERATION,
    CATEGORY_INTERACTION,
    CATEGORY_ADVANTAGE,
    CATEGORY_NON_FILLER_LAND,
    CATEGORY_FILLER,
)

DEFAULT_CATEGORY_TARGETS: Dict[str, int] = {
    CATEGORY_CORE: 20,
    CATEGORY_SUPPORT: 15,
    CATEGORY_ACCELERATION: 10,
    CATEGORY_INTERACTION: 10,
    CATEGORY_ADVANTAGE: 10,
    CATEGORY_NON_FILLER_LAND: 24,
}

CATEGORY_CONTEXT: Dict[str, str] = {
    CATEGORY_CORE: "Core strategy cards that directly synergize with the commander's abilities",
    CATEGORY_SUPPORT: "Support cards that enhance the deck's strategy",
    CATEGORY_ACCELERATION: "Mana ramp and acceleration",
    CATEGORY_INTERACTION: "Removal, counterspells, and interaction",
    CATEGORY_ADVANTAGE: "Card draw and card advantage engines",
    CATEGORY_NON_FILLER_LAND: "Non-basic lands that support the deck's colors and strategy",
    CATEGORY_FILLER: "Basic lands matching the commander's color identity",
}

LOW_COST_CEILING = 100.0
MID_COST_CEILING = 250.0

LAND_COUNT_MIN = 32
LAND_COUNT_MAX = 40

# --- Bounds ---
MAX_BACKFILL_DEPTH = 3
MAX_REPAIR_ITERATIONS = 2
ORACLE_TIMEOUT_S = 30.0
DEFAULT_ORACLE_MODEL = "gpt-4o-mini"

# --- Oracle purposes ---
PURPOSE_SELECT_STRATEGY = "select-strategy"
PURPOSE_GENERATE_CATEGORY = "generate-category"

# --- Codes ---
ORACLE_UNAVAILABLE = "ORACLE_UNAVAILABLE"
ORACLE_MALFORMED = "ORACLE_MALFORMED"
SHORTFALL_EXHAUSTED = "SHORTFALL_EXHAUSTED"
LOOKUP_NOT_FOUND = "LOOKUP_NOT_FOUND"
CANDIDATE_UNVERIFIED = "CANDIDATE_UNVERIFIED"
CANDIDATE_OFF_IDENTITY = "CANDIDATE_OFF_IDENTITY"
REPAIR_EXHAUSTED = "REPAIR_EXHAUSTED"
STRATEGY_FALLBACK = "STRATEGY_FALLBACK"

# --- Violation kinds ---
VIOLATION_COUNT_MISMATCH = "count_mismatch"
VIOLATION_ILLEGAL_DUPLICATE = "illegal_duplicate"
VIOLATION_IDENTITY_IN_MAINBOARD = "identity_in_mainboard"
VIOLATION_CATEGORY_SKEW = "category_skew"

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

# --- Repair actions ---
ACTION_DROP_DUPLICATE = "drop-duplicate"
ACTION_TRIM_EXCESS = "trim-excess"
ACTION_ADD_FILLER = "add-filler"
ACTION_REMOVE_FILLER = "remove-filler"


class CompositionCancelledError(RuntimeError):
    code = "COMPOSITION_CANCELLED"

    def __init__(self, reason: str, stage: str = ""):
        self.reason = str(reason or "cancelled")
        self.stage = str(stage or "")
        super().__init__(f"{self.code}: {self.reason} (stage={self.stage or 'unknown'})")

    def to_unknown(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": "Composition run was cancelled; no artifact was produced.",
            "reason": self.reason,
            "stage": self.stage,
        }


class OracleMalformedError(ValueError):
    code = ORACLE_MALFORMED

    def __init__(self, purpose: str, detail: str):
        self.purpose = str(purpose or "")
        self.detail = str(detail or "")
        super().__init__(f"{self.code}: purpose={self.purpose} detail={self.detail[:200]}")

    def to_unknown(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "purpose": self.purpose,
            "message": "Oracle response did not match the expected shape.",
            "detail": self.detail[:200],
        }


# --- Runtime configuration ---
_TRUTHY_VALUES = {"1", "true", "yes", "on"}
_FALSY_VALUES = {"0", "false", "no", "off"}


def _env_str(var_name: str) -> str:
    raw = os.getenv(var_name)
    if not isinstance(raw, str):
        return ""
    return raw.strip()


def _env_bool(var_name: str, *, default: bool) -> bool:
    token = _env_str(var_name).lower()
    if token in _TRUTHY_VALUES:
        return True
    if token in _FALSY_VALUES:
        return False
    return bool(default)


def _env_positive_int(var_name: str, *, default: int) -> int:
    token = _env_str(var_name)
    if token == "" or not token.isdigit():
        return int(default)
    value = int(token)
    if value < 1:
        return int(default)
    return value


def _env_nonnegative_int(var_name: str, *, default: int) -> int:
    token = _env_str(var_name)
    if token == "" or not token.isdigit():
        return int(default)
    return int(token)


def _env_positive_float(var_name: str, *, default: float) -> float:
    token = _env_str(var_name)
    if token == "":
        return float(default)
    try:
        value = float(token)
    except ValueError:
        return float(default)
    if value <= 0.0:
        return float(default)
    return value


@dataclass(frozen=True)
class ComposeConfigV1:
    mainboard_size: int = MAINBOARD_SIZE
    max_backfill_depth: int = MAX_BACKFILL_DEPTH
    max_repair_iterations: int = MAX_REPAIR_ITERATIONS
    oracle_timeout_s: float = ORACLE_TIMEOUT_S
    verify_candidates: bool = True
    default_identity_name: str = DEFAULT_IDENTITY_NAME
    default_strategy_text: str = DEFAULT_STRATEGY_TEXT


def resolve_compose_config_v1() -> ComposeConfigV1:
    return ComposeConfigV1(
        mainboard_size=_env_positive_int("DECK_COMPOSER_MAINBOARD_SIZE", default=MAINBOARD_SIZE),
        max_backfill_depth=_env_nonnegative_int("DECK_COMPOSER_MAX_BACKFILL_DEPTH", default=MAX_BACKFILL_DEPTH),
        max_repair_iterations=_env_nonnegative_int(
            "DECK_COMPOSER_MAX_REPAIR_ITERATIONS",
            default=MAX_REPAIR_ITERATIONS,
        ),
        oracle_timeout_s=_env_positive_float("DECK_COMPOSER_ORACLE_TIMEOUT_S", default=ORACLE_TIMEOUT_S),
        verify_candidates=_env_bool("DECK_COMPOSER_VERIFY_CANDIDATES", default=True),
    )


def resolve_oracle_model() -> str:
    model = _env_str("DECK_COMPOSER_ORACLE_MODEL")
    return model if model != "" else DEFAULT_ORACLE_MODEL
