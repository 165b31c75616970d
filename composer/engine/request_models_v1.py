from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

VERSION = "request_models_v1"

STRATEGY_SOURCE_ORACLE = "ORACLE"
STRATEGY_SOURCE_FALLBACK = "FALLBACK"


class CompositionConstraintsV1(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)

    cost_ceiling: Optional[float] = Field(default=None, ge=0, description="Budget ceiling in USD")
    power_target: Optional[int] = Field(default=None, ge=1, le=4, description="Target power level 1-4")
    must_include: List[str] = Field(default_factory=list)
    must_exclude: List[str] = Field(default_factory=list)


class CompositionRequestV1(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)

    request_text: str = Field(..., description="Free-text deck intent")
    identity_name: Optional[str] = Field(default=None, description="Known commander name, if any")
    constraints: CompositionConstraintsV1 = Field(default_factory=CompositionConstraintsV1)


class StrategyDescriptorV1(BaseModel):
    """Shape the oracle must return for purpose=select-strategy."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    identity: str = Field(..., min_length=1, validation_alias=AliasChoices("identity", "commander"))
    strategy_text: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("strategyText", "strategy_text", "strategy"),
    )
    attribute_set: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("attributeSet", "attribute_set", "colorIdentity", "color_identity"),
    )
    rationale: str = Field(default="", validation_alias=AliasChoices("rationale", "reasoning"))


class CandidateListV1(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    names: List[str] = Field(default_factory=list)


@dataclass(frozen=True)
class StrategyDecision:
    identity_name: str
    attribute_set: Tuple[str, ...]
    strategy_text: str
    rationale: str = ""
    source: str = STRATEGY_SOURCE_ORACLE
    codes: Tuple[str, ...] = field(default_factory=tuple)
    attribute_set_resolved: bool = True

    def to_payload(self) -> Dict[str, Any]:
        return {
            "identity_name": self.identity_name,
            "attribute_set": list(self.attribute_set),
            "strategy_text": self.strategy_text,
            "rationale": self.rationale,
            "source": self.source,
            "codes": sorted(set(self.codes)),
        }
