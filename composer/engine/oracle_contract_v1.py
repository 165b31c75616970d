from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from composer.engine.cancellation_v1 import CancellationToken, effective_timeout_s
from composer.engine.constants import (
    ORACLE_UNAVAILABLE,
    PURPOSE_GENERATE_CATEGORY,
    PURPOSE_SELECT_STRATEGY,
    CompositionCancelledError,
    OracleMalformedError,
)
from composer.engine.request_models_v1 import CandidateListV1, StrategyDescriptorV1
from composer.engine.utils import nonempty_str, normalize_attribute_set

VERSION = "oracle_contract_v1"

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_CONTROL_CHARS_RE = re.compile(r"[\u0000-\u0008\u000b\u000c\u000e-\u001f\u007f]")

_LIST_KEYS = ("cards", "names", "deck", "decklist")
_ENTRY_NAME_KEYS = ("name", "cardName", "card")


def build_oracle_request_v1(
    *,
    purpose: str,
    context_text: str,
    exclude_names: List[str] | None = None,
    category: str | None = None,
    desired_count: int | None = None,
) -> Dict[str, Any]:
    request: Dict[str, Any] = {
        "purpose": purpose,
        "exclude_names": list(exclude_names or []),
        "context_text": str(context_text or ""),
    }
    if purpose == PURPOSE_GENERATE_CATEGORY:
        request["category"] = category
        request["desired_count"] = int(desired_count or 0)
    return request


def call_oracle_v1(
    oracle: Any,
    request: Dict[str, Any],
    *,
    token: CancellationToken,
    timeout_s: float,
) -> Tuple[Any, str]:
    """
    Returns (raw_response, code). code is "" on success or ORACLE_UNAVAILABLE
    when the collaborator raised; cancellation is never absorbed.
    """
    stage = f"oracle:{request.get('purpose')}"
    token.raise_if_cancelled(stage)
    try:
        raw = oracle.complete(request, timeout_s=effective_timeout_s(token, timeout_s))
    except CompositionCancelledError:
        raise
    except Exception as exc:
        logger.warning(
            "ORACLE_UNAVAILABLE purpose=%s category=%s error=%s message=%s",
            request.get("purpose"),
            request.get("category"),
            type(exc).__name__,
            str(exc)[:200],
        )
        token.raise_if_cancelled(stage)
        return None, ORACLE_UNAVAILABLE
    token.raise_if_cancelled(stage)
    return raw, ""


def call_lookup_v1(lookup: Any, name: str, *, token: CancellationToken) -> Dict[str, Any] | None:
    """
    Resolve one name through the metadata lookup collaborator.

    Returns {"name": canonical, "attribute_set": tuple} or None when the name is
    unknown, the lookup raised, or the record is unusable.
    """
    token.raise_if_cancelled("lookup")
    try:
        record = lookup.lookup(name)
    except CompositionCancelledError:
        raise
    except Exception as exc:
        logger.warning(
            "LOOKUP_FAILED name=%s error=%s message=%s",
            name,
            type(exc).__name__,
            str(exc)[:200],
        )
        return None
    if not isinstance(record, dict):
        return None
    canonical = nonempty_str(record.get("name"))
    if canonical == "":
        return None
    return {
        "name": canonical,
        "attribute_set": normalize_attribute_set(record.get("attribute_set")),
    }


def _extract_json_span(text: str, opener: str, closer: str) -> Optional[str]:
    start = text.find(opener)
    if start < 0:
        return None
    depth = 0
    in_str = False
    escape = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if in_str:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    # Truncated payload: close whatever is still open.
    return text[start:] + (closer * depth) if depth > 0 else None


def _loads_or_none(text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def parse_response_object(raw: Any) -> Any:
    """Coerce an oracle response into a JSON value; None when nothing usable exists."""
    if isinstance(raw, (dict, list)):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str):
        return None

    text = _CONTROL_CHARS_RE.sub("", raw).strip()
    if text == "":
        return None

    fence = _FENCE_RE.search(text)
    if fence:
        text = fence.group(1).strip()

    parsed = _loads_or_none(text)
    if parsed is not None:
        return parsed

    candidates: List[str] = []
    obj_span = _extract_json_span(text, "{", "}")
    if obj_span:
        candidates.append(obj_span)
    list_span = _extract_json_span(text, "[", "]")
    if list_span:
        candidates.append(list_span)

    for candidate in candidates:
        repaired = _TRAILING_COMMA_RE.sub(r"\1", candidate)
        parsed = _loads_or_none(repaired)
        if parsed is not None:
            return parsed
    return None


def parse_strategy_descriptor_v1(raw: Any) -> StrategyDescriptorV1:
    parsed = parse_response_object(raw)
    if not isinstance(parsed, dict):
        raise OracleMalformedError(PURPOSE_SELECT_STRATEGY, "response is not a JSON object")
    try:
        return StrategyDescriptorV1.model_validate(parsed)
    except ValidationError as exc:
        raise OracleMalformedError(PURPOSE_SELECT_STRATEGY, str(exc)) from exc


def _entry_name(entry: Any) -> str:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        for key in _ENTRY_NAME_KEYS:
            token = nonempty_str(entry.get(key))
            if token != "":
                return token
    return ""


def parse_candidate_names_v1(raw: Any) -> List[str]:
    """
    Ordered candidate names as proposed by the oracle. Duplicates are kept so
    the caller can account for them; blank entries are dropped.
    """
    parsed = parse_response_object(raw)
    entries: Any = None
    if isinstance(parsed, list):
        entries = parsed
    elif isinstance(parsed, dict):
        for key in _LIST_KEYS:
            if isinstance(parsed.get(key), list):
                entries = parsed.get(key)
                break
    if entries is None:
        raise OracleMalformedError(PURPOSE_GENERATE_CATEGORY, "response has no candidate list")

    names = [name for name in (_entry_name(entry) for entry in entries) if nonempty_str(name) != ""]
    try:
        return list(CandidateListV1.model_validate({"names": names}).names)
    except ValidationError as exc:
        raise OracleMalformedError(PURPOSE_GENERATE_CATEGORY, str(exc)) from exc
