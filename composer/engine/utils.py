import hashlib
import json
from typing import Any, Dict, Iterable, List, Tuple

from composer.engine.constants import ATTRIBUTE_ORDER, COLORLESS_ATTRIBUTE, FILLER_NAMES


def stable_json_dumps(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def sha256_hex(value: str | bytes) -> str:
    if isinstance(value, bytes):
        data = value
    else:
        data = str(value).encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def sorted_unique(seq: Any) -> List[Any]:
    return sorted(set(x for x in seq if x is not None))


def nonempty_str(value: Any) -> str:
    if isinstance(value, str):
        token = value.strip()
        if token != "":
            return token
    return ""


def name_key(value: Any) -> str:
    return nonempty_str(value).casefold()


def is_filler_name(name: Any) -> bool:
    return nonempty_str(name) in FILLER_NAMES


def stable_unique_preserve_order(values: Iterable[Any]) -> List[str]:
    out: List[str] = []
    seen: set[str] = set()
    for value in values:
        clean = nonempty_str(value)
        if clean == "":
            continue
        key = clean.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(clean)
    return out


def normalize_attribute_set(value: Any) -> Tuple[str, ...]:
    """Return attribute symbols in the fixed W,U,B,R,G order; unknown symbols are dropped."""
    if isinstance(value, str):
        items: Iterable[Any] = list(value)
    elif isinstance(value, (set, frozenset, list, tuple)):
        items = value
    else:
        return tuple()

    present: set[str] = set()
    for item in items:
        if not isinstance(item, str):
            continue
        token = item.strip().upper()
        if token in ATTRIBUTE_ORDER or token == COLORLESS_ATTRIBUTE:
            present.add(token)

    ordered = [symbol for symbol in ATTRIBUTE_ORDER if symbol in present]
    if len(ordered) == 0 and COLORLESS_ATTRIBUTE in present:
        return (COLORLESS_ATTRIBUTE,)
    return tuple(ordered)


def coerce_positive_int(value: Any, *, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return int(default)
    if int(value) < 1:
        return int(default)
    return int(value)


def coerce_nonnegative_int(value: Any, *, default: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return int(default)
    if int(value) < 0:
        return int(default)
    return int(value)


_FILLER_BY_KEY = {name.casefold(): name for name in FILLER_NAMES}


def canonical_filler_name(name: Any) -> str:
    return _FILLER_BY_KEY.get(name_key(name), "")


def make_entry(name: str, category: str, *, reasons: Iterable[str] = ()) -> Dict[str, Any]:
    """Filler names are stored in their canonical spelling so `is_filler` agrees with `is_filler_name`."""
    filler = canonical_filler_name(name)
    return {
        "name": filler or name,
        "category": category,
        "is_filler": filler != "",
        "reasons_v1": sorted_unique(reasons),
    }
