from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from cards.db import connect, find_card_by_name, resolve_snapshot_id
from cards.lookup_cache import DEFAULT_NEGATIVE_TTL_S, TTLCacheV1
from composer.engine.utils import name_key, nonempty_str, normalize_attribute_set

VERSION = "card_lookup_v1"

logger = logging.getLogger(__name__)

SCRYFALL_BASE_URL = "https://api.scryfall.com"
SCRYFALL_TIMEOUT_S = 10.0
SCRYFALL_HEADERS = {
    "User-Agent": "deck-composer/0.1",
    "Accept": "application/json",
}

_NOT_CACHED = object()


def _cache_key(name: str) -> str:
    return f"card:{name_key(name)}"


def card_record_v1(card: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    name = nonempty_str(card.get("name"))
    if name == "":
        return None
    return {
        "name": name,
        "attribute_set": list(normalize_attribute_set(card.get("color_identity"))),
    }


class SqliteCardLookupV1:
    """
    Resolves names against the `cards` table of one snapshot.

    One connection is shared by every thread using the instance; queries are
    serialized on a lock.
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        *,
        snapshot_id: str | None = None,
        cache: TTLCacheV1 | None = None,
    ):
        self.db_path = db_path
        self.snapshot_id = snapshot_id
        self.cache = cache
        self._con: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def _connection(self) -> sqlite3.Connection:
        if self._con is None:
            self._con = connect(self.db_path, check_same_thread=False)
            if self.snapshot_id is None:
                self.snapshot_id = resolve_snapshot_id(self._con)
        return self._con

    def close(self) -> None:
        with self._lock:
            if self._con is not None:
                self._con.close()
                self._con = None

    def __enter__(self) -> "SqliteCardLookupV1":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def lookup(self, name: str) -> Optional[Dict[str, Any]]:
        clean = nonempty_str(name)
        if clean == "":
            return None
        if self.cache is not None:
            hit = self.cache.get(_cache_key(clean), _NOT_CACHED)
            if hit is not _NOT_CACHED:
                return hit

        with self._lock:
            con = self._connection()
            if self.snapshot_id is None:
                logger.warning("CARD_LOOKUP_NO_SNAPSHOT db_path=%s", self.db_path)
                return None
            card = find_card_by_name(con, self.snapshot_id, clean)
        record = card_record_v1(card) if card is not None else None

        if self.cache is not None:
            self.cache.set(_cache_key(clean), record)
        return record


class ScryfallCardLookupV1:
    """Resolves names through Scryfall's `/cards/named?exact=` endpoint."""

    def __init__(
        self,
        *,
        session: Any = None,
        base_url: str = SCRYFALL_BASE_URL,
        timeout_s: float = SCRYFALL_TIMEOUT_S,
        cache: TTLCacheV1 | None = None,
        negative_ttl_s: float = DEFAULT_NEGATIVE_TTL_S,
    ):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.timeout_s = float(timeout_s)
        self.cache = cache
        self.negative_ttl_s = float(negative_ttl_s)

    def _get(self, url: str, params: Dict[str, Any]) -> requests.Response:
        getter = self.session.get if self.session is not None else requests.get
        return getter(url, params=params, headers=SCRYFALL_HEADERS, timeout=self.timeout_s)

    def lookup(self, name: str) -> Optional[Dict[str, Any]]:
        clean = nonempty_str(name)
        if clean == "":
            return None
        if self.cache is not None:
            hit = self.cache.get(_cache_key(clean), _NOT_CACHED)
            if hit is not _NOT_CACHED:
                return hit

        try:
            r = self._get(f"{self.base_url}/cards/named", {"exact": clean})
            if r.status_code == 404:
                if self.cache is not None:
                    self.cache.set(_cache_key(clean), None, ttl_s=self.negative_ttl_s)
                return None
            r.raise_for_status()
            payload = r.json()
        except (requests.RequestException, ValueError) as exc:
            # Transient failures are not cached.
            logger.warning(
                "SCRYFALL_LOOKUP_FAILED name=%s error=%s message=%s",
                clean,
                type(exc).__name__,
                str(exc)[:200],
            )
            return None

        record = card_record_v1(payload) if isinstance(payload, dict) else None
        if self.cache is not None:
            if record is None:
                self.cache.set(_cache_key(clean), None, ttl_s=self.negative_ttl_s)
            else:
                self.cache.set(_cache_key(clean), record)
        return record
