"""Offline builder for the card lookup snapshot.

Downloads Scryfall's `oracle_cards` bulk export and loads the name and color
identity columns the composer needs into `data/cards.sqlite`.
"""

import argparse
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests
from tqdm import tqdm

from cards.db import ensure_card_tables
from composer.engine.utils import nonempty_str, normalize_attribute_set, sha256_hex, stable_json_dumps

VERSION = "snapshot_ingest_v1"

logger = logging.getLogger(__name__)

BULK_INDEX_URL = "https://api.scryfall.com/bulk-data"
BULK_TYPE = "oracle_cards"
SNAPSHOT_SOURCE = "scryfall_bulk_oracle_cards"
DOWNLOAD_CHUNK_BYTES = 1024 * 1024

CardRow = Tuple[str, str, str, Any, Any, Any, str]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def default_snapshot_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")


def sha256_file(path: Path) -> str:
    return sha256_hex(path.read_bytes())


def connect(db_path: Path) -> sqlite3.Connection:
    con = sqlite3.connect(str(db_path))
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA journal_mode=WAL;")
    return con


def fetch_bulk_index() -> Dict[str, Any]:
    response = requests.get(BULK_INDEX_URL, timeout=60)
    response.raise_for_status()
    return response.json()


def pick_oracle_cards(bulk_index: Dict[str, Any]) -> Dict[str, Any]:
    matches = [item for item in bulk_index.get("data", []) if item.get("type") == BULK_TYPE]
    if not matches:
        raise RuntimeError(f"{BULK_TYPE} bulk data not found")
    return matches[0]


def download_file(url: str, out_path: Path) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with requests.get(url, stream=True, timeout=120) as response:
        response.raise_for_status()
        size = int(response.headers.get("Content-Length", "0")) or None
        with out_path.open("wb") as handle, tqdm(total=size, unit="B", unit_scale=True, desc="Downloading") as bar:
            for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
                if chunk:
                    handle.write(chunk)
                    bar.update(len(chunk))


def card_rows(snapshot_id: str, cards: Iterable[Dict[str, Any]], *, progress: bool = True) -> List[CardRow]:
    """Rows without an oracle id or a name cannot be looked up and are skipped."""
    rows: List[CardRow] = []
    for card in tqdm(cards, desc="Preparing rows", disable=not progress):
        oracle_id = nonempty_str(card.get("oracle_id"))
        name = nonempty_str(card.get("name"))
        if oracle_id == "" or name == "":
            continue
        identity = [code for code in normalize_attribute_set(card.get("color_identity")) if code != "C"]
        rows.append(
            (snapshot_id, oracle_id, name, card.get("mana_cost"), card.get("cmc"), card.get("type_line"), json.dumps(identity))
        )
    return rows


def ingest_cards(con: sqlite3.Connection, snapshot_id: str, cards: Iterable[Dict[str, Any]], *, progress: bool = True) -> int:
    """Writes card rows without committing; `publish_snapshot` owns the transaction."""
    rows = card_rows(snapshot_id, cards, progress=progress)
    con.executemany(
        "INSERT OR REPLACE INTO cards "
        "(snapshot_id, oracle_id, name, mana_cost, cmc, type_line, color_identity) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        rows,
    )
    return len(rows)


def insert_snapshot(
    con: sqlite3.Connection,
    snapshot_id: str,
    oracle_meta: Dict[str, Any],
    manifest: Dict[str, Any],
    *,
    created_at: Optional[str] = None,
) -> None:
    con.execute(
        "INSERT INTO snapshots "
        "(snapshot_id, created_at, source, scryfall_bulk_uri, scryfall_bulk_updated_at, manifest_json) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (
            snapshot_id,
            created_at or utc_now_iso(),
            SNAPSHOT_SOURCE,
            oracle_meta.get("download_uri"),
            oracle_meta.get("updated_at"),
            stable_json_dumps(manifest),
        ),
    )


def publish_snapshot(
    con: sqlite3.Connection,
    snapshot_id: str,
    oracle_meta: Dict[str, Any],
    manifest: Dict[str, Any],
    cards: Iterable[Dict[str, Any]],
    *,
    progress: bool = True,
    created_at: Optional[str] = None,
) -> int:
    """
    Cards and the snapshot row commit together. A failed ingest rolls back
    both, so `latest_snapshot_id` never selects an empty snapshot.
    """
    with con:
        count = ingest_cards(con, snapshot_id, cards, progress=progress)
        insert_snapshot(con, snapshot_id, oracle_meta, manifest, created_at=created_at)
    logger.info("SNAPSHOT_PUBLISHED snapshot_id=%s rows=%d", snapshot_id, count)
    return count


def build_manifest(snapshot_id: str, oracle_meta: Dict[str, Any], download_sha256: str) -> Dict[str, Any]:
    return {
        "version": VERSION,
        "snapshot_id": snapshot_id,
        "scryfall_bulk_updated_at": oracle_meta.get("updated_at"),
        "scryfall_download_uri": oracle_meta.get("download_uri"),
        "download_sha256": download_sha256,
    }


def run_ingest(db_path: Path, out_dir: Path, snapshot_id: str) -> Dict[str, Any]:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    out_dir.mkdir(parents=True, exist_ok=True)

    oracle_meta = pick_oracle_cards(fetch_bulk_index())
    json_path = out_dir / f"scryfall_oracle_cards_{snapshot_id}.json"
    logger.info("SNAPSHOT_DOWNLOAD_START uri=%s out=%s", oracle_meta.get("download_uri"), json_path)
    download_file(oracle_meta["download_uri"], json_path)

    manifest = build_manifest(snapshot_id, oracle_meta, sha256_file(json_path))
    cards = json.loads(json_path.read_text(encoding="utf-8"))
    con = connect(db_path)
    try:
        ensure_card_tables(con)
        manifest["cards"] = publish_snapshot(con, snapshot_id, oracle_meta, manifest, cards)
    finally:
        con.close()
    return manifest


def main() -> None:
    ap = argparse.ArgumentParser(description="Ingest Scryfall oracle_cards bulk data into a card lookup snapshot.")
    ap.add_argument("--db", required=True, help="Path to SQLite DB (e.g. data/cards.sqlite)")
    ap.add_argument("--out", required=True, help="Where to download the bulk JSON")
    ap.add_argument("--snapshot-id", default=None, help="Optional snapshot id; default uses UTC timestamp.")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    manifest = run_ingest(Path(args.db), Path(args.out), args.snapshot_id or default_snapshot_id())
    print(stable_json_dumps(manifest))


if __name__ == "__main__":
    main()
