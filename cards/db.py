import json
import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_DB_RELATIVE_PATH = Path("data") / "cards.sqlite"
DB_PATH = (REPO_ROOT / DEFAULT_DB_RELATIVE_PATH).resolve()

DB_PATH_ENV = "DECK_COMPOSER_DB_PATH"
SNAPSHOT_ID_ENV = "DECK_COMPOSER_SNAPSHOT_ID"

CARD_COLUMNS = ("snapshot_id", "oracle_id", "name", "mana_cost", "cmc", "type_line", "color_identity")


class CardDatabaseNotFoundError(RuntimeError):
    code = "CARD_DB_NOT_FOUND"

    def __init__(self, path: Path):
        self.path = str(path)
        super().__init__(
            f"Card database file not found at '{self.path}'. "
            f"Set {DB_PATH_ENV} or ensure ./data/cards.sqlite exists."
        )

    def to_unknown(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "path": self.path,
            "message": "Card snapshot database is missing; metadata lookups are unavailable.",
        }


def _env_value(name: str) -> str:
    raw = os.getenv(name)
    return raw.strip() if isinstance(raw, str) else ""


def resolve_db_path() -> Path:
    override = _env_value(DB_PATH_ENV)
    candidate = DB_PATH
    if override != "":
        candidate = Path(override).expanduser()
        if not candidate.is_absolute():
            candidate = (REPO_ROOT / candidate).resolve()

    if not candidate.is_file():
        raise CardDatabaseNotFoundError(candidate)
    return candidate


def _identity_list(raw: Any) -> List[str]:
    """color_identity is stored as a JSON array of single-letter codes."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []
    if not isinstance(raw, list):
        return []
    return [code for code in raw if isinstance(code, str)]


def connect(db_path: Path | str | None = None, *, check_same_thread: bool = True) -> sqlite3.Connection:
    path = Path(db_path) if db_path is not None else resolve_db_path()
    con = sqlite3.connect(str(path), check_same_thread=check_same_thread)
    con.row_factory = sqlite3.Row
    return con


def ensure_card_tables(con: sqlite3.Connection) -> None:
    con.executescript(
        """
        CREATE TABLE IF NOT EXISTS snapshots (
          snapshot_id TEXT PRIMARY KEY,
          created_at TEXT NOT NULL,
          source TEXT,
          scryfall_bulk_uri TEXT,
          scryfall_bulk_updated_at TEXT,
          manifest_json TEXT
        );

        CREATE TABLE IF NOT EXISTS cards (
          snapshot_id TEXT NOT NULL,
          oracle_id TEXT NOT NULL,
          name TEXT NOT NULL,
          mana_cost TEXT,
          cmc REAL,
          type_line TEXT,
          color_identity TEXT NOT NULL,
          PRIMARY KEY (snapshot_id, oracle_id)
        );

        CREATE INDEX IF NOT EXISTS idx_cards_name
          ON cards(snapshot_id, name COLLATE NOCASE);
        """
    )


def snapshot_exists(con: sqlite3.Connection, snapshot_id: str) -> bool:
    found = con.execute(
        "SELECT COUNT(*) AS n FROM snapshots WHERE snapshot_id = ?",
        (snapshot_id,),
    ).fetchone()
    return int(found["n"]) > 0


def latest_snapshot_id(con: sqlite3.Connection) -> Optional[str]:
    found = con.execute(
        "SELECT snapshot_id FROM snapshots ORDER BY created_at DESC, snapshot_id DESC LIMIT 1"
    ).fetchone()
    return None if found is None else found["snapshot_id"]


def resolve_snapshot_id(con: sqlite3.Connection) -> Optional[str]:
    """DECK_COMPOSER_SNAPSHOT_ID when set, else the newest snapshot in the DB."""
    pinned = _env_value(SNAPSHOT_ID_ENV)
    return pinned if pinned != "" else latest_snapshot_id(con)


def find_card_by_name(con: sqlite3.Connection, snapshot_id: str, name: str) -> Optional[Dict[str, Any]]:
    found = con.execute(
        f"SELECT {', '.join(CARD_COLUMNS)} FROM cards "
        "WHERE snapshot_id = ? AND name = ? COLLATE NOCASE "
        "ORDER BY oracle_id ASC LIMIT 1",
        (snapshot_id, name),
    ).fetchone()
    if found is None:
        return None
    card = {column: found[column] for column in CARD_COLUMNS}
    card["color_identity"] = _identity_list(card["color_identity"])
    return card
