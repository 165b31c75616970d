"""Card metadata lookup collaborators: SQLite snapshot, Scryfall HTTP, TTL cache."""

__all__ = [
    "card_lookup_v1",
    "db",
    "lookup_cache",
    "snapshot_ingest",
]
