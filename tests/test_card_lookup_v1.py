from __future__ import annotations

import os
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

from cards.card_lookup_v1 import ScryfallCardLookupV1, SqliteCardLookupV1
from cards.db import connect, find_card_by_name, latest_snapshot_id
from cards.lookup_cache import TTLCacheV1
from tests.composer_fixture_harness import (
    CARDS_FIXTURE_SNAPSHOT_ID,
    KOZILEK,
    TROSTANI,
    create_cards_fixture_db,
    set_cards_fixture_env,
)


class SqliteCardLookupTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls._tmpdir = tempfile.TemporaryDirectory()
        cls.db_path = create_cards_fixture_db(Path(cls._tmpdir.name))

    @classmethod
    def tearDownClass(cls) -> None:
        cls._tmpdir.cleanup()

    def test_resolves_canonical_name_and_identity(self) -> None:
        with set_cards_fixture_env(self.db_path):
            with SqliteCardLookupV1() as lookup:
                record = lookup.lookup("trostani, selesnya's voice")
                self.assertEqual(lookup.snapshot_id, CARDS_FIXTURE_SNAPSHOT_ID)
        self.assertEqual(record, {"name": TROSTANI, "attribute_set": ["W", "G"]})

    def test_colorless_and_unknown(self) -> None:
        with SqliteCardLookupV1(self.db_path) as lookup:
            self.assertEqual(lookup.lookup(KOZILEK), {"name": KOZILEK, "attribute_set": []})
            self.assertIsNone(lookup.lookup("Not A Real Card"))
            self.assertIsNone(lookup.lookup("   "))

    def test_snapshot_from_environment(self) -> None:
        with patch.dict(os.environ, {"DECK_COMPOSER_SNAPSHOT_ID": "CARDS_TEST_SNAPSHOT_OLD"}):
            with SqliteCardLookupV1(self.db_path) as lookup:
                self.assertIsNotNone(lookup.lookup("Sol Ring"))
                self.assertIsNone(lookup.lookup("Llanowar Elves"))

    def test_cache_short_circuits_repeat_lookups(self) -> None:
        cache = TTLCacheV1()
        with SqliteCardLookupV1(self.db_path, snapshot_id=CARDS_FIXTURE_SNAPSHOT_ID, cache=cache) as lookup:
            first = lookup.lookup("Sol Ring")
            with patch("cards.card_lookup_v1.find_card_by_name") as find:
                second = lookup.lookup("SOL RING")
                missing = lookup.lookup("Sol Ring ")
        find.assert_not_called()
        self.assertEqual(first, second)
        self.assertEqual(first, missing)

    def test_lookup_is_shared_across_threads(self) -> None:
        results = {}

        def _worker(name: str) -> None:
            results[name] = lookup.lookup(name)

        with SqliteCardLookupV1(self.db_path) as lookup:
            self.assertEqual(lookup.lookup("Sol Ring"), {"name": "Sol Ring", "attribute_set": []})
            workers = [threading.Thread(target=_worker, args=(name,)) for name in ("Lightning Bolt", "Counterspell")]
            for worker in workers:
                worker.start()
            for worker in workers:
                worker.join()

        self.assertEqual(results["Lightning Bolt"], {"name": "Lightning Bolt", "attribute_set": ["R"]})
        self.assertEqual(results["Counterspell"], {"name": "Counterspell", "attribute_set": ["U"]})

    def test_db_helpers(self) -> None:
        con = connect(self.db_path)
        try:
            self.assertEqual(latest_snapshot_id(con), CARDS_FIXTURE_SNAPSHOT_ID)
            card = find_card_by_name(con, CARDS_FIXTURE_SNAPSHOT_ID, "LIGHTNING BOLT")
            self.assertEqual(card["color_identity"], ["R"])
        finally:
            con.close()


def _http_response(status_code: int, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return response


class ScryfallCardLookupTests(unittest.TestCase):
    def test_exact_named_lookup(self) -> None:
        session = MagicMock()
        session.get.return_value = _http_response(200, {"name": "Sol Ring", "color_identity": []})
        lookup = ScryfallCardLookupV1(session=session, timeout_s=4.0)

        self.assertEqual(lookup.lookup("sol ring"), {"name": "Sol Ring", "attribute_set": []})
        args, kwargs = session.get.call_args
        self.assertEqual(args[0], "https://api.scryfall.com/cards/named")
        self.assertEqual(kwargs["params"], {"exact": "sol ring"})
        self.assertEqual(kwargs["timeout"], 4.0)

    def test_not_found_is_cached_negatively(self) -> None:
        session = MagicMock()
        session.get.return_value = _http_response(404, {"object": "error"})
        cache = TTLCacheV1()
        lookup = ScryfallCardLookupV1(session=session, cache=cache)

        self.assertIsNone(lookup.lookup("Made Up Card"))
        self.assertIsNone(lookup.lookup("made up card"))
        self.assertEqual(session.get.call_count, 1)

    def test_transient_failures_are_not_cached(self) -> None:
        session = MagicMock()
        session.get.side_effect = [
            requests.ConnectionError("reset"),
            _http_response(500),
            _http_response(200, {"name": "Forest", "color_identity": []}),
        ]
        cache = TTLCacheV1()
        lookup = ScryfallCardLookupV1(session=session, cache=cache)

        with self.assertLogs("cards.card_lookup_v1", level="WARNING"):
            self.assertIsNone(lookup.lookup("Forest"))
            self.assertIsNone(lookup.lookup("Forest"))
        self.assertEqual(lookup.lookup("Forest"), {"name": "Forest", "attribute_set": []})
        self.assertEqual(lookup.lookup("Forest"), {"name": "Forest", "attribute_set": []})
        self.assertEqual(session.get.call_count, 3)

    def test_module_level_requests_used_without_session(self) -> None:
        with patch("cards.card_lookup_v1.requests.get") as get:
            get.return_value = _http_response(200, {"name": "Llanowar Elves", "color_identity": ["G"]})
            record = ScryfallCardLookupV1(base_url="https://scryfall.test/").lookup("Llanowar Elves")
        self.assertEqual(record, {"name": "Llanowar Elves", "attribute_set": ["G"]})
        self.assertEqual(get.call_args.args[0], "https://scryfall.test/cards/named")


if __name__ == "__main__":
    unittest.main()
