from __future__ import annotations

import unittest

from composer.engine.legality_validator_v1 import error_kinds_v1, validate_composition_v1
from composer.engine.utils import make_entry, stable_json_dumps
from tests.composer_fixture_harness import TROSTANI


def _names(count: int):
    return [f"Card {i:03d}" for i in range(1, count + 1)]


def _balanced_entries():
    entries = [make_entry(name, "core") for name in _names(20)]
    entries += [make_entry(f"Support {i:02d}", "support") for i in range(15)]
    entries += [make_entry(f"Ramp {i:02d}", "acceleration") for i in range(10)]
    entries += [make_entry(f"Removal {i:02d}", "interaction") for i in range(10)]
    entries += [make_entry(f"Draw {i:02d}", "advantage") for i in range(10)]
    entries += [make_entry(f"Land {i:02d}", "non_filler_land") for i in range(24)]
    entries += [make_entry("Forest", "filler")] * 5 + [make_entry("Plains", "filler")] * 5
    return entries


BUDGET = {
    "core": 20,
    "support": 15,
    "acceleration": 10,
    "interaction": 10,
    "advantage": 10,
    "non_filler_land": 24,
    "filler": 10,
}


class LegalityValidatorTests(unittest.TestCase):
    def test_balanced_deck_has_no_violations(self) -> None:
        report = validate_composition_v1(_balanced_entries(), identity_name=TROSTANI, budget=BUDGET)
        self.assertTrue(report["is_valid"])
        self.assertEqual(report["violations"], [])
        self.assertEqual(report["counts"], {"total": 99, "filler": 10, "lands": 34, "unique_non_filler": 89})
        self.assertEqual(report["version"], "legality_validator_v1")

    def test_bare_names_low_land_warning_does_not_invalidate(self) -> None:
        report = validate_composition_v1(_names(99), identity_name=TROSTANI)
        self.assertTrue(report["is_valid"])
        self.assertEqual([v["kind"] for v in report["violations"]], ["category_skew"])
        self.assertEqual(report["violations"][0]["severity"], "warning")
        self.assertIn("Low land count: 0", report["violations"][0]["detail"])

    def test_high_land_count_warning(self) -> None:
        report = validate_composition_v1(_names(5) + ["Forest"] * 94, identity_name=TROSTANI)
        self.assertTrue(report["is_valid"])
        self.assertIn("High land count: 94", report["violations"][0]["detail"])

    def test_count_mismatch(self) -> None:
        report = validate_composition_v1(_balanced_entries()[:-1], identity_name=TROSTANI)
        self.assertFalse(report["is_valid"])
        mismatch = [v for v in report["violations"] if v["kind"] == "count_mismatch"]
        self.assertEqual(mismatch[0]["detail"], "Deck has 98 cards, expected 99")
        self.assertEqual((mismatch[0]["expected"], mismatch[0]["actual"]), (99, 98))

    def test_duplicate_names_item_and_multiplicity(self) -> None:
        names = _names(96) + ["Sol Ring", "Sol Ring", "sol ring"]
        report = validate_composition_v1(names, identity_name=TROSTANI)
        self.assertFalse(report["is_valid"])
        dup = [v for v in report["violations"] if v["kind"] == "illegal_duplicate"]
        self.assertEqual(len(dup), 1)
        self.assertEqual(dup[0]["detail"], "Illegal duplicate: Sol Ring (3 copies)")
        self.assertEqual((dup[0]["name"], dup[0]["count"]), ("Sol Ring", 3))

    def test_filler_repeats_are_legal(self) -> None:
        report = validate_composition_v1(["Snow-Covered Forest"] * 50 + ["Wastes"] * 49, identity_name=TROSTANI)
        self.assertEqual(error_kinds_v1(report), [])

    def test_identity_in_mainboard(self) -> None:
        names = _names(98) + [TROSTANI.lower()]
        report = validate_composition_v1(names, identity_name=TROSTANI)
        self.assertEqual(error_kinds_v1(report), ["identity_in_mainboard"])
        hit = [v for v in report["violations"] if v["kind"] == "identity_in_mainboard"][0]
        self.assertEqual(hit["count"], 1)

    def test_category_under_half_budget_is_a_warning(self) -> None:
        entries = [e for e in _balanced_entries() if e["category"] != "advantage"]
        entries += [make_entry(f"Draw {i:02d}", "advantage") for i in range(4)]
        entries += [make_entry("Plains", "filler")] * 6
        report = validate_composition_v1(entries, identity_name=TROSTANI, budget=BUDGET)
        self.assertTrue(report["is_valid"])
        skew = [v for v in report["violations"] if v.get("category") == "advantage"]
        self.assertEqual(skew[0]["detail"], "Category advantage reached 4 of 10")

    def test_must_include_counts_toward_core(self) -> None:
        entries = _balanced_entries()
        for entry in entries[:15]:
            entry["category"] = "must_include"
        report = validate_composition_v1(entries, identity_name=TROSTANI, budget=BUDGET)
        self.assertEqual(report["violations"], [])

    def test_errors_sort_before_warnings_and_report_is_byte_stable(self) -> None:
        names = ["Sol Ring", TROSTANI] + _names(50) + ["Sol Ring", "Arcane Signet", "Arcane Signet"]
        first = validate_composition_v1(names, identity_name=TROSTANI)
        second = validate_composition_v1(list(reversed(names)), identity_name=TROSTANI)
        self.assertEqual(stable_json_dumps(first), stable_json_dumps(second))
        severities = [v["severity"] for v in first["violations"]]
        self.assertEqual(severities, sorted(severities))
        self.assertEqual(
            error_kinds_v1(first),
            ["count_mismatch", "identity_in_mainboard", "illegal_duplicate"],
        )

    def test_error_kinds_of_garbage(self) -> None:
        self.assertEqual(error_kinds_v1({}), [])
        self.assertEqual(error_kinds_v1(None), [])


if __name__ == "__main__":
    unittest.main()
