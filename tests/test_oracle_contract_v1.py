from __future__ import annotations

import unittest
from unittest.mock import MagicMock

from composer.engine.cancellation_v1 import CancellationToken
from composer.engine.constants import (
    ORACLE_UNAVAILABLE,
    PURPOSE_GENERATE_CATEGORY,
    PURPOSE_SELECT_STRATEGY,
    CompositionCancelledError,
    OracleMalformedError,
)
from composer.engine.oracle_contract_v1 import (
    build_oracle_request_v1,
    call_lookup_v1,
    call_oracle_v1,
    parse_candidate_names_v1,
    parse_response_object,
    parse_strategy_descriptor_v1,
)


class _Clock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class ParseCandidateNamesTests(unittest.TestCase):
    def test_accepts_dict_and_json_text_with_cards_key(self) -> None:
        self.assertEqual(parse_candidate_names_v1({"cards": ["Sol Ring", "Arcane Signet"]}), ["Sol Ring", "Arcane Signet"])
        self.assertEqual(parse_candidate_names_v1('{"cards": ["Sol Ring"]}'), ["Sol Ring"])

    def test_accepts_alternate_keys_and_bare_list(self) -> None:
        self.assertEqual(parse_candidate_names_v1({"names": ["A"]}), ["A"])
        self.assertEqual(parse_candidate_names_v1({"decklist": ["B"]}), ["B"])
        self.assertEqual(parse_candidate_names_v1('["C", "D"]'), ["C", "D"])

    def test_object_entries_and_blank_entries(self) -> None:
        raw = {"cards": [{"name": "Sol Ring"}, {"cardName": "Command Tower"}, {"card": "Forest"}, "  ", {"qty": 1}, 7]}
        self.assertEqual(parse_candidate_names_v1(raw), ["Sol Ring", "Command Tower", "Forest"])

    def test_duplicates_are_kept_in_order(self) -> None:
        self.assertEqual(parse_candidate_names_v1({"cards": ["A", "A", "B"]}), ["A", "A", "B"])

    def test_fenced_block_with_prose(self) -> None:
        raw = 'Here is the list:\n```json\n{"cards": ["Sol Ring", "Swords to Plowshares"]}\n```\nEnjoy!'
        self.assertEqual(parse_candidate_names_v1(raw), ["Sol Ring", "Swords to Plowshares"])

    def test_prose_wrapped_object_without_fence(self) -> None:
        self.assertEqual(parse_candidate_names_v1('Sure! {"cards": ["A"]} Let me know.'), ["A"])

    def test_trailing_comma_repaired(self) -> None:
        self.assertEqual(parse_candidate_names_v1('{"cards": ["A", "B",]}'), ["A", "B"])

    def test_truncated_list_recovered(self) -> None:
        self.assertEqual(parse_candidate_names_v1('{"cards": ["A", "B"'), ["A", "B"])

    def test_unusable_payloads_raise_malformed(self) -> None:
        for raw in ("", "not json at all", None, 42, {"commander": "x"}, '{"cards": "Sol Ring"}'):
            with self.subTest(raw=raw):
                with self.assertRaises(OracleMalformedError) as err:
                    parse_candidate_names_v1(raw)
                self.assertEqual(err.exception.to_unknown()["purpose"], PURPOSE_GENERATE_CATEGORY)

    def test_parse_response_object_decodes_bytes(self) -> None:
        self.assertEqual(parse_response_object(b'{"cards": []}'), {"cards": []})


class ParseStrategyDescriptorTests(unittest.TestCase):
    def test_original_key_spelling(self) -> None:
        descriptor = parse_strategy_descriptor_v1(
            '```json\n{"commander": "Krenko, Mob Boss", "strategy": "Goblin tribal", '
            '"colorIdentity": ["R"], "reasoning": "Goblins"}\n```'
        )
        self.assertEqual(descriptor.identity, "Krenko, Mob Boss")
        self.assertEqual(descriptor.strategy_text, "Goblin tribal")
        self.assertEqual(descriptor.attribute_set, ["R"])
        self.assertEqual(descriptor.rationale, "Goblins")

    def test_contract_key_spelling_and_extra_keys(self) -> None:
        descriptor = parse_strategy_descriptor_v1(
            {"identity": "Trostani, Selesnya's Voice", "strategyText": "Tokens", "attributeSet": ["G", "W"], "extra": 1}
        )
        self.assertEqual(descriptor.identity, "Trostani, Selesnya's Voice")
        self.assertEqual(descriptor.rationale, "")

    def test_missing_required_fields_raise_malformed(self) -> None:
        for raw in ({"strategy": "x"}, {"commander": "", "strategy": "x"}, ["not", "an", "object"], "garbage"):
            with self.subTest(raw=raw):
                with self.assertRaises(OracleMalformedError) as err:
                    parse_strategy_descriptor_v1(raw)
                self.assertEqual(err.exception.purpose, PURPOSE_SELECT_STRATEGY)


class BuildOracleRequestTests(unittest.TestCase):
    def test_category_request_shape(self) -> None:
        request = build_oracle_request_v1(
            purpose=PURPOSE_GENERATE_CATEGORY,
            category="core",
            desired_count=5,
            exclude_names=["Sol Ring"],
            context_text="ctx",
        )
        self.assertEqual(
            request,
            {
                "purpose": PURPOSE_GENERATE_CATEGORY,
                "category": "core",
                "desired_count": 5,
                "exclude_names": ["Sol Ring"],
                "context_text": "ctx",
            },
        )

    def test_strategy_request_has_no_category_fields(self) -> None:
        request = build_oracle_request_v1(purpose=PURPOSE_SELECT_STRATEGY, context_text="ctx")
        self.assertNotIn("category", request)
        self.assertNotIn("desired_count", request)
        self.assertEqual(request["exclude_names"], [])


class CallOracleTests(unittest.TestCase):
    def test_success_passes_per_call_timeout(self) -> None:
        oracle = MagicMock()
        oracle.complete.return_value = {"cards": []}
        raw, code = call_oracle_v1(oracle, {"purpose": "p"}, token=CancellationToken(), timeout_s=12.5)
        self.assertEqual(raw, {"cards": []})
        self.assertEqual(code, "")
        oracle.complete.assert_called_once_with({"purpose": "p"}, timeout_s=12.5)

    def test_timeout_capped_by_remaining_deadline(self) -> None:
        clock = _Clock()
        token = CancellationToken(5.0, clock=clock)
        oracle = MagicMock()
        oracle.complete.return_value = "{}"
        call_oracle_v1(oracle, {"purpose": "p"}, token=token, timeout_s=30.0)
        oracle.complete.assert_called_once_with({"purpose": "p"}, timeout_s=5.0)

    def test_collaborator_exception_becomes_unavailable_code(self) -> None:
        oracle = MagicMock()
        oracle.complete.side_effect = TimeoutError("slow")
        with self.assertLogs("composer.engine.oracle_contract_v1", level="WARNING") as logs:
            raw, code = call_oracle_v1(oracle, {"purpose": "p"}, token=CancellationToken(), timeout_s=1.0)
        self.assertIsNone(raw)
        self.assertEqual(code, ORACLE_UNAVAILABLE)
        self.assertIn("ORACLE_UNAVAILABLE", logs.output[0])

    def test_cancellation_is_never_absorbed(self) -> None:
        oracle = MagicMock()
        oracle.complete.side_effect = CompositionCancelledError("stop", stage="x")
        with self.assertRaises(CompositionCancelledError):
            call_oracle_v1(oracle, {"purpose": "p"}, token=CancellationToken(), timeout_s=1.0)

    def test_cancelled_token_skips_the_call(self) -> None:
        token = CancellationToken()
        token.cancel("user abort")
        oracle = MagicMock()
        with self.assertRaises(CompositionCancelledError) as err:
            call_oracle_v1(oracle, {"purpose": PURPOSE_SELECT_STRATEGY}, token=token, timeout_s=1.0)
        oracle.complete.assert_not_called()
        self.assertEqual(err.exception.reason, "user abort")
        self.assertEqual(err.exception.stage, f"oracle:{PURPOSE_SELECT_STRATEGY}")


class CallLookupTests(unittest.TestCase):
    def test_normalizes_record(self) -> None:
        lookup = MagicMock()
        lookup.lookup.return_value = {"name": "Trostani, Selesnya's Voice", "attribute_set": ["W", "G"]}
        record = call_lookup_v1(lookup, "trostani, selesnya's voice", token=CancellationToken())
        self.assertEqual(record, {"name": "Trostani, Selesnya's Voice", "attribute_set": ("W", "G")})

    def test_missing_or_failing_lookup_returns_none(self) -> None:
        lookup = MagicMock()
        lookup.lookup.return_value = None
        self.assertIsNone(call_lookup_v1(lookup, "x", token=CancellationToken()))
        lookup.lookup.return_value = {"name": ""}
        self.assertIsNone(call_lookup_v1(lookup, "x", token=CancellationToken()))
        lookup.lookup.side_effect = ConnectionError("down")
        self.assertIsNone(call_lookup_v1(lookup, "x", token=CancellationToken()))


if __name__ == "__main__":
    unittest.main()
