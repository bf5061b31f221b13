"""
Tests — Condition evaluator.

Covers:
    1. Combinator laws (any_of / all_of, short-circuit)
    2. Leaf predicates
    3. Key precedence when a node carries several kinds
    4. Fail-closed behaviour for unknown / malformed nodes
    5. related_entity_status via snapshot aggregate and lookup
"""

import logging

import pytest

from app.services.conditions import (
    CONDITION_PRECEDENCE,
    Condition,
    ConditionEvaluator,
    ConditionKind,
    evaluate_condition,
    parse_condition,
)

TRUE = {"status_in": ["planning"]}
FALSE = {"status_in": ["received"]}
SHIPMENT = {"id": 1, "status": "planning", "balance_value_usd": 0.0, "doc_count": 2,
            "customs_clearance_date": None, "docs_draft_approved": True}


# ═══════════════════════════════════════════════════════════════════════════
#  Combinators
# ═══════════════════════════════════════════════════════════════════════════

class TestCombinators:
    def test_any_of_true_when_one_holds(self):
        assert evaluate_condition({"any_of": [FALSE, FALSE, TRUE]}, SHIPMENT) is True

    def test_any_of_false_when_none_hold(self):
        assert evaluate_condition({"any_of": [FALSE, FALSE]}, SHIPMENT) is False

    def test_all_of_false_when_one_fails(self):
        assert evaluate_condition({"all_of": [TRUE, FALSE]}, SHIPMENT) is False

    def test_all_of_true_when_all_hold(self):
        assert evaluate_condition({"all_of": [TRUE, TRUE]}, SHIPMENT) is True

    def test_nested(self):
        cond = {"all_of": [TRUE, {"any_of": [FALSE, {"doc_count_gte": {"min": 2}}]}]}
        assert evaluate_condition(cond, SHIPMENT) is True

    def test_any_of_short_circuits(self):
        calls = []

        def lookup(table, link_field, entity_id):
            calls.append(entity_id)
            return "sailed"

        related = {"related_entity_status": {"table": "shipments", "link_field": "contract_id",
                                             "status_gte": "planning"}}
        assert evaluate_condition({"any_of": [TRUE, related]}, SHIPMENT, lookup) is True
        assert calls == []

    def test_all_of_short_circuits(self):
        calls = []

        def lookup(table, link_field, entity_id):
            calls.append(entity_id)
            return "sailed"

        related = {"related_entity_status": {"table": "shipments", "link_field": "contract_id",
                                             "status_gte": "planning"}}
        assert evaluate_condition({"all_of": [FALSE, related]}, SHIPMENT, lookup) is False
        assert calls == []


# ═══════════════════════════════════════════════════════════════════════════
#  Leaf predicates
# ═══════════════════════════════════════════════════════════════════════════

class TestLeafPredicates:
    def test_status_gte_arrived_vs_sailed(self):
        assert evaluate_condition({"status_gte": "sailed"}, {"status": "arrived"}) is True

    def test_status_gte_arrived_vs_received(self):
        assert evaluate_condition({"status_gte": "received"}, {"status": "arrived"}) is False

    def test_status_gte_without_status(self):
        assert evaluate_condition({"status_gte": "planning"}, {"status": None}) is False

    def test_status_gte_uses_shipment_aggregate_for_contracts(self):
        contract = {"status": "ACTIVE", "most_advanced_shipment_status": "sailed"}
        assert evaluate_condition({"status_gte": "sailed"}, contract) is True
        assert evaluate_condition({"status_gte": "received"}, contract) is False

    def test_status_gte_contract_without_shipments(self):
        contract = {"status": "COMPLETED", "most_advanced_shipment_status": None}
        assert evaluate_condition({"status_gte": "planning"}, contract) is False

    def test_status_in_accepts_single_value(self):
        assert evaluate_condition({"status_in": "planning"}, SHIPMENT) is True

    def test_field_not_null(self):
        assert evaluate_condition({"field_not_null": "status"}, SHIPMENT) is True
        assert evaluate_condition({"field_not_null": "customs_clearance_date"}, SHIPMENT) is False
        assert evaluate_condition({"field_not_null": "missing"}, SHIPMENT) is False
        assert evaluate_condition({"field_not_null": "sn"}, {"sn": ""}) is False

    def test_field_lte_and_gte(self):
        assert evaluate_condition({"field_lte": {"field": "balance_value_usd", "value": 0}},
                                  SHIPMENT) is True
        assert evaluate_condition({"field_gte": {"field": "balance_value_usd", "value": 1}},
                                  SHIPMENT) is False

    def test_field_compare_treats_missing_as_zero(self):
        assert evaluate_condition({"field_lte": {"field": "nope", "value": 0}}, SHIPMENT) is True

    def test_boolean_field_compares_as_number(self):
        cond = {"field_gte": {"field": "docs_draft_approved", "value": 1}}
        assert evaluate_condition(cond, SHIPMENT) is True
        assert evaluate_condition(cond, {"docs_draft_approved": False}) is False

    def test_doc_count_gte(self):
        assert evaluate_condition({"doc_count_gte": {"min": 2}}, SHIPMENT) is True
        assert evaluate_condition({"doc_count_gte": {"min": 3}}, SHIPMENT) is False


class TestRelatedEntityStatus:
    REL = {"table": "shipments", "link_field": "contract_id"}

    def test_uses_snapshot_aggregate(self):
        snap = {"id": 7, "most_advanced_shipment_status": "arrived"}
        cond = {"related_entity_status": {**self.REL, "status_gte": "sailed"}}
        assert evaluate_condition(cond, snap) is True

    def test_falls_back_to_lookup(self):
        seen = []

        def lookup(table, link_field, entity_id):
            seen.append((table, link_field, entity_id))
            return "loaded"

        cond = {"related_entity_status": {**self.REL, "status_in": ["loaded", "sailed"]}}
        assert evaluate_condition(cond, {"id": 7}, lookup) is True
        assert seen == [("shipments", "contract_id", 7)]

    def test_no_related_entities(self):
        cond = {"related_entity_status": {**self.REL, "status_gte": "planning"}}
        assert evaluate_condition(cond, {"id": 7}, lambda *a: None) is False

    def test_status_gte_checked_before_status_in(self):
        snap = {"most_advanced_shipment_status": "planning"}
        cond = {"related_entity_status": {**self.REL, "status_gte": "sailed",
                                          "status_in": ["planning"]}}
        assert evaluate_condition(cond, snap) is False

    def test_unsupported_relation_fails_closed(self):
        snap = {"most_advanced_shipment_status": "sailed"}
        cond = {"related_entity_status": {"table": "invoices", "link_field": "contract_id",
                                          "status_gte": "planning"}}
        assert evaluate_condition(cond, snap) is False


# ═══════════════════════════════════════════════════════════════════════════
#  Parsing & precedence
# ═══════════════════════════════════════════════════════════════════════════

class TestPrecedence:
    def test_documented_order(self):
        assert [k.value for k in CONDITION_PRECEDENCE] == [
            "any_of", "all_of", "status_in", "status_gte", "field_not_null",
            "field_lte", "field_gte", "doc_count_gte", "related_entity_status",
        ]

    def test_combinator_beats_leaf(self):
        node = parse_condition({"status_in": ["planning"], "any_of": [FALSE]})
        assert node.kind is ConditionKind.ANY_OF
        assert evaluate_condition({"status_in": ["planning"], "any_of": [FALSE]}, SHIPMENT) is False

    def test_status_in_beats_status_gte(self):
        cond = {"status_gte": "planning", "status_in": ["received"]}
        assert parse_condition(cond).kind is ConditionKind.STATUS_IN
        assert evaluate_condition(cond, SHIPMENT) is False

    def test_only_empty_scalars_are_skipped(self):
        node = parse_condition({"status_in": [], "field_not_null": "status"})
        # an empty list is still a value; only None / False / "" / 0 are skipped
        assert node.kind is ConditionKind.STATUS_IN
        node = parse_condition({"status_gte": "", "field_not_null": "status"})
        assert node.kind is ConditionKind.FIELD_NOT_NULL

    def test_parsed_tree(self):
        node = parse_condition({"all_of": [TRUE, {"status_gte": "sailed"}]})
        assert node == Condition(ConditionKind.ALL_OF, children=(
            Condition(ConditionKind.STATUS_IN, ["planning"]),
            Condition(ConditionKind.STATUS_GTE, "sailed"),
        ))


class TestFailClosed:
    def test_unknown_key(self, caplog):
        with caplog.at_level(logging.WARNING, logger="app.services.conditions"):
            assert evaluate_condition({"totally_unknown_key": True}, SHIPMENT) is False
        assert "Unknown condition type" in caplog.text

    @pytest.mark.parametrize("raw", [None, [], "status_in", 42, {}])
    def test_non_object_nodes(self, raw):
        assert evaluate_condition(raw, SHIPMENT) is False

    def test_combinator_with_non_list(self):
        assert evaluate_condition({"any_of": TRUE}, SHIPMENT) is False

    @pytest.mark.parametrize("cond", [
        {"status_gte": ["sailed"]},
        {"field_not_null": {"field": "status"}},
        {"field_lte": "balance_value_usd"},
        {"doc_count_gte": 3},
        {"related_entity_status": "shipments"},
    ])
    def test_malformed_arguments(self, cond):
        assert ConditionEvaluator(SHIPMENT).evaluate(cond) is False

    def test_unknown_child_makes_all_of_false(self):
        assert evaluate_condition({"all_of": [TRUE, {"mystery": 1}]}, SHIPMENT) is False
