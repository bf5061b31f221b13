"""
Trade Operations Platform
Condition Evaluator for workflow progression rules.

A rule's ``conditions`` JSON is parsed into a :class:`Condition` tree and
evaluated against an entity snapshot (a flat dict, see
:mod:`app.services.entity_snapshot`).

Node kinds (a JSON object selects its kind by the first key present, in
this order):

    any_of                  [cond, ...]     at least one holds (short-circuit)
    all_of                  [cond, ...]     every one holds (short-circuit)
    status_in               [status, ...]   snapshot status is listed
    status_gte              status          snapshot reached that stage
    field_not_null          field           field present, not None, not ""
    field_lte               {field, value}  numeric field <= value
    field_gte               {field, value}  numeric field >= value
    doc_count_gte           {min}           qualifying document count >= min
    related_entity_status   {table, link_field, status_gte | status_in}

Anything else parses to ``unknown`` and evaluates to False with a warning.
Malformed arguments of a known kind also evaluate to False.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from app.services.status_order import SHIPMENT, is_status_gte

logger = logging.getLogger(__name__)


class ConditionKind(str, Enum):
    ANY_OF = "any_of"
    ALL_OF = "all_of"
    STATUS_IN = "status_in"
    STATUS_GTE = "status_gte"
    FIELD_NOT_NULL = "field_not_null"
    FIELD_LTE = "field_lte"
    FIELD_GTE = "field_gte"
    DOC_COUNT_GTE = "doc_count_gte"
    RELATED_ENTITY_STATUS = "related_entity_status"
    UNKNOWN = "unknown"


# Order in which keys are tried when a node carries more than one.
CONDITION_PRECEDENCE: tuple[ConditionKind, ...] = (
    ConditionKind.ANY_OF,
    ConditionKind.ALL_OF,
    ConditionKind.STATUS_IN,
    ConditionKind.STATUS_GTE,
    ConditionKind.FIELD_NOT_NULL,
    ConditionKind.FIELD_LTE,
    ConditionKind.FIELD_GTE,
    ConditionKind.DOC_COUNT_GTE,
    ConditionKind.RELATED_ENTITY_STATUS,
)

_COMBINATORS = {ConditionKind.ANY_OF, ConditionKind.ALL_OF}

# (table, link_field, entity_id) -> most advanced linked status or None
RelatedStatusLookup = Callable[[str, str, Any], "str | None"]


@dataclass(frozen=True)
class Condition:
    kind: ConditionKind
    args: Any = None
    children: tuple["Condition", ...] = field(default_factory=tuple)


def _is_set(value: Any) -> bool:
    """Empty scalars (None, False, "", 0) do not select a branch."""
    if value is None or value is False or value == "":
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0:
        return False
    return True


def parse_condition(raw: Any) -> Condition:
    """Turn a JSON condition object into a :class:`Condition` tree."""
    if isinstance(raw, Condition):
        return raw
    if not isinstance(raw, Mapping):
        return Condition(ConditionKind.UNKNOWN, raw)

    for kind in CONDITION_PRECEDENCE:
        value = raw.get(kind.value)
        if not _is_set(value):
            continue
        if kind in _COMBINATORS:
            if not isinstance(value, (list, tuple)):
                return Condition(ConditionKind.UNKNOWN, raw)
            return Condition(kind, children=tuple(parse_condition(c) for c in value))
        return Condition(kind, value)

    return Condition(ConditionKind.UNKNOWN, raw)


def to_number(value: Any) -> float:
    """Numeric view of a snapshot field; missing or non-numeric values are 0."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class ConditionEvaluator:
    """
    Evaluate condition trees against one entity snapshot.

    Args:
        snapshot: Flat dict describing the entity.
        related_status_lookup: Fallback used by ``related_entity_status`` when
            the snapshot carries no precomputed aggregate.
    """

    def __init__(self, snapshot: Mapping[str, Any],
                 related_status_lookup: RelatedStatusLookup | None = None):
        self.snapshot = snapshot
        self.related_status_lookup = related_status_lookup
        self._dispatch: dict[ConditionKind, Callable[[Condition], bool]] = {
            ConditionKind.ANY_OF: self._any_of,
            ConditionKind.ALL_OF: self._all_of,
            ConditionKind.STATUS_IN: self._status_in,
            ConditionKind.STATUS_GTE: self._status_gte,
            ConditionKind.FIELD_NOT_NULL: self._field_not_null,
            ConditionKind.FIELD_LTE: self._field_lte,
            ConditionKind.FIELD_GTE: self._field_gte,
            ConditionKind.DOC_COUNT_GTE: self._doc_count_gte,
            ConditionKind.RELATED_ENTITY_STATUS: self._related_entity_status,
        }

    def evaluate(self, condition: Any) -> bool:
        node = parse_condition(condition)
        handler = self._dispatch.get(node.kind)
        if handler is None:
            logger.warning("Unknown condition type: %r", node.args)
            return False
        return handler(node)

    # ── Combinators ──────────────────────────────────────────────────────

    def _any_of(self, node: Condition) -> bool:
        return any(self.evaluate(child) for child in node.children)

    def _all_of(self, node: Condition) -> bool:
        return all(self.evaluate(child) for child in node.children)

    # ── Status predicates ────────────────────────────────────────────────

    def _status_in(self, node: Condition) -> bool:
        values = node.args if isinstance(node.args, (list, tuple)) else [node.args]
        return self.snapshot.get("status") in values

    def _status_gte(self, node: Condition) -> bool:
        threshold = node.args
        if not isinstance(threshold, str):
            logger.warning("status_gte expects a status string, got %r", threshold)
            return False
        # Contracts are judged by how far their shipments have progressed.
        if "most_advanced_shipment_status" in self.snapshot:
            aggregate = self.snapshot.get("most_advanced_shipment_status")
            if not aggregate:
                return False
            return is_status_gte(aggregate, threshold, table=SHIPMENT)
        return is_status_gte(self.snapshot.get("status"), threshold)

    # ── Field predicates ─────────────────────────────────────────────────

    def _field_not_null(self, node: Condition) -> bool:
        if not isinstance(node.args, str):
            logger.warning("field_not_null expects a field name, got %r", node.args)
            return False
        value = self.snapshot.get(node.args)
        return value is not None and value != ""

    def _field_compare(self, node: Condition) -> tuple[float, float] | None:
        spec = node.args
        if not isinstance(spec, Mapping) or not isinstance(spec.get("field"), str):
            logger.warning("%s expects {field, value}, got %r", node.kind.value, spec)
            return None
        return to_number(self.snapshot.get(spec["field"])), to_number(spec.get("value"))

    def _field_lte(self, node: Condition) -> bool:
        pair = self._field_compare(node)
        return pair is not None and pair[0] <= pair[1]

    def _field_gte(self, node: Condition) -> bool:
        pair = self._field_compare(node)
        return pair is not None and pair[0] >= pair[1]

    def _doc_count_gte(self, node: Condition) -> bool:
        spec = node.args
        if not isinstance(spec, Mapping):
            logger.warning("doc_count_gte expects {min}, got %r", spec)
            return False
        return to_number(self.snapshot.get("doc_count")) >= to_number(spec.get("min"))

    # ── Related entities ─────────────────────────────────────────────────

    def _related_entity_status(self, node: Condition) -> bool:
        spec = node.args
        if not isinstance(spec, Mapping):
            logger.warning("related_entity_status expects an object, got %r", spec)
            return False
        table, link_field = spec.get("table"), spec.get("link_field")
        if (table, link_field) != ("shipments", "contract_id"):
            logger.warning("Unsupported related entity relation: %s.%s", table, link_field)
            return False

        status = self.snapshot.get("most_advanced_shipment_status")
        if not status and self.related_status_lookup is not None:
            status = self.related_status_lookup(table, link_field, self.snapshot.get("id"))
        if not status:
            return False

        if spec.get("status_gte"):
            return is_status_gte(status, spec["status_gte"], table=SHIPMENT)
        if spec.get("status_in"):
            allowed = spec["status_in"]
            allowed = allowed if isinstance(allowed, (list, tuple)) else [allowed]
            return status in allowed
        logger.warning("related_entity_status without status_gte/status_in: %r", spec)
        return False


def evaluate_condition(condition: Any, snapshot: Mapping[str, Any],
                       related_status_lookup: RelatedStatusLookup | None = None) -> bool:
    """Shortcut for a one-off evaluation."""
    return ConditionEvaluator(snapshot, related_status_lookup).evaluate(condition)
