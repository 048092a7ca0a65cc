"""
Estimation Engine - turns an input record into a priced Result.

Resolution order (fixed, so totals are reproducible):
1. Resolve the base amount from the primary key(s), plus base adjustments
2. Apply every multiplier in declaration order
3. Add one line per matching conditional fee
4. Add one line per requested optional item
5. Subtract the percentage discount, computed off the running subtotal
6. Subtract the flat reimbursement, floored so the total stays >= 0
7. Round the total once

Messages come from a separate predicate pass and never touch the total.
"""
import dataclasses
import logging
from typing import Any, Iterable, Mapping, Optional

from .definition import EstimatorDefinition
from .errors import DomainError
from .models import (
    MESSAGE_GROUPS, ComparisonRow, LineItem, Message, Result, Worksheet, round_amount,
)
from .rule_matcher import match_conditions
from .rule_tables import RuleTables, get_rule_tables, make_key

logger = logging.getLogger(__name__)


def as_record(data: Any) -> dict:
    """Copy a dataclass instance or mapping into a plain dict."""
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return dataclasses.asdict(data)
    if isinstance(data, Mapping):
        return dict(data)
    raise TypeError(f"Input record must be a dataclass or mapping, got {type(data).__name__}")


class EstimationEngine:
    """
    Stateless engine over a set of read-only rule tables.

    The same engine can serve any number of definitions and calls.
    """

    def __init__(self, tables: Optional[RuleTables] = None):
        self.tables = tables or get_rule_tables()

    def estimate(self, data: Any, definition: EstimatorDefinition) -> Result:
        """
        Estimate one input record.

        Raises UnknownCategoryError or DomainError when the record does not
        fit the definition; no partial Result is produced.
        """
        record = as_record(data)
        ws = Worksheet(calculator=definition.name)

        labels = self._validate(record, definition)
        context = {**record, **labels}

        self._add_base_line(ws, record, context, definition)
        self._add_rule_lines(ws, record, definition, 'conditional_fee', 'fee')
        self._add_rule_lines(ws, record, definition, 'optional_item', 'addon')
        self._apply_discount(ws, record, definition)
        self._apply_reimbursement(ws, record, definition)

        total = round_amount(ws.subtotal, definition.rounding_places)
        ws.add_trace("Total", "Rounded sum of line items", f"{total:.{definition.rounding_places}f}")

        messages = self._messages(record, definition)

        logger.debug(
            "Estimated %s: total=%s lines=%d messages=%d",
            definition.name, total, len(ws.line_items), len(messages),
        )
        return Result(
            calculator=definition.name,
            total=total,
            line_items=tuple(ws.line_items),
            messages=tuple(messages),
            details=dict(ws.details),
            unit=definition.unit,
            trace=tuple(ws.trace),
        )

    def compare_across(
        self,
        dimension: str,
        candidates: Iterable[str],
        rest: Any,
        definition: EstimatorDefinition,
    ) -> list[ComparisonRow]:
        """Re-run estimate once per candidate value of one categorical field."""
        table_name = definition.table_for(dimension)
        if table_name is None:
            raise DomainError(dimension, dimension, "is not a comparable categorical field")
        table = self.tables[table_name]
        notes_source = definition.comparison_notes.get(dimension)
        base_record = as_record(rest)

        rows = []
        for value in candidates:
            result = self.estimate({**base_record, dimension: value}, definition)
            base_amount = result.line_total('base')

            notes = ()
            details = {'base_amount': round_amount(base_amount, definition.rounding_places)}
            if notes_source:
                notes_table = self.tables[notes_source.table]
                notes = tuple(notes_table.value(value, notes_source.notes_column, dimension) or ())
                for column in notes_source.detail_columns:
                    details[column] = notes_table.value(value, column, dimension)

            rows.append(ComparisonRow(
                value=value,
                label=table.label(value, dimension),
                total=result.total,
                notes=notes,
                details=details,
            ))
        return rows

    def _validate(self, record: dict, definition: EstimatorDefinition) -> dict:
        """Check categorical keys and numeric domains; return display labels."""
        labels = {}
        for cat in definition.categorical:
            if cat.field not in record:
                raise DomainError(cat.field, None, "is required")
            table = self.tables[cat.table]
            labels[f"{cat.field}_label"] = table.label(record[cat.field], cat.field)

        for domain in definition.domains:
            if domain.field not in record:
                raise DomainError(domain.field, None, "is required")
            domain.check(record[domain.field])

        for flag in definition.flags:
            if not isinstance(record.get(flag), bool):
                raise DomainError(flag, record.get(flag), "must be true or false")
        return labels

    def _add_base_line(self, ws: Worksheet, record: dict, context: dict, definition: EstimatorDefinition):
        base = definition.base
        table = self.tables[base.table]
        key = make_key(*(record[f] for f in base.key_fields))
        row = table.row(key, ", ".join(base.key_fields))

        amount = float(row[base.column])
        ws.add_trace("Base", f"{base.table}[{key}].{base.column}", f"{amount:g}")

        for adj in definition.base_adjustments:
            if match_conditions(adj.when, record, f"adjustment {adj.table}") is None:
                continue
            delta = float(self.tables[adj.table].value(record[adj.field], adj.column, adj.field))
            amount += delta
            ws.add_trace("Base Adjustment", f"{adj.table}[{record[adj.field]}]", f"{delta:+g}")

        for mult in definition.multipliers:
            if mult.table:
                factor = float(self.tables[mult.table].value(record[mult.field], mult.column, mult.field))
                source = f"{mult.table}[{record[mult.field]}]"
            else:
                factor = record[mult.field] / mult.divisor
                source = f"{mult.field} / {mult.divisor:g}"
            amount *= factor
            ws.add_trace("Multiplier", source, f"×{factor:g}")

        ws.details['base_amount'] = amount
        fmt = {**row, **context}
        ws.add_line(LineItem(
            label=base.label.format(**fmt),
            amount=amount,
            note=base.note.format(**fmt),
            kind='base',
        ))

    def _add_rule_lines(self, ws: Worksheet, record: dict, definition: EstimatorDefinition, action_type: str, kind: str):
        for rule in definition.rules.find_matching_rules(record, action_type):
            ws.add_line(LineItem(
                label=rule.name,
                amount=rule.action_value,
                note=rule.note,
                kind=kind,
                rule_id=rule.rule_id,
            ))
            ws.add_trace("Rule Applied", f"{rule.name} ({rule.match_reason})", f"{rule.action_value:+g}")

    def _apply_discount(self, ws: Worksheet, record: dict, definition: EstimatorDefinition):
        rule = definition.discount
        if rule is None:
            return
        units = record[rule.field]
        extra = max(0, units - rule.free_units)
        percent = min(extra * rule.per_unit_percent, rule.cap_percent)
        ws.details['discount_percent'] = percent
        if percent <= 0:
            return

        amount = ws.subtotal * percent / 100
        ws.details['discount_amount'] = amount
        ws.add_line(LineItem(
            label=rule.label.format(percent=percent, units=units),
            amount=-amount,
            note=rule.note.format(percent=percent, units=units),
            kind='discount',
        ))
        ws.add_trace("Discount", f"{percent:g}% of running subtotal", f"-{amount:g}")

    def _apply_reimbursement(self, ws: Worksheet, record: dict, definition: EstimatorDefinition):
        rule = definition.reimbursement
        if rule is None:
            return
        if rule.enabled_field and not record[rule.enabled_field]:
            return

        requested = record[rule.amount_field]
        applied = min(requested, max(ws.subtotal, 0.0))
        ws.details['reimbursement_requested'] = requested
        ws.details['reimbursement_applied'] = applied
        if applied <= 0:
            return

        ws.add_line(LineItem(label=rule.label, amount=-applied, note=rule.note, kind='credit'))
        if applied < requested:
            ws.add_trace("Reimbursement", "Capped at running subtotal", f"-{applied:g}")
        else:
            ws.add_trace("Reimbursement", "Flat credit", f"-{applied:g}")

    @staticmethod
    def _messages(record: dict, definition: EstimatorDefinition) -> list[Message]:
        matched = definition.rules.find_matching_rules(record, 'message')
        messages = [Message(group=m.group, text=m.action_value, rule_id=m.rule_id) for m in matched]
        return sorted(messages, key=lambda m: MESSAGE_GROUPS.index(m.group))


def estimate(data: Any, definition: EstimatorDefinition, tables: Optional[RuleTables] = None) -> Result:
    """Estimate one input record against a definition."""
    return EstimationEngine(tables).estimate(data, definition)


def compare_across(
    dimension: str,
    candidates: Iterable[str],
    rest: Any,
    definition: EstimatorDefinition,
    tables: Optional[RuleTables] = None,
) -> list[ComparisonRow]:
    """Totals for each candidate value of one dimension, all else fixed."""
    return EstimationEngine(tables).compare_across(dimension, candidates, rest, definition)
