"""
Engine tests against a small in-memory definition (framed prints).

These pin the stage order, line-item conservation, message ordering and
error behavior independently of the shipped rule data.
"""
import os
import sys

import pandas as pd
import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from calcverse.engine import (
    DomainError, EstimationEngine, RuleDataError, UnknownCategoryError, compare_across, estimate,
)
from calcverse.engine.definition import (
    BaseRule, CategoricalField, ComparisonNotes, DiscountRule, EstimatorDefinition,
    Multiplier, NumericDomain, ReimbursementRule,
)
from calcverse.engine.models import round_amount
from calcverse.engine.rule_matcher import RuleMatcher
from calcverse.engine.rule_tables import RuleTable, RuleTables


PRINT_RULES = [
    {"rule_id": "FEE-RUSH", "name": "Rush Fee", "match": {"rush": True},
     "action": {"type": "conditional_fee", "value": 25}},
    {"rule_id": "ADD-FRAME", "name": "Frame", "match": {"include_frame": True},
     "action": {"type": "optional_item", "value": 40}},
    {"rule_id": "STEP-HANG",
     "action": {"type": "message", "group": "next_step", "value": "Hang it somewhere dry"}},
    {"rule_id": "TIP-MATTE", "match": {"finish": "gloss"},
     "action": {"type": "message", "group": "tip", "value": "Matte hides fingerprints"}},
    {"rule_id": "WARN-LARGE", "match": {"size": "large"},
     "action": {"type": "message", "group": "warning", "value": "Large prints ship separately"}},
    {"rule_id": "WARN-BULK", "match": {"min_quantity": 10},
     "action": {"type": "message", "group": "warning", "value": "Bulk orders take a week"}},
]


@pytest.fixture(scope="module")
def tables():
    return RuleTables([
        RuleTable.from_records('sizes', {
            'small': {'label': 'Small', 'price': 100.0},
            'large': {'label': 'Large', 'price': 200.0},
        }),
        RuleTable.from_records('finishes', {
            'matte': {'multiplier': 1.0},
            'gloss': {'multiplier': 1.5},
        }),
        RuleTable.from_records('finish_notes', {
            'matte': {'notes': ['Hides smudges']},
            'gloss': {'notes': ['Shows fingerprints', 'Brighter colors']},
        }),
    ])


@pytest.fixture(scope="module")
def definition():
    return EstimatorDefinition(
        name='print',
        base=BaseRule('sizes', ('size',), 'price', label='{size_label} Print', note='{finish} finish'),
        rules=RuleMatcher.from_definitions(PRINT_RULES),
        categorical=(CategoricalField('size', 'sizes'), CategoricalField('finish', 'finishes')),
        domains=(
            NumericDomain('quantity', minimum=1, maximum=100, integer=True),
            NumericDomain('credit', minimum=0, maximum=10_000),
        ),
        flags=('rush', 'include_frame'),
        multipliers=(Multiplier('finish', 'finishes'), Multiplier('quantity')),
        discount=DiscountRule('quantity', per_unit_percent=5, cap_percent=20, label='Bulk ({percent:g}%)'),
        reimbursement=ReimbursementRule('credit', label='Gift Card'),
        comparison_notes={'finish': ComparisonNotes('finish_notes', 'notes')},
    )


@pytest.fixture(scope="module")
def engine(tables):
    return EstimationEngine(tables)


def make_record(**overrides):
    record = {
        'size': 'small', 'finish': 'matte', 'quantity': 1,
        'rush': False, 'include_frame': False, 'credit': 0.0,
    }
    record.update(overrides)
    return record


def test_base_only(engine, definition):
    result = engine.estimate(make_record(), definition)
    assert result.total == 100.0
    assert len(result.line_items) == 1
    line = result.line_items[0]
    assert line.label == 'Small Print'
    assert line.note == 'matte finish'
    assert line.kind == 'base'


def test_stage_order_and_conservation(engine, definition):
    result = engine.estimate(make_record(finish='gloss', quantity=2, rush=True, include_frame=True), definition)

    # 100 x 1.5 x 2 = 300, +25 rush, +40 frame, -5% of 365
    assert [li.kind for li in result.line_items] == ['base', 'fee', 'addon', 'discount']
    assert [li.rule_id for li in result.line_items] == [None, 'FEE-RUSH', 'ADD-FRAME', None]
    assert result.line_items[3].amount == pytest.approx(-18.25)
    assert result.line_items[3].label == 'Bulk (5%)'
    assert result.total == 346.75
    assert result.total == round_amount(sum(li.amount for li in result.line_items))


def test_discount_is_capped(engine, definition):
    result = engine.estimate(make_record(quantity=10), definition)
    assert result.details['discount_percent'] == 20
    assert result.total == 800.0


def test_no_discount_line_for_single_unit(engine, definition):
    result = engine.estimate(make_record(), definition)
    assert result.details['discount_percent'] == 0
    assert not [li for li in result.line_items if li.kind == 'discount']


@pytest.mark.parametrize("credit", [0.0, 50.0, 100.0, 250.0, 10_000.0])
def test_reimbursement_never_goes_below_zero(engine, definition, credit):
    result = engine.estimate(make_record(credit=credit), definition)
    assert result.total >= 0
    assert result.total == round_amount(max(100.0 - credit, 0.0))


def test_reimbursement_capped_at_subtotal(engine, definition):
    result = engine.estimate(make_record(credit=1000.0), definition)
    assert result.total == 0.0
    assert result.details['reimbursement_requested'] == 1000.0
    assert result.details['reimbursement_applied'] == 100.0
    assert result.line_items[-1].kind == 'credit'
    assert result.line_items[-1].amount == -100.0


def test_messages_are_grouped_in_order(engine, definition):
    result = engine.estimate(make_record(size='large', finish='gloss', quantity=10), definition)
    assert [m.group for m in result.messages] == ['warning', 'warning', 'tip', 'next_step']
    # Declaration order inside a group
    assert result.warnings == ['Large prints ship separately', 'Bulk orders take a week']
    assert result.tips == ['Matte hides fingerprints']
    assert result.next_steps == ['Hang it somewhere dry']


def test_messages_do_not_change_total(engine, definition):
    quiet = engine.estimate(make_record(), definition)
    noisy = engine.estimate(make_record(quantity=1, finish='matte', size='small'), definition)
    assert quiet.total == noisy.total


def test_unknown_category_raises(engine, definition):
    with pytest.raises(UnknownCategoryError) as exc:
        engine.estimate(make_record(size='medium'), definition)
    assert exc.value.field == 'size'
    assert exc.value.value == 'medium'
    assert exc.value.table == 'sizes'


@pytest.mark.parametrize("field, value", [
    ('quantity', 0),
    ('quantity', 101),
    ('quantity', 2.5),
    ('quantity', 'three'),
    ('quantity', True),
    ('quantity', float('nan')),
    ('credit', -1.0),
    ('credit', float('inf')),
    ('rush', 'yes'),
])
def test_domain_errors(engine, definition, field, value):
    with pytest.raises(DomainError) as exc:
        engine.estimate(make_record(**{field: value}), definition)
    assert exc.value.field == field


def test_missing_field_is_a_domain_error(engine, definition):
    record = make_record()
    del record['quantity']
    with pytest.raises(DomainError):
        engine.estimate(record, definition)


def test_input_is_not_mutated(engine, definition):
    record = make_record(finish='gloss', rush=True)
    snapshot = dict(record)
    engine.estimate(record, definition)
    assert record == snapshot


def test_idempotent(engine, definition):
    record = make_record(size='large', finish='gloss', quantity=3, include_frame=True, credit=20.0)
    assert engine.estimate(record, definition) == engine.estimate(record, definition)


def test_result_cannot_be_edited_in_place(engine, definition):
    result = engine.estimate(make_record(quantity=3), definition)
    with pytest.raises(TypeError):
        result.details['discount_percent'] = 0
    with pytest.raises(TypeError):
        result.comparisons['finish'] = ()
    assert result.details['discount_percent'] == 10


def test_comparison_row_details_are_read_only(engine, definition):
    row = engine.compare_across('finish', ['gloss'], make_record(), definition)[0]
    with pytest.raises(TypeError):
        row.details['base_amount'] = 0.0
    assert row.details['base_amount'] == 150.0


def test_module_level_estimate(tables, definition):
    assert estimate(make_record(), definition, tables).total == 100.0


def test_trace_ends_with_total(engine, definition):
    result = engine.estimate(make_record(rush=True), definition)
    assert result.trace[0].step == 'Base'
    assert result.trace[-1].step == 'Total'
    assert 'Rush Fee' in result.get_trace_text()


def test_display_dict_rounds_amounts(engine, definition):
    result = engine.estimate(make_record(finish='gloss', quantity=3), definition)
    display = result.to_display_dict()
    assert display['total'] == result.total
    assert all(round(li['amount'], 2) == li['amount'] for li in display['line_items'])
    assert set(display['messages']) == {'warning', 'tip', 'next_step'}


# ============================================================================
# compare_across
# ============================================================================

def test_compare_across_finishes(tables, definition):
    rows = compare_across('finish', ['matte', 'gloss'], make_record(), definition, tables)
    assert [r.value for r in rows] == ['matte', 'gloss']
    assert [r.total for r in rows] == [100.0, 150.0]
    assert rows[1].notes == ('Shows fingerprints', 'Brighter colors')
    assert rows[0].details['base_amount'] == 100.0


def test_compare_across_matches_estimate(engine, definition):
    record = make_record(size='large', rush=True, quantity=4)
    rows = engine.compare_across('finish', ['gloss'], record, definition)
    assert rows[0].total == engine.estimate({**record, 'finish': 'gloss'}, definition).total


def test_compare_across_unknown_candidate(engine, definition):
    with pytest.raises(UnknownCategoryError):
        engine.compare_across('finish', ['matte', 'satin'], make_record(), definition)


def test_compare_across_non_categorical(engine, definition):
    with pytest.raises(DomainError):
        engine.compare_across('quantity', [1, 2], make_record(), definition)


# ============================================================================
# Rule data validation
# ============================================================================

def test_duplicate_rule_ids_rejected():
    with pytest.raises(RuleDataError, match="Duplicate"):
        RuleMatcher.from_definitions([PRINT_RULES[0], PRINT_RULES[0]])


@pytest.mark.parametrize("raw", [
    {"rule_id": "BAD-TYPE", "action": {"type": "percent_off", "value": 10}},
    {"rule_id": "BAD-AMOUNT", "action": {"type": "conditional_fee", "value": "lots"}},
    {"rule_id": "BAD-GROUP", "action": {"type": "message", "group": "aside", "value": "hi"}},
    {"rule_id": "NO-TEXT", "action": {"type": "message", "group": "tip", "value": ""}},
    {"action": {"type": "message", "group": "tip", "value": "no id"}},
])
def test_invalid_rules_rejected(raw):
    with pytest.raises(RuleDataError):
        RuleMatcher.from_definitions([raw])


def test_inactive_rules_are_skipped():
    matcher = RuleMatcher.from_definitions([{**PRINT_RULES[0], "active": False}])
    assert matcher.find_matching_rules({'rush': True}) == []


def test_rule_on_unknown_field(engine, definition):
    broken = EstimatorDefinition(
        name='print',
        base=definition.base,
        categorical=definition.categorical,
        rules=RuleMatcher.from_definitions([
            {"rule_id": "FEE-GHOST", "match": {"ghost": True}, "action": {"type": "conditional_fee", "value": 5}},
        ]),
    )
    with pytest.raises(RuleDataError, match="ghost"):
        engine.estimate(make_record(), broken)


def test_duplicate_table_keys_rejected():
    frame = pd.DataFrame({'price': [1.0, 2.0]}, index=['small', 'small'])
    with pytest.raises(RuleDataError, match="duplicate"):
        RuleTable('sizes', frame)


def test_missing_table(tables):
    with pytest.raises(RuleDataError):
        tables['colors']


def test_round_amount_half_up():
    assert round_amount(2.675) == 2.68
    assert round_amount(0.125) == 0.13
    assert round_amount(-48.2) == -48.2
