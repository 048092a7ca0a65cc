"""
Spay/Neuter cost estimator.

Prices a procedure from species × gender base costs, adjusted for dog
weight, then scaled by clinic tier, region and area type. Conditional
fees, optional services, the multi-pet discount and any wellness plan
reimbursement follow as separate line items.
"""
import dataclasses
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ..config.settings import get_settings
from ..engine import EstimationEngine, Result
from ..engine.definition import (
    BaseAdjustment, BaseRule, CategoricalField, ComparisonNotes, DiscountRule,
    EstimatorDefinition, Multiplier, NumericDomain, ReimbursementRule,
)
from ..engine.models import ComparisonRow, round_amount
from ..engine.rule_matcher import RuleMatcher
from ..engine.rule_tables import make_key

logger = logging.getLogger(__name__)

CALCULATOR = 'spay_neuter'


@dataclass(frozen=True)
class SpayNeuterInput:
    """One spay/neuter estimate request. Defaults match the calculator form."""
    species: str = 'dog'
    gender: str = 'female'
    weight_category: str = '10-25'
    age_in_months: int = 6

    region: str = 'National Average'
    area_type: str = 'suburban'
    clinic_tier: str = 'private-practice'

    is_pregnant_or_in_heat: bool = False
    is_cryptorchid: bool = False
    is_brachycephalic: bool = False
    is_obese: bool = False

    procedure_type: str = 'traditional'

    include_pre_op_bloodwork: bool = False
    include_iv_fluids: bool = False
    include_pain_medication: bool = True
    include_e_collar: bool = True
    include_microchip: bool = False
    include_antibiotics: bool = False
    include_post_op_exam: bool = False

    has_wellness_plan: bool = False
    wellness_plan_reimbursement: float = 150.0
    number_of_pets: int = 1

    calculation_mode: str = 'comprehensive'
    show_recovery_comparison: bool = False


FLAG_FIELDS = tuple(
    f.name for f in dataclasses.fields(SpayNeuterInput) if f.type in (bool, 'bool')
)


def build_definition(rules: RuleMatcher) -> EstimatorDefinition:
    """Wire the spay/neuter tables and rules into an engine definition."""
    return EstimatorDefinition(
        name=CALCULATOR,
        categorical=(
            CategoricalField('species', 'species'),
            CategoricalField('gender', 'genders'),
            CategoricalField('weight_category', 'weight_categories'),
            CategoricalField('region', 'regions'),
            CategoricalField('area_type', 'area_types'),
            CategoricalField('clinic_tier', 'clinic_tiers'),
            CategoricalField('procedure_type', 'procedures'),
            CategoricalField('calculation_mode', 'calculation_modes'),
        ),
        domains=(
            NumericDomain('age_in_months', minimum=0, maximum=360, integer=True),
            NumericDomain('number_of_pets', minimum=1, maximum=100, integer=True),
            NumericDomain('wellness_plan_reimbursement', minimum=0, maximum=10_000),
        ),
        flags=FLAG_FIELDS,
        base=BaseRule(
            table='base_costs',
            key_fields=('species', 'gender'),
            column='base_cost',
            label='{procedure} Procedure ({species})',
            note='{clinic_tier_label}, {region_label}',
        ),
        # Weight tiers only change pricing for dogs
        base_adjustments=(
            BaseAdjustment('weight_categories', 'weight_category', 'adjustment', when={'species': 'dog'}),
        ),
        multipliers=(
            Multiplier('clinic_tier', 'clinic_tiers'),
            Multiplier('region', 'regions'),
            Multiplier('area_type', 'area_types'),
        ),
        rules=rules,
        discount=DiscountRule(
            field='number_of_pets',
            per_unit_percent=5,
            cap_percent=20,
            free_units=1,
            label='Multi-Pet Discount ({percent:g}%)',
            note='{units} pets total',
        ),
        reimbursement=ReimbursementRule(
            amount_field='wellness_plan_reimbursement',
            enabled_field='has_wellness_plan',
            label='Wellness Plan Reimbursement',
            note='Insurance wellness plan coverage',
        ),
        comparison_notes={
            'clinic_tier': ComparisonNotes('clinic_tier_notes', 'pros_and_cons'),
            'procedure_type': ComparisonNotes('procedure_notes', 'benefits', ('pain_reduction', 'recovery_time')),
        },
        rounding_places=get_settings().rounding_places,
    )


_definition: Optional[EstimatorDefinition] = None


def get_definition() -> EstimatorDefinition:
    """Get the process-wide definition, loading the rules file once."""
    global _definition
    if _definition is None:
        rules = RuleMatcher.from_file(get_settings().rules_dir / f'{CALCULATOR}_rules.json')
        _definition = build_definition(rules)
    return _definition


def age_recommendation(inputs: SpayNeuterInput) -> str:
    """Timing advice for the procedure given species, size and age."""
    age = inputs.age_in_months

    if inputs.species == 'cat':
        if age < 5:
            return 'Perfect timing! Cats should be spayed/neutered before 5 months of age.'
        if age < 12:
            return 'Good timing. While earlier is ideal, spaying/neutering now still provides health benefits.'
        return "It's not too late! Spaying/neutering adult cats still prevents health issues and unwanted litters."

    if inputs.species == 'dog':
        if inputs.weight_category in ('<10', '10-25'):
            if 4 <= age <= 6:
                return 'Ideal timing for small/toy breed dogs (4-6 months).'
            if age < 4:
                return 'Consider waiting until 4 months for optimal development.'
            return 'Adult spay/neuter still provides health and behavioral benefits.'
        if inputs.weight_category == '100+':
            if 12 <= age <= 18:
                return 'Good timing for giant breeds (12-18 months recommended).'
            if age < 12:
                return 'Giant breeds may benefit from waiting until 12-18 months. Consult your vet.'
            return 'Adult spay/neuter is still beneficial. Discuss with your veterinarian.'
        if 6 <= age <= 9:
            return 'Good timing for medium to large breed dogs (6-9 months).'
        return 'Consult your veterinarian for breed-specific age recommendations.'

    return 'Consult your veterinarian for pet-specific age recommendations.'


def benchmark_costs(inputs: SpayNeuterInput, procedure_cost: float, engine: EstimationEngine) -> dict:
    """
    National and regional benchmarks for the procedure alone.

    The benchmarks are list prices without fees or add-ons, so the savings
    figures compare them with the procedure line, not the full total.
    """
    national = float(engine.tables['base_costs'].value(
        make_key(inputs.species, inputs.gender), 'base_cost', 'species, gender'
    ))
    regional = national * float(engine.tables['regions'].value(inputs.region, 'multiplier', 'region'))
    return {
        'national_average_cost': round_amount(national),
        'regional_average_cost': round_amount(regional),
        'procedure_cost': round_amount(procedure_cost),
        'savings_vs_national_average': round_amount(national - procedure_cost),
        'savings_vs_regional_average': round_amount(regional - procedure_cost),
    }


def compare(
    dimension: str,
    inputs: SpayNeuterInput,
    candidates: Optional[Iterable[str]] = None,
    engine: Optional[EstimationEngine] = None,
) -> list[ComparisonRow]:
    """Totals across clinic tiers or procedure types, everything else fixed."""
    engine = engine or EstimationEngine()
    definition = get_definition()
    if candidates is None:
        table_name = definition.table_for(dimension)
        candidates = engine.tables[table_name].keys() if table_name else [dimension]
    return engine.compare_across(dimension, candidates, inputs, definition)


def estimate_spay_neuter(inputs: SpayNeuterInput, engine: Optional[EstimationEngine] = None) -> Result:
    """
    Full estimate: priced breakdown, messages, benchmarks and comparisons.

    Clinic tiers are compared in the modes that ask for it; the procedure
    comparison is only offered for female dogs when requested.
    """
    engine = engine or EstimationEngine()
    definition = get_definition()
    result = engine.estimate(inputs, definition)

    details = dict(result.details)
    details.update(benchmark_costs(inputs, result.line_total('base'), engine))
    details['age_recommendation'] = age_recommendation(inputs)
    details['multi_pet_discount_percent'] = details.get('discount_percent', 0)
    details['multi_pet_discount'] = round_amount(-result.line_total('discount'))
    details['insurance_reimbursement'] = round_amount(-result.line_total('credit'))
    details['special_condition_total'] = round_amount(result.line_total('fee'))
    details['additional_services_cost'] = round_amount(result.line_total('addon'))
    # Before the multi-pet discount and wellness credit
    details['total_estimated_cost'] = round_amount(
        sum(result.line_total(kind) for kind in ('base', 'fee', 'addon'))
    )
    details['out_of_pocket_cost'] = result.total

    comparisons = {}
    mode = engine.tables['calculation_modes'].row(inputs.calculation_mode, 'calculation_mode')
    if str(mode.get('clinic_comparison')).lower() == 'true':
        comparisons['clinic_tier'] = tuple(compare('clinic_tier', inputs, engine=engine))
    if inputs.species == 'dog' and inputs.gender == 'female' and inputs.show_recovery_comparison:
        comparisons['procedure_type'] = tuple(compare('procedure_type', inputs, engine=engine))

    logger.debug("Spay/neuter estimate for %s %s: %s", inputs.species, inputs.gender, result.total)
    return dataclasses.replace(result, details=details, comparisons=comparisons)
