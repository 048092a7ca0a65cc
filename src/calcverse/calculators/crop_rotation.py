"""
Crop rotation planner and soil amendment calculator.

The soil amendment estimate runs through the estimation engine (rate per
100 sq ft scaled by area). The rotation schedule, succession dates and
plant family lookups are plain table reads.
"""
import dataclasses
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from ..config.settings import get_settings
from ..engine import EstimationEngine, Result, UnknownCategoryError
from ..engine.definition import (
    BaseRule, CategoricalField, EstimatorDefinition, Multiplier, NumericDomain,
)
from ..engine.rule_matcher import RuleMatcher
from ..engine.rule_tables import RuleTables, get_rule_tables

logger = logging.getLogger(__name__)

CALCULATOR = 'soil_amendment'

# Weeks from sowing to first harvest used for succession plantings
WEEKS_TO_HARVEST = 6


@dataclass(frozen=True)
class SoilAmendmentInput:
    amendment: str = 'compost'
    area_sqft: float = 100.0


@dataclass(frozen=True)
class GardenBed:
    bed_id: int
    name: str
    size_sqft: float = 100.0


DEFAULT_BEDS = tuple(GardenBed(i, f'Bed {i}') for i in range(1, 5))


@dataclass(frozen=True)
class BedAssignment:
    """What one bed grows in one year of the rotation."""
    year: int
    bed_id: int
    bed_name: str
    crops: tuple[str, ...]
    focus: str


@dataclass(frozen=True)
class SuccessionPlanting:
    planting: int
    planting_date: date
    harvest_week: int


def build_soil_definition(rules: RuleMatcher) -> EstimatorDefinition:
    return EstimatorDefinition(
        name=CALCULATOR,
        categorical=(CategoricalField('amendment', 'soil_amendments'),),
        domains=(
            NumericDomain('area_sqft', minimum=0, maximum=10_000_000, exclusive_minimum=True),
        ),
        base=BaseRule(
            table='soil_amendments',
            key_fields=('amendment',),
            column='rate_per_100_sqft',
            label='{amendment_label}',
            note='{rate_per_100_sqft:g} {unit} per 100 sq ft',
        ),
        multipliers=(Multiplier('area_sqft', divisor=100.0),),
        rules=rules,
        unit='',
        rounding_places=get_settings().rounding_places,
    )


_definition: Optional[EstimatorDefinition] = None


def get_soil_definition() -> EstimatorDefinition:
    global _definition
    if _definition is None:
        rules = RuleMatcher.from_file(get_settings().rules_dir / f'{CALCULATOR}_rules.json')
        _definition = build_soil_definition(rules)
    return _definition


def estimate_soil_amendment(inputs: SoilAmendmentInput, engine: Optional[EstimationEngine] = None) -> Result:
    """
    Amount of an amendment needed for a garden area.

    The result unit comes from the amendment row (inches or lbs per 100 sq ft).
    """
    engine = engine or EstimationEngine()
    result = engine.estimate(inputs, get_soil_definition())
    row = engine.tables['soil_amendments'].row(inputs.amendment, 'amendment')

    details = dict(result.details)
    details['rate_per_100_sqft'] = row['rate_per_100_sqft']
    details['description'] = row['description']
    return dataclasses.replace(result, unit=row['unit'], details=details)


def rotation_schedule(years: int = 4, beds=DEFAULT_BEDS, tables: Optional[RuleTables] = None) -> list[BedAssignment]:
    """
    Rotate each bed through the plan for the given number of years.

    Bed n grows plan entry (n - 1 + year) % years in each year, so no bed
    repeats a plant family before the cycle ends.
    """
    tables = tables or get_rule_tables()
    plan = tables['rotation_plans'].row(str(years), 'years')
    schedule = plan['schedule']
    cycle = len(schedule)

    assignments = []
    for year in range(cycle):
        for bed in beds:
            entry = schedule[(bed.bed_id - 1 + year) % cycle]
            assignments.append(BedAssignment(
                year=year + 1,
                bed_id=bed.bed_id,
                bed_name=bed.name,
                crops=tuple(entry['crops']),
                focus=entry['focus'],
            ))
    return assignments


def succession_dates(crop: str, start_date: date, tables: Optional[RuleTables] = None) -> list[SuccessionPlanting]:
    """Planting dates for continuous harvest of one crop through its season."""
    tables = tables or get_rule_tables()
    row = tables['succession_crops'].row(crop, 'crop')
    interval = int(row['interval_days'])
    season_days = int(row['total_weeks']) * 7

    plantings = []
    offset = 0
    while offset < season_days:
        plantings.append(SuccessionPlanting(
            planting=len(plantings) + 1,
            planting_date=start_date + timedelta(days=offset),
            harvest_week=offset // 7 + WEEKS_TO_HARVEST,
        ))
        offset += interval
    logger.debug("%d succession plantings for %s from %s", len(plantings), crop, start_date)
    return plantings


def plant_family(key: str, tables: Optional[RuleTables] = None) -> dict:
    tables = tables or get_rule_tables()
    return {'key': key, **tables['plant_families'].row(key, 'family')}


def family_for_plant(plant: str, tables: Optional[RuleTables] = None) -> dict:
    """Find the family a plant belongs to (case-insensitive)."""
    tables = tables or get_rule_tables()
    needle = plant.strip().lower()
    for record in tables['plant_families'].to_records():
        if any(p.lower() == needle for p in record['plants']):
            return record
    raise UnknownCategoryError('plant', plant, 'plant_families')


def cover_crops(tables: Optional[RuleTables] = None) -> list[dict]:
    tables = tables or get_rule_tables()
    return tables['cover_crops'].to_records()
