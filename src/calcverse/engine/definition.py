"""
Estimator definitions - the declarative half of the engine.

A definition names the rule tables behind each categorical field, the
numeric domains, and the stages the engine runs in fixed order.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import DomainError
from .rule_matcher import RuleMatcher


@dataclass(frozen=True)
class CategoricalField:
    """An input field whose value must be a key of a rule table."""
    field: str
    table: str


@dataclass(frozen=True)
class NumericDomain:
    """Allowed range for a numeric input field."""
    field: str
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: bool = False
    integer: bool = False

    def check(self, value: Any):
        """Raise DomainError unless value lies inside the domain."""
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise DomainError(self.field, value, "must be a number")
        if not math.isfinite(value):
            raise DomainError(self.field, value, "must be finite")
        if self.integer and not float(value).is_integer():
            raise DomainError(self.field, value, "must be a whole number")
        if self.minimum is not None:
            if self.exclusive_minimum and value <= self.minimum:
                raise DomainError(self.field, value, f"must be greater than {self.minimum:g}")
            if not self.exclusive_minimum and value < self.minimum:
                raise DomainError(self.field, value, f"must be at least {self.minimum:g}")
        if self.maximum is not None and value > self.maximum:
            raise DomainError(self.field, value, f"must be at most {self.maximum:g}")


@dataclass(frozen=True)
class BaseRule:
    """
    Where the base amount comes from.

    `label` and `note` are format strings over the input record, the base
    row's columns and a `<field>_label` entry per categorical field.
    """
    table: str
    key_fields: tuple[str, ...]
    column: str
    label: str
    note: str = ""


@dataclass(frozen=True)
class BaseAdjustment:
    """Additive table lookup folded into the base before multipliers."""
    table: str
    field: str
    column: str
    when: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Multiplier:
    """
    A multiplicative factor.

    Categorical when `table` is set (factor = table[record[field]][column]),
    otherwise numeric (factor = record[field] / divisor).
    """
    field: str
    table: Optional[str] = None
    column: str = 'multiplier'
    divisor: float = 1.0


@dataclass(frozen=True)
class DiscountRule:
    """Percentage discount per unit beyond the free units, capped."""
    field: str
    per_unit_percent: float
    cap_percent: float
    free_units: int = 1
    label: str = "Discount ({percent:g}%)"
    note: str = ""


@dataclass(frozen=True)
class ReimbursementRule:
    """Flat credit subtracted last, never taking the total below zero."""
    amount_field: str
    enabled_field: Optional[str] = None
    label: str = "Reimbursement"
    note: str = ""


@dataclass(frozen=True)
class ComparisonNotes:
    """Static notes shown beside a compared dimension value."""
    table: str
    notes_column: str
    detail_columns: tuple[str, ...] = ()


@dataclass(frozen=True)
class EstimatorDefinition:
    """Everything the engine needs to price one kind of input record."""
    name: str
    base: BaseRule
    rules: RuleMatcher
    categorical: tuple[CategoricalField, ...] = ()
    domains: tuple[NumericDomain, ...] = ()
    flags: tuple[str, ...] = ()
    base_adjustments: tuple[BaseAdjustment, ...] = ()
    multipliers: tuple[Multiplier, ...] = ()
    discount: Optional[DiscountRule] = None
    reimbursement: Optional[ReimbursementRule] = None
    comparison_notes: dict = field(default_factory=dict)
    unit: str = "USD"
    rounding_places: int = 2

    def table_for(self, field_name: str) -> Optional[str]:
        for cat in self.categorical:
            if cat.field == field_name:
                return cat.table
        return None
