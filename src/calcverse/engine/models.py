"""
Data models for the estimation engine.

Uses dataclasses for structured, type-safe data representation.
Line items and results are frozen; a Worksheet collects them while the
engine runs and is frozen into a Result at the end.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from types import MappingProxyType
from typing import Mapping, Optional


MESSAGE_GROUPS = ('warning', 'tip', 'next_step')


def round_amount(value: float, places: int = 2) -> float:
    """Round half-up to a fixed number of places (not banker's rounding)."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class TraceStep:
    """A single step in the estimation trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass(frozen=True)
class LineItem:
    """One signed, labelled contribution to a total."""
    label: str
    amount: float  # unrounded
    note: str = ""
    kind: str = "base"  # base, fee, addon, discount, credit
    rule_id: Optional[str] = None

    @property
    def display_amount(self) -> float:
        return round_amount(self.amount)


@dataclass(frozen=True)
class Message:
    """A recommendation, warning or next step."""
    group: str
    text: str
    rule_id: Optional[str] = None


@dataclass(frozen=True)
class ComparisonRow:
    """One alternate-scenario total from compare_across."""
    value: str
    label: str
    total: float
    notes: tuple[str, ...] = ()
    details: Mapping = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))


@dataclass(frozen=True)
class Result:
    """Complete result of one estimation."""
    calculator: str
    total: float
    line_items: tuple[LineItem, ...]
    messages: tuple[Message, ...] = ()
    comparisons: Mapping[str, tuple[ComparisonRow, ...]] = field(default_factory=dict)
    details: Mapping = field(default_factory=dict)
    unit: str = "USD"
    trace: tuple[TraceStep, ...] = ()

    def __post_init__(self):
        # Read-only views so a returned Result can't be edited in place
        object.__setattr__(self, "comparisons", MappingProxyType(dict(self.comparisons)))
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))

    def _messages_in(self, group: str) -> list[str]:
        return [m.text for m in self.messages if m.group == group]

    @property
    def warnings(self) -> list[str]:
        return self._messages_in('warning')

    @property
    def tips(self) -> list[str]:
        return self._messages_in('tip')

    @property
    def next_steps(self) -> list[str]:
        return self._messages_in('next_step')

    def line_total(self, kind: str) -> float:
        """Sum of unrounded amounts for one kind of line item."""
        return sum(item.amount for item in self.line_items if item.kind == kind)

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"• {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"• {t.step}: {t.description}")
        return "\n".join(lines)

    def to_display_dict(self) -> dict:
        """Flatten to a plain dict with amounts rounded for display."""
        return {
            "calculator": self.calculator,
            "total": self.total,
            "unit": self.unit,
            "line_items": [
                {
                    "label": item.label,
                    "amount": item.display_amount,
                    "note": item.note,
                    "kind": item.kind,
                }
                for item in self.line_items
            ],
            "messages": {group: self._messages_in(group) for group in MESSAGE_GROUPS},
            "comparisons": {
                name: [
                    {
                        "value": row.value,
                        "label": row.label,
                        "total": row.total,
                        "notes": list(row.notes),
                        **row.details,
                    }
                    for row in rows
                ]
                for name, rows in self.comparisons.items()
            },
            "details": dict(self.details),
        }


@dataclass
class Worksheet:
    """Mutable scratch state for one engine run."""
    calculator: str
    line_items: list[LineItem] = field(default_factory=list)
    details: dict = field(default_factory=dict)
    trace: list[TraceStep] = field(default_factory=list)

    @property
    def subtotal(self) -> float:
        return sum(item.amount for item in self.line_items)

    def add_line(self, item: LineItem):
        self.line_items.append(item)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))
