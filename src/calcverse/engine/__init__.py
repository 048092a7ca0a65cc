"""Engine subpackage - core estimation logic and rule resolution."""
from .estimation_engine import EstimationEngine, estimate, compare_across
from .errors import EstimationError, UnknownCategoryError, DomainError, RuleDataError
from .models import LineItem, Message, ComparisonRow, Result

__all__ = [
    'EstimationEngine', 'estimate', 'compare_across',
    'EstimationError', 'UnknownCategoryError', 'DomainError', 'RuleDataError',
    'LineItem', 'Message', 'ComparisonRow', 'Result',
]
