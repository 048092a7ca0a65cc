"""
Engine errors.

Both caller-input errors are non-retryable: the caller must fix the input.
"""


class EstimationError(Exception):
    """Base class for errors raised while estimating."""


class UnknownCategoryError(EstimationError):
    """A categorical input resolved to no rule-table row."""

    def __init__(self, field: str, value, table: str = None):
        self.field = field
        self.value = value
        self.table = table or field
        super().__init__(
            f"Unknown value {value!r} for '{field}' (no entry in table '{self.table}')"
        )


class DomainError(EstimationError):
    """A numeric input is outside its declared domain."""

    def __init__(self, field: str, value, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid value {value!r} for '{field}': {reason}")


class RuleDataError(Exception):
    """Rule data on disk is malformed (duplicate keys, bad actions, ...)."""
