"""
Rule Tables - read-only reference data for the estimators.

Every *.csv and *.json file in the rules data directory becomes one table,
named after the file stem. CSV tables are keyed by their first column
(or by the columns listed in COMPOSITE_KEYS, joined with ':'); JSON tables
are objects of key -> attributes. Tables are loaded once and never mutated.
"""
import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Optional

import pandas as pd

from ..config.settings import get_settings
from .errors import RuleDataError, UnknownCategoryError

logger = logging.getLogger(__name__)

KEY_SEPARATOR = ':'

# Tables keyed by more than one column
COMPOSITE_KEYS = {
    'base_costs': ('species', 'gender'),
}


def make_key(*parts) -> str:
    """Build a table key from one or more categorical values."""
    return KEY_SEPARATOR.join(str(p) for p in parts)


class RuleTable:
    """A unique-keyed, read-only mapping of key -> attribute record."""

    def __init__(self, name: str, frame: pd.DataFrame):
        if frame.index.duplicated().any():
            dupes = sorted(set(frame.index[frame.index.duplicated()]))
            raise RuleDataError(f"Table '{name}' has duplicate keys: {dupes}")

        self.name = name
        self.columns = tuple(frame.columns)
        # Box to native Python values; empty cells become None
        clean = frame.astype(object).where(frame.notna(), None)
        rows = clean.to_dict(orient='index')
        self._rows = MappingProxyType({
            str(key): MappingProxyType(row) for key, row in rows.items()
        })

    @classmethod
    def from_records(cls, name: str, records: dict) -> 'RuleTable':
        """Build a table from a {key: {attr: value}} mapping."""
        return cls(name, pd.DataFrame.from_dict(records, orient='index'))

    def __contains__(self, key) -> bool:
        return str(key) in self._rows

    def __len__(self) -> int:
        return len(self._rows)

    def keys(self) -> list[str]:
        """Keys in file order."""
        return list(self._rows.keys())

    def row(self, key, field: Optional[str] = None) -> MappingProxyType:
        """Resolve one row, raising UnknownCategoryError naming the input field."""
        try:
            return self._rows[str(key)]
        except KeyError:
            raise UnknownCategoryError(field or self.name, key, self.name) from None

    def value(self, key, column: str, field: Optional[str] = None):
        row = self.row(key, field)
        if column not in row:
            raise RuleDataError(f"Table '{self.name}' has no column '{column}'")
        return row[column]

    def label(self, key, field: Optional[str] = None) -> str:
        """Display label for a key, falling back to the key itself."""
        return self.row(key, field).get('label') or str(key)

    def to_records(self) -> list[dict]:
        return [{'key': key, **row} for key, row in self._rows.items()]


class RuleTables:
    """Named collection of rule tables."""

    def __init__(self, tables: Iterable[RuleTable], source: Optional[Path] = None):
        self._tables = {t.name: t for t in tables}
        self.source = source

    def __getitem__(self, name: str) -> RuleTable:
        try:
            return self._tables[name]
        except KeyError:
            raise RuleDataError(f"Rule table '{name}' is not loaded") from None

    def __contains__(self, name: str) -> bool:
        return name in self._tables

    def names(self) -> list[str]:
        return sorted(self._tables)


def _load_csv_table(path: Path) -> RuleTable:
    frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    frame.columns = [c.strip() for c in frame.columns]
    for col in frame.columns:
        frame[col] = frame[col].str.strip()

    name = path.stem
    key_columns = COMPOSITE_KEYS.get(name, (frame.columns[0],))
    missing = [c for c in key_columns if c not in frame.columns]
    if missing:
        raise RuleDataError(f"Table '{name}' is missing key columns {missing}")

    frame.index = frame[list(key_columns)].apply(KEY_SEPARATOR.join, axis=1)
    frame = frame.mask(frame == '')

    # Numeric-looking columns become floats
    for col in frame.columns:
        if col in key_columns:
            continue
        converted = pd.to_numeric(frame[col], errors='coerce')
        if converted.notna().sum() == frame[col].notna().sum():
            frame[col] = converted
    return RuleTable(name, frame)


def _load_json_table(path: Path) -> RuleTable:
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise RuleDataError(f"Table '{path.stem}' must be a JSON object of key -> attributes")
    return RuleTable.from_records(path.stem, data)


def load_rule_tables(rules_dir: Path) -> RuleTables:
    """Load every table file in a directory."""
    if not rules_dir.exists():
        raise FileNotFoundError(f"Rules data directory not found at {rules_dir}")

    tables = []
    for path in sorted(rules_dir.iterdir()):
        if path.name.endswith('_rules.json'):
            continue  # predicate rules, see rule_matcher
        if path.suffix == '.csv':
            tables.append(_load_csv_table(path))
        elif path.suffix == '.json':
            tables.append(_load_json_table(path))

    logger.info("Loaded %d rule tables from %s", len(tables), rules_dir)
    return RuleTables(tables, source=rules_dir)


# Default tables instance
_tables: Optional[RuleTables] = None


def get_rule_tables() -> RuleTables:
    """Get the process-wide rule tables, loading them on first use."""
    global _tables
    if _tables is None:
        _tables = load_rule_tables(get_settings().rules_dir)
    return _tables
