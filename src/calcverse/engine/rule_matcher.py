"""
Rule Matcher - Matches predicate rules against an input record.

Rules are loaded from a <calculator>_rules.json file and matched against
the fields of an input record. A rule's "match" block is a conjunction:

    {"gender": "female"}            field equals value
    {"species": ["dog", "cat"]}     field is one of the values
    {"min_age_in_months": 84}       field >= value
    {"max_age_in_months": 11}       field <= value

Matched rules are returned in declaration order.
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from .errors import RuleDataError
from .models import MESSAGE_GROUPS

logger = logging.getLogger(__name__)

AMOUNT_ACTIONS = {'conditional_fee', 'optional_item'}
VALID_ACTION_TYPES = AMOUNT_ACTIONS | {'message'}


@dataclass(frozen=True)
class Rule:
    """A validated predicate rule."""
    rule_id: str
    name: str
    active: bool
    match: dict
    action_type: str
    action_value: Any
    note: str = ""
    group: Optional[str] = None


@dataclass(frozen=True)
class MatchedRule:
    """A rule that matched with context."""
    rule_id: str
    name: str
    action_type: str
    action_value: Any
    note: str
    group: Optional[str]
    match_reason: str


def validate_rule(raw: dict, position: int) -> Rule:
    """
    Validate and parse one rule definition.

    Raises RuleDataError describing the first problem found.
    """
    rule_id = str(raw.get('rule_id') or '').strip()
    if not rule_id:
        raise RuleDataError(f"Rule #{position}: rule_id is required")

    action = raw.get('action') or {}
    action_type = action.get('type')
    if action_type not in VALID_ACTION_TYPES:
        raise RuleDataError(
            f"Rule {rule_id}: invalid action type {action_type!r}, "
            f"must be one of: {sorted(VALID_ACTION_TYPES)}"
        )

    action_value = action.get('value')
    if action_type in AMOUNT_ACTIONS:
        try:
            action_value = float(action_value)
        except (TypeError, ValueError):
            raise RuleDataError(f"Rule {rule_id}: action value must be numeric for {action_type}") from None
    elif not action_value:
        raise RuleDataError(f"Rule {rule_id}: message text is required")

    group = action.get('group')
    if action_type == 'message' and group not in MESSAGE_GROUPS:
        raise RuleDataError(f"Rule {rule_id}: message group must be one of {MESSAGE_GROUPS}")

    match = raw.get('match') or {}
    if not isinstance(match, dict):
        raise RuleDataError(f"Rule {rule_id}: match must be an object")

    return Rule(
        rule_id=rule_id,
        name=raw.get('name') or rule_id,
        active=bool(raw.get('active', True)),
        match=match,
        action_type=action_type,
        action_value=action_value,
        note=raw.get('note', ''),
        group=group,
    )


class RuleMatcher:
    """
    Matches predicate rules to an input record.

    Rules are loaded once; matching never mutates matcher state, so one
    matcher can serve any number of calls.
    """

    def __init__(self, rules: list[Rule], source: Optional[Path] = None):
        seen = set()
        for rule in rules:
            if rule.rule_id in seen:
                raise RuleDataError(f"Duplicate rule_id '{rule.rule_id}'")
            seen.add(rule.rule_id)
        self.rules = [r for r in rules if r.active]
        self.source = source

    @classmethod
    def from_file(cls, path: Path) -> 'RuleMatcher':
        """Load rules from JSON file."""
        if not path.exists():
            raise FileNotFoundError(f"Rules file not found at {path}")
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        rules = [validate_rule(raw, i) for i, raw in enumerate(data.get('rules', []), start=1)]
        logger.info("Loaded %d rules from %s", len(rules), path.name)
        return cls(rules, source=path)

    @classmethod
    def from_definitions(cls, definitions: list[dict]) -> 'RuleMatcher':
        return cls([validate_rule(raw, i) for i, raw in enumerate(definitions, start=1)])

    def find_matching_rules(
        self,
        record: Mapping[str, Any],
        action_type: Optional[str] = None,
    ) -> list[MatchedRule]:
        """Find all rules of one action type that match the record."""
        matched = []
        for rule in self.rules:
            if action_type and rule.action_type != action_type:
                continue

            reasons = match_conditions(rule.match, record, rule.rule_id)
            if reasons is None:
                continue

            matched.append(MatchedRule(
                rule_id=rule.rule_id,
                name=rule.name,
                action_type=rule.action_type,
                action_value=rule.action_value,
                note=rule.note,
                group=rule.group,
                match_reason=", ".join(reasons) if reasons else "always",
            ))
        return matched


def _field_value(record: Mapping[str, Any], field: str, owner: str):
    if field not in record:
        raise RuleDataError(f"{owner} references unknown field '{field}'")
    return record[field]


def match_conditions(match: Mapping[str, Any], record: Mapping[str, Any], owner: str = "rule") -> Optional[list[str]]:
    """Return match reasons, or None if any condition fails."""
    reasons = []
    for key, expected in match.items():
        if key.startswith('min_') and key not in record:
            field = key[4:]
            if _field_value(record, field, owner) < expected:
                return None
            reasons.append(f"{field}>={expected}")

        elif key.startswith('max_') and key not in record:
            field = key[4:]
            if _field_value(record, field, owner) > expected:
                return None
            reasons.append(f"{field}<={expected}")

        elif isinstance(expected, list):
            if _field_value(record, key, owner) not in expected:
                return None
            reasons.append(f"{key} in {expected}")

        else:
            if _field_value(record, key, owner) != expected:
                return None
            reasons.append(f"{key}={expected}")
    return reasons
