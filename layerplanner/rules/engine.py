#!/usr/bin/env python3
"""Rule engine mapping tree paths to volatility classes.

This module provides rule-based classification for LayerPlanner:
- Rules carry a target volatility class, patterns and attribute conditions
- Priority ordering (higher first), insertion order breaks ties
- First-match-wins evaluation
- Optional default class when nothing matches

Example:
    >>> engine = RuleEngine(default_class=VolatilityClass.APPLICATION_CODE)
    >>> engine.add_rule(Rule(
    ...     volatility=VolatilityClass.FIXED_DEPENDENCY,
    ...     patterns=["**/lib/**/*.jar"],
    ...     priority=300,
    ... ))
    >>> engine.classify("app/lib/guava-33.0.0-jre.jar", {"version": "33.0.0-jre"})
    <VolatilityClass.FIXED_DEPENDENCY: 'FIXED_DEPENDENCY'>
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from layerplanner.core.constants import VolatilityClass
from layerplanner.rules.patterns import PatternMatcher


class RuleOperator(Enum):
    """Logical operator for combining conditions."""

    AND = "and"  # All conditions must match
    OR = "or"  # Any condition must match
    NOT = "not"  # Negate the condition


@dataclass
class Condition:
    """A single condition on a file attribute."""

    field: str  # Attribute name (name, version, size, ...)
    operator: str  # eq, ne, lt, le, gt, ge, contains, startswith, endswith, matches
    value: Any  # Value to compare against
    case_sensitive: bool = True  # Only used by "matches"


@dataclass
class Rule:
    """A classification rule.

    A rule matches when any of its patterns matches the path (or it has no
    patterns) and its conditions hold.
    """

    volatility: VolatilityClass
    name: Optional[str] = None
    patterns: List[str] = field(default_factory=list)
    conditions: List[Condition] = field(default_factory=list)
    condition_operator: RuleOperator = RuleOperator.AND
    priority: int = 0  # Higher priority evaluated first
    enabled: bool = True


class RuleEngine:
    """Rule engine that assigns exactly one volatility class per path.

    Features:
    - First-match-wins precedence
    - Pattern-based matching (glob or ``regex:``)
    - Attribute conditions
    - Priority-based ordering, stable for equal priorities
    - Optional default class
    """

    def __init__(self, default_class: Optional[VolatilityClass] = None):
        """Initialize rule engine.

        Args:
            default_class: Class assigned when no rule matches (None means no default)
        """
        self._rules: List[Rule] = []
        self._default_class = default_class
        self._pattern_matchers: Dict[int, PatternMatcher] = {}

    def add_rule(self, rule: Rule) -> None:
        """Add rule to engine.

        Args:
            rule: Rule to add
        """
        self._rules.append(rule)

        # sort() is stable, so equal priorities keep insertion order
        self._rules.sort(key=lambda r: r.priority, reverse=True)

        if rule.patterns:
            matcher = PatternMatcher()
            for pattern in rule.patterns:
                matcher.add_pattern(pattern)
            self._pattern_matchers[id(rule)] = matcher

    def remove_rule(self, name: str) -> bool:
        """Remove rule by name.

        Returns:
            True if rule was found and removed
        """
        for i, rule in enumerate(self._rules):
            if rule.name == name:
                self._pattern_matchers.pop(id(rule), None)
                self._rules.pop(i)
                return True
        return False

    def clear_rules(self) -> None:
        """Clear all rules."""
        self._rules.clear()
        self._pattern_matchers.clear()

    def classify(
        self, path: str, file_attrs: Optional[Dict[str, Any]] = None
    ) -> Optional[VolatilityClass]:
        """Determine the volatility class of a path.

        Args:
            path: Tree-relative file path
            file_attrs: Optional attributes used by conditions

        Returns:
            Class of the first matching rule, else the default class (may be None)
        """
        rule = self.first_match(path, file_attrs)
        if rule is not None:
            return rule.volatility
        return self._default_class

    def first_match(
        self, path: str, file_attrs: Optional[Dict[str, Any]] = None
    ) -> Optional[Rule]:
        """Return the first enabled rule matching the path, or None."""
        for rule in self._rules:
            if rule.enabled and self._evaluate_rule(rule, path, file_attrs):
                return rule
        return None

    def _evaluate_rule(self, rule: Rule, path: str, file_attrs: Optional[Dict[str, Any]]) -> bool:
        """Evaluate if rule matches path."""
        if rule.patterns:
            matcher = self._pattern_matchers.get(id(rule))
            if matcher and not matcher.matches(path):
                return False

        if rule.conditions:
            if not file_attrs:
                return False

            if not self._evaluate_conditions(rule, file_attrs):
                return False

        return True

    def _evaluate_conditions(self, rule: Rule, file_attrs: Dict[str, Any]) -> bool:
        """Evaluate attribute conditions combined with the rule's operator."""
        results = [self._evaluate_condition(c, file_attrs) for c in rule.conditions]

        if rule.condition_operator == RuleOperator.AND:
            return all(results)
        elif rule.condition_operator == RuleOperator.OR:
            return any(results)
        elif rule.condition_operator == RuleOperator.NOT:
            return not all(results)

        return False

    def _evaluate_condition(self, condition: Condition, file_attrs: Dict[str, Any]) -> bool:
        """Evaluate single condition.

        A missing or None attribute never satisfies a condition.
        """
        actual = file_attrs.get(condition.field)
        if actual is None:
            return False

        expected = condition.value
        op = condition.operator.lower()

        if op == "eq" or op == "==":
            return actual == expected
        elif op == "ne" or op == "!=":
            return actual != expected
        elif op == "lt" or op == "<":
            return actual < expected
        elif op == "le" or op == "<=":
            return actual <= expected
        elif op == "gt" or op == ">":
            return actual > expected
        elif op == "ge" or op == ">=":
            return actual >= expected
        elif op == "contains":
            return expected in actual
        elif op == "startswith":
            return str(actual).startswith(str(expected))
        elif op == "endswith":
            return str(actual).endswith(str(expected))
        elif op == "matches":
            flags = 0 if condition.case_sensitive else re.IGNORECASE
            return bool(re.search(str(expected), str(actual), flags))

        return False

    def get_rules(self) -> List[Rule]:
        """Get all rules in evaluation order."""
        return self._rules.copy()

    def get_matching_rules(
        self, path: str, file_attrs: Optional[Dict[str, Any]] = None
    ) -> List[Rule]:
        """Get all enabled rules that match the path (useful for explaining ties)."""
        return [
            rule
            for rule in self._rules
            if rule.enabled and self._evaluate_rule(rule, path, file_attrs)
        ]

    def set_default_class(self, default_class: Optional[VolatilityClass]) -> None:
        """Set the class used when no rules match."""
        self._default_class = default_class

    def get_default_class(self) -> Optional[VolatilityClass]:
        """Get the class used when no rules match."""
        return self._default_class

    def enable_rule(self, name: str) -> bool:
        """Enable rule by name. Returns True if rule was found."""
        for rule in self._rules:
            if rule.name == name:
                rule.enabled = True
                return True
        return False

    def disable_rule(self, name: str) -> bool:
        """Disable rule by name. Returns True if rule was found."""
        for rule in self._rules:
            if rule.name == name:
                rule.enabled = False
                return True
        return False

    def __len__(self) -> int:
        """Return number of rules."""
        return len(self._rules)
