"""LayerPlanner Rules System.

This module provides path pattern matching and classification rules:
- PatternMatcher: Glob and regex pattern matching
- RuleEngine: Priority-ordered, first-match-wins volatility classification

Rules decide which volatility class, and therefore which layer, each file of
the build output lands in.
"""

from .engine import Condition, Rule, RuleEngine, RuleOperator
from .patterns import PatternEntry, PatternMatcher, PatternType, glob_to_regex

__all__ = [
    # Pattern matching
    "PatternType",
    "PatternEntry",
    "PatternMatcher",
    "glob_to_regex",
    # Rule engine
    "RuleOperator",
    "Condition",
    "Rule",
    "RuleEngine",
]
