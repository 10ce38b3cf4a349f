"""Tests for the classification rule engine."""
import pytest

from layerplanner.core.constants import VolatilityClass
from layerplanner.rules.engine import Condition, Rule, RuleEngine, RuleOperator

FIXED = VolatilityClass.FIXED_DEPENDENCY
SNAPSHOT = VolatilityClass.SNAPSHOT_DEPENDENCY
RESOURCE = VolatilityClass.RESOURCE
APP = VolatilityClass.APPLICATION_CODE


@pytest.fixture
def engine():
    engine = RuleEngine(default_class=APP)
    engine.add_rule(Rule(volatility=FIXED, name="jars", patterns=["**/lib/**/*.jar"], priority=300))
    engine.add_rule(Rule(volatility=RESOURCE, name="static", patterns=["**/static/**"], priority=200))
    engine.add_rule(Rule(volatility=APP, name="classes", patterns=["**/classes/**"], priority=100))
    return engine


class TestRuleEngine:
    """Priority and first-match-wins."""

    def test_first_match(self, engine):
        assert engine.classify("BOOT-INF/lib/guava.jar") == FIXED
        assert engine.classify("BOOT-INF/classes/com/acme/App.class") == APP

    def test_higher_priority_wins_overlap(self, engine):
        assert engine.classify("BOOT-INF/classes/static/index.html") == RESOURCE
        names = [r.name for r in engine.get_matching_rules("BOOT-INF/classes/static/index.html")]
        assert names == ["static", "classes"]

    def test_default_class(self, engine):
        assert engine.classify("bin/app") == APP
        assert engine.first_match("bin/app") is None

    def test_no_default(self):
        engine = RuleEngine()
        assert engine.classify("bin/app") is None
        engine.set_default_class(RESOURCE)
        assert engine.get_default_class() == RESOURCE

    def test_insertion_order_breaks_ties(self):
        engine = RuleEngine()
        engine.add_rule(Rule(volatility=RESOURCE, name="first", patterns=["**/*.txt"]))
        engine.add_rule(Rule(volatility=APP, name="second", patterns=["**/*.txt"]))
        assert engine.classify("notes.txt") == RESOURCE

    def test_evaluation_order(self, engine):
        assert [r.priority for r in engine.get_rules()] == [300, 200, 100]

    def test_rule_without_patterns_matches_everything(self):
        engine = RuleEngine()
        engine.add_rule(Rule(volatility=RESOURCE))
        assert engine.classify("anything/at/all") == RESOURCE

    def test_disable_and_enable(self, engine):
        assert engine.disable_rule("static")
        assert engine.classify("BOOT-INF/classes/static/index.html") == APP
        assert engine.enable_rule("static")
        assert engine.classify("BOOT-INF/classes/static/index.html") == RESOURCE
        assert not engine.disable_rule("missing")

    def test_remove_rule(self, engine):
        assert engine.remove_rule("jars")
        assert not engine.remove_rule("jars")
        assert len(engine) == 2
        assert engine.classify("BOOT-INF/lib/guava.jar") == APP

    def test_clear_rules(self, engine):
        engine.clear_rules()
        assert len(engine) == 0
        assert engine.classify("BOOT-INF/lib/guava.jar") == APP


class TestConditions:
    """Attribute conditions."""

    def _snapshot_rule(self, operator=RuleOperator.AND):
        return Rule(
            volatility=SNAPSHOT,
            patterns=["**/*.jar"],
            conditions=[
                Condition(field="version", operator="matches", value="snapshot", case_sensitive=False)
            ],
            condition_operator=operator,
            priority=400,
        )

    def test_matches_condition(self):
        engine = RuleEngine(default_class=FIXED)
        engine.add_rule(self._snapshot_rule())
        assert engine.classify("lib/a-1.0-SNAPSHOT.jar", {"version": "1.0-SNAPSHOT"}) == SNAPSHOT
        assert engine.classify("lib/a-1.0.jar", {"version": "1.0"}) == FIXED

    def test_missing_attributes_never_match(self):
        engine = RuleEngine(default_class=FIXED)
        engine.add_rule(self._snapshot_rule())
        assert engine.classify("lib/a-1.0-SNAPSHOT.jar") == FIXED
        assert engine.classify("lib/a.jar", {"version": None}) == FIXED

    def test_not_operator(self):
        engine = RuleEngine(default_class=FIXED)
        engine.add_rule(self._snapshot_rule(RuleOperator.NOT))
        assert engine.classify("lib/a-1.0.jar", {"version": "1.0"}) == SNAPSHOT

    @pytest.mark.parametrize(
        "operator,value,expected",
        [
            ("eq", 10, True),
            ("!=", 10, False),
            ("lt", 11, True),
            ("<=", 10, True),
            ("gt", 10, False),
            (">=", 11, False),
            ("unknown", 10, False),
        ],
    )
    def test_comparison_operators(self, operator, value, expected):
        engine = RuleEngine()
        engine.add_rule(
            Rule(volatility=RESOURCE, conditions=[Condition("size", operator, value)])
        )
        result = engine.classify("a.bin", {"size": 10})
        assert (result == RESOURCE) is expected

    def test_string_operators(self):
        engine = RuleEngine()
        engine.add_rule(
            Rule(
                volatility=RESOURCE,
                conditions=[
                    Condition("name", "startswith", "shared-"),
                    Condition("name", "endswith", ".jar"),
                    Condition("name", "contains", "model"),
                ],
            )
        )
        assert engine.classify("lib/shared-model.jar", {"name": "shared-model.jar"}) == RESOURCE
        assert engine.classify("lib/other.jar", {"name": "other.jar"}) is None

    def test_or_operator(self):
        engine = RuleEngine()
        engine.add_rule(
            Rule(
                volatility=RESOURCE,
                conditions=[Condition("name", "eq", "a"), Condition("name", "eq", "b")],
                condition_operator=RuleOperator.OR,
            )
        )
        assert engine.classify("x/b", {"name": "b"}) == RESOURCE
        assert engine.classify("x/c", {"name": "c"}) is None
