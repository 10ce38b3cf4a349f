"""Tests for constants and type definitions."""
import pytest

from layerplanner.core.constants import (
    DEFAULT_CONFIG,
    DEFAULT_VOLATILITY_ORDER,
    LAYERPLANNER_VERSION,
    Capability,
    ConfigKey,
    ErrorCode,
    Limits,
    PlanState,
    VolatilityClass,
)


class TestErrorCodes:
    """Test error code definitions."""

    def test_error_codes_unique(self):
        """All error codes must have unique values."""
        codes = [e.value for e in ErrorCode]
        assert len(codes) == len(set(codes))

    def test_success_is_zero(self):
        """SUCCESS code must be 0 so it doubles as a process exit status."""
        assert ErrorCode.SUCCESS == 0

    def test_error_codes_in_range(self):
        """All error codes must be in 0-9 range."""
        for code in ErrorCode:
            assert 0 <= code.value <= 9

    def test_planner_codes(self):
        assert ErrorCode.INVALID_INPUT == 1
        assert ErrorCode.CONFLICT == 4
        assert ErrorCode.DEPENDENCY_ERROR == 5
        assert ErrorCode.CANCELLED == 8


class TestVolatilityClass:
    """Test volatility classes."""

    def test_default_order(self):
        assert DEFAULT_VOLATILITY_ORDER == (
            VolatilityClass.FIXED_DEPENDENCY,
            VolatilityClass.SNAPSHOT_DEPENDENCY,
            VolatilityClass.RESOURCE,
            VolatilityClass.APPLICATION_CODE,
        )

    def test_default_order_covers_every_class(self):
        assert set(DEFAULT_VOLATILITY_ORDER) == set(VolatilityClass)

    @pytest.mark.parametrize(
        "name",
        ["RESOURCE", "resource", " Resource "],
    )
    def test_parse_is_case_insensitive(self, name):
        assert VolatilityClass.parse(name) is VolatilityClass.RESOURCE

    def test_parse_accepts_dashes(self):
        assert VolatilityClass.parse("fixed-dependency") is VolatilityClass.FIXED_DEPENDENCY

    def test_parse_passes_members_through(self):
        assert VolatilityClass.parse(VolatilityClass.RESOURCE) is VolatilityClass.RESOURCE

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unknown volatility class"):
            VolatilityClass.parse("VENDOR")


class TestPlanState:
    """Test plan states."""

    def test_states(self):
        assert [s.value for s in PlanState] == ["planned", "assembling", "assembled", "failed"]


class TestCapability:
    """Test backend capabilities."""

    def test_values_unique(self):
        values = [c.value for c in Capability]
        assert len(values) == len(set(values))


class TestDefaultConfig:
    """Test compiled default configuration."""

    def test_root_key(self):
        assert list(DEFAULT_CONFIG) == [ConfigKey.ROOT]

    def test_policy_defaults(self):
        policy = DEFAULT_CONFIG[ConfigKey.ROOT][ConfigKey.POLICY]
        assert policy[ConfigKey.MAX_LAYERS] == Limits.DEFAULT_MAX_LAYERS == 4
        assert policy[ConfigKey.MAX_LAYER_BYTES] is None
        assert policy[ConfigKey.VOLATILITY_ORDER] == [c.value for c in DEFAULT_VOLATILITY_ORDER]

    def test_default_class_is_application_code(self):
        classification = DEFAULT_CONFIG[ConfigKey.ROOT][ConfigKey.CLASSIFICATION]
        assert classification[ConfigKey.DEFAULT_CLASS] == "APPLICATION_CODE"

    def test_options_env_default(self):
        entrypoint = DEFAULT_CONFIG[ConfigKey.ROOT][ConfigKey.ENTRYPOINT]
        assert entrypoint[ConfigKey.OPTIONS_ENV] == "JAVA_OPTS"

    def test_version_format(self):
        assert len(LAYERPLANNER_VERSION.split(".")) == 3
