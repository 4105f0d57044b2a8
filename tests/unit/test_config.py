import pytest

from mcp_token_pricing import config
from mcp_token_pricing.errors import ConfigurationError
from mcp_token_pricing.math_lib import PRECISION


def test_fixed_point_scale_comes_from_math_lib():
    assert not hasattr(config, "ONE")
    assert 0 <= config.DEFAULT_SIGMOID_MIDPOINT <= PRECISION


def test_sigmoid_midpoint_defaults_to_half(monkeypatch):
    monkeypatch.delenv("DEFAULT_SIGMOID_MIDPOINT", raising=False)
    value = config._get_env_int("DEFAULT_SIGMOID_MIDPOINT", PRECISION // 2, min_val=0, max_val=PRECISION)
    assert value == 500_000_000_000_000_000


def test_sigmoid_midpoint_above_full_progress_rejected(monkeypatch):
    monkeypatch.setenv("DEFAULT_SIGMOID_MIDPOINT", str(PRECISION + 1))
    with pytest.raises(ConfigurationError):
        config._get_env_int("DEFAULT_SIGMOID_MIDPOINT", PRECISION // 2, min_val=0, max_val=PRECISION)


def test_non_integer_value_rejected(monkeypatch):
    monkeypatch.setenv("MAX_AVERAGE_PRICE_STEPS", "many")
    with pytest.raises(ConfigurationError):
        config._get_env_int("MAX_AVERAGE_PRICE_STEPS", 1000, min_val=1)


def test_log_level_choice_is_case_insensitive(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    assert config._get_env_choice("LOG_LEVEL", "INFO", config.LOG_LEVELS) == "DEBUG"
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ConfigurationError):
        config._get_env_choice("LOG_LEVEL", "INFO", config.LOG_LEVELS)
