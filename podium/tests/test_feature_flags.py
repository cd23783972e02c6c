import pytest

from podium.config.feature_flags import FeatureFlags, get_bool_env


@pytest.mark.parametrize("raw,expected", [
    ("true", True),
    ("1", True),
    ("Enabled", True),
    ("false", False),
    ("0", False),
    ("", False),
])
def test_get_bool_env(monkeypatch, raw, expected):
    monkeypatch.setenv("FEATURE_SOMETHING", raw)
    assert get_bool_env("FEATURE_SOMETHING") is expected


def test_get_bool_env_default(monkeypatch):
    monkeypatch.delenv("FEATURE_SOMETHING", raising=False)
    assert get_bool_env("FEATURE_SOMETHING", True) is True


def test_is_enabled(monkeypatch):
    monkeypatch.setattr(FeatureFlags, "FEATURE_PREDICTION_ROUNDS", True)
    monkeypatch.setattr(FeatureFlags, "FEATURE_RACE_CHANGE_SYNC", False)
    assert FeatureFlags.is_enabled("FEATURE_PREDICTION_ROUNDS") is True
    assert FeatureFlags.is_enabled("FEATURE_RACE_CHANGE_SYNC") is False
    assert FeatureFlags.is_enabled("FEATURE_UNKNOWN") is False
    assert FeatureFlags.as_dict() == {
        "FEATURE_PREDICTION_ROUNDS": True,
        "FEATURE_RACE_CHANGE_SYNC": False,
    }
