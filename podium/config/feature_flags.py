"""
Runtime switches of the prediction engine, read once from the environment.

    FEATURE_PREDICTION_ROUNDS=false   hides every /api/predictions endpoint
    FEATURE_RACE_CHANGE_SYNC=false    disables the race sync endpoint only
"""
import os
from typing import Dict


def get_bool_env(key: str, default: bool = False) -> bool:
    """Read an on/off environment variable ("true", "1", "yes", "on", "enabled")."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


class FeatureFlags:
    FEATURE_PREDICTION_ROUNDS: bool = get_bool_env('FEATURE_PREDICTION_ROUNDS', True)
    FEATURE_RACE_CHANGE_SYNC: bool = get_bool_env('FEATURE_RACE_CHANGE_SYNC', True)

    @classmethod
    def is_enabled(cls, flag_name: str) -> bool:
        return bool(getattr(cls, flag_name, False))

    @classmethod
    def as_dict(cls) -> Dict[str, bool]:
        return {
            name: cls.is_enabled(name)
            for name in dir(cls)
            if name.startswith("FEATURE_")
        }


feature_flags = FeatureFlags()
