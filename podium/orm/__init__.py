"""
ORM models. Importing this package registers every table on Base.metadata.
"""
from podium.orm.base import Base, BaseModel
from podium.orm.user import User, UserRole
from podium.orm.team import Team
from podium.orm.season import Season, season_participants, season_teams
from podium.orm.race import Race, RaceResult
from podium.orm.user_season_team import UserSeasonTeam
from podium.orm.prediction_round import (
    PredictionRound, PredictionRoundTransition, RoundStatus,
    ROUND_STATUSES, SCORING_CONFIG_DEFAULTS,
)
from podium.orm.prediction_entry import PredictionEntry, PICK_FIELDS
from podium.orm.prediction_score import PredictionScore

__all__ = [
    "Base",
    "BaseModel",
    "User",
    "UserRole",
    "Team",
    "Season",
    "season_participants",
    "season_teams",
    "Race",
    "RaceResult",
    "UserSeasonTeam",
    "PredictionRound",
    "PredictionRoundTransition",
    "RoundStatus",
    "ROUND_STATUSES",
    "SCORING_CONFIG_DEFAULTS",
    "PredictionEntry",
    "PICK_FIELDS",
    "PredictionScore",
]
