"""
podium/orm/user_season_team.py
Which team a user drives for in a season.
"""
from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint

from podium.orm.base import BaseModel


class UserSeasonTeam(BaseModel):
    __tablename__ = "user_season_teams"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    season_id = Column(Integer, ForeignKey("seasons.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        # One team per user per season, and one user per team per season
        UniqueConstraint("user_id", "season_id", name="uq_user_season"),
        UniqueConstraint("team_id", "season_id", name="uq_team_season"),
    )

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "season_id": self.season_id,
            "team_id": self.team_id,
        }
