"""
podium/orm/season.py
Season with its participant roster and team list.

Roster membership is kept in plain association tables; the prediction
engine reads them through podium.services.season_directory.
"""
from sqlalchemy import Column, String, DateTime, Boolean, Integer, ForeignKey, Table

from podium.orm.base import Base, BaseModel, isoformat


season_participants = Table(
    "season_participants",
    Base.metadata,
    Column("season_id", Integer, ForeignKey("seasons.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

season_teams = Table(
    "season_teams",
    Base.metadata,
    Column("season_id", Integer, ForeignKey("seasons.id", ondelete="CASCADE"), primary_key=True),
    Column("team_id", Integer, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
)


class Season(BaseModel):
    __tablename__ = "seasons"

    name = Column(String(128), nullable=False)
    event_date = Column(DateTime, nullable=True)
    is_current = Column(Boolean, nullable=False, default=False)
    is_completed = Column(Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "event_date": isoformat(self.event_date),
            "is_current": self.is_current,
            "is_completed": self.is_completed,
        }
