"""
podium/orm/race.py
Race and the per-user points it produced.
"""
from sqlalchemy import Column, String, DateTime, Integer, Float, ForeignKey, UniqueConstraint, Index

from podium.orm.base import BaseModel, isoformat


class Race(BaseModel):
    """
    A single race within a season.

    Attributes:
        season_id: Owning season
        name: Display name
        date: When the race is held
    """
    __tablename__ = "races"

    season_id = Column(Integer, ForeignKey("seasons.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(128), nullable=False)
    date = Column(DateTime, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "season_id": self.season_id,
            "name": self.name,
            "date": isoformat(self.date),
        }


class RaceResult(BaseModel):
    """Points earned by one user in one race."""
    __tablename__ = "race_results"

    race_id = Column(Integer, ForeignKey("races.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    points_earned = Column(Float, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("race_id", "user_id", name="uq_race_result_user"),
        Index("idx_race_results_race", "race_id"),
    )

    def to_dict(self):
        return {
            "race_id": self.race_id,
            "user_id": self.user_id,
            "points_earned": self.points_earned,
        }
