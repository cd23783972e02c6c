"""
podium/orm/prediction_entry.py
A user's picks for one prediction round.
"""
from datetime import datetime

from sqlalchemy import (
    Column, DateTime, Integer, Float, ForeignKey, UniqueConstraint, CheckConstraint, Index
)

from podium.orm.base import BaseModel, isoformat


PICK_FIELDS = ("p1", "p2", "p3", "last_place")


class PredictionEntry(BaseModel):
    """
    Picks submitted by one user for one round.

    The four team ids must be pairwise distinct. Entries are only
    written while the round is open.
    """
    __tablename__ = "prediction_entries"

    round_id = Column(Integer, ForeignKey("prediction_rounds.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    p1_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    p2_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    p3_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    last_place_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    tie_breaker = Column(Float, nullable=True)

    submitted_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("round_id", "user_id", name="uq_prediction_entry_round_user"),
        CheckConstraint(
            "p1_team_id != p2_team_id AND p1_team_id != p3_team_id "
            "AND p1_team_id != last_place_team_id AND p2_team_id != p3_team_id "
            "AND p2_team_id != last_place_team_id AND p3_team_id != last_place_team_id",
            name="ck_prediction_entry_distinct_picks"
        ),
        Index("idx_prediction_entries_round_submitted", "round_id", "submitted_at"),
        Index("idx_prediction_entries_user", "user_id"),
    )

    @property
    def picks(self) -> dict:
        return {
            "p1": self.p1_team_id,
            "p2": self.p2_team_id,
            "p3": self.p3_team_id,
            "last_place": self.last_place_team_id,
            "tie_breaker": self.tie_breaker,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "round_id": self.round_id,
            "user_id": self.user_id,
            "picks": self.picks,
            "submitted_at": isoformat(self.submitted_at),
            "updated_at": isoformat(self.updated_at),
        }
