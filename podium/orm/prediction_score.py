"""
podium/orm/prediction_score.py
Computed (or overridden) score of one user in one round.
"""
from sqlalchemy import (
    Column, String, DateTime, Integer, Float, Boolean, Text, ForeignKey, UniqueConstraint, Index
)

from podium.core.db_types import UniversalJSON
from podium.orm.base import BaseModel, isoformat


class PredictionScore(BaseModel):
    """
    Score row written by the recompute engine.

    Attributes:
        total: Points, rounded to two decimals
        breakdown: [{code, label, points, details}] awards that built the total
        predicted, actual: Pick snapshots at scoring time
        generated_*: Provenance of the run that last wrote the row
        is_overridden, override_*: Manual total set by an admin
    """
    __tablename__ = "prediction_scores"

    round_id = Column(Integer, ForeignKey("prediction_rounds.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    total = Column(Float, nullable=False, default=0)
    breakdown = Column(UniversalJSON, nullable=False, default=list)
    predicted = Column(UniversalJSON, nullable=True)
    actual = Column(UniversalJSON, nullable=True)

    generated_race_id = Column(Integer, nullable=True)
    generated_results_hash = Column(String(64), nullable=True)
    generated_at = Column(DateTime, nullable=True)
    generated_trigger = Column(String(64), nullable=True)
    generated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    is_overridden = Column(Boolean, nullable=False, default=False)
    override_reason = Column(Text, nullable=True)
    override_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    override_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("round_id", "user_id", name="uq_prediction_score_round_user"),
        Index("idx_prediction_scores_round_total", "round_id", "total"),
        Index("idx_prediction_scores_user", "user_id"),
    )

    @property
    def generated_from(self) -> dict:
        return {
            "race_id": self.generated_race_id,
            "race_results_hash": self.generated_results_hash,
            "generated_at": isoformat(self.generated_at),
            "trigger": self.generated_trigger,
            "generated_by": self.generated_by,
        }

    def clear_override(self):
        self.is_overridden = False
        self.override_reason = None
        self.override_by = None
        self.override_at = None

    def to_dict(self):
        return {
            "id": self.id,
            "round_id": self.round_id,
            "user_id": self.user_id,
            "total": self.total,
            "breakdown": list(self.breakdown or []),
            "predicted": self.predicted,
            "actual": self.actual,
            "generated_from": self.generated_from,
            "is_overridden": self.is_overridden,
            "override_reason": self.override_reason,
            "override_by": self.override_by,
            "override_at": isoformat(self.override_at),
            "updated_at": isoformat(self.updated_at),
        }
