"""
podium/orm/prediction_round.py
Prediction round and its append-only status log.

A round is the prediction game attached to one race of one season.
It moves draft -> open -> locked -> scored -> published, with reopen
edges back to open. Every status change is recorded in
prediction_round_transitions.
"""
from enum import Enum
from datetime import datetime

from sqlalchemy import (
    Column, String, DateTime, Integer, Float, Boolean, Text, ForeignKey,
    UniqueConstraint, CheckConstraint, Index, event
)

from podium.orm.base import Base, BaseModel, isoformat


class RoundStatus(str, Enum):
    """Prediction round lifecycle status."""
    DRAFT = "draft"
    OPEN = "open"
    LOCKED = "locked"
    SCORED = "scored"
    PUBLISHED = "published"


ROUND_STATUSES = [s.value for s in RoundStatus]

# Keys of the per-round scoring configuration, mapped to their defaults.
SCORING_CONFIG_DEFAULTS = {
    "exact_position_points": 6,
    "top3_any_position_points": 3,
    "exact_last_place_points": 4,
    "tie_breaker_enabled": True,
    "tie_breaker_exact_points": 3,
    "tie_breaker_proximity_window": 10,
}


class PredictionRound(BaseModel):
    """
    Prediction round for a (season, race) pair.

    Attributes:
        season_id, race_id: The race this round predicts (unique pair)
        status: Current lifecycle status
        exact_position_points .. tie_breaker_proximity_window: Scoring weights
        opened_at, locked_at, scored_at, published_at: Lifecycle timestamps
        requires_review: Published scores may be stale or contain overrides
        last_scored_at, last_race_results_hash: Provenance of the last scoring run
        version: Incremented on every save; stale writers get a conflict
    """
    __tablename__ = "prediction_rounds"

    season_id = Column(Integer, ForeignKey("seasons.id", ondelete="CASCADE"), nullable=False)
    race_id = Column(Integer, ForeignKey("races.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(16), nullable=False, default=RoundStatus.DRAFT.value)
    lock_mode = Column(String(16), nullable=False, default="manual")

    exact_position_points = Column(Float, nullable=False, default=6)
    top3_any_position_points = Column(Float, nullable=False, default=3)
    exact_last_place_points = Column(Float, nullable=False, default=4)
    tie_breaker_enabled = Column(Boolean, nullable=False, default=True)
    tie_breaker_exact_points = Column(Float, nullable=False, default=3)
    tie_breaker_proximity_window = Column(Float, nullable=False, default=10)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    opened_at = Column(DateTime, nullable=True)
    locked_at = Column(DateTime, nullable=True)
    scored_at = Column(DateTime, nullable=True)
    published_at = Column(DateTime, nullable=True)

    requires_review = Column(Boolean, nullable=False, default=False)
    last_scored_at = Column(DateTime, nullable=True)
    last_race_results_hash = Column(String(64), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("season_id", "race_id", name="uq_prediction_round_season_race"),
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in ROUND_STATUSES) + ")",
            name="ck_prediction_round_status_valid"
        ),
        CheckConstraint("lock_mode = 'manual'", name="ck_prediction_round_lock_mode"),
        Index("idx_prediction_rounds_status_created", "status", "created_at"),
        Index("idx_prediction_rounds_race", "race_id"),
    )

    @property
    def scoring_config(self) -> dict:
        return {key: getattr(self, key) for key in SCORING_CONFIG_DEFAULTS}

    def to_dict(self, transitions=None):
        """Convert to dictionary."""
        result = {
            "id": self.id,
            "season_id": self.season_id,
            "race_id": self.race_id,
            "status": self.status,
            "lock_mode": self.lock_mode,
            "scoring_config": self.scoring_config,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "opened_at": isoformat(self.opened_at),
            "locked_at": isoformat(self.locked_at),
            "scored_at": isoformat(self.scored_at),
            "published_at": isoformat(self.published_at),
            "requires_review": self.requires_review,
            "last_scored_at": isoformat(self.last_scored_at),
            "last_race_results_hash": self.last_race_results_hash,
            "version": self.version,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if transitions is not None:
            result["status_log"] = [t.to_dict() for t in transitions]
        return result


class PredictionRoundTransition(Base):
    """
    One entry of a round's status log.

    Rows are append-only; they are removed only together with their round.
    """
    __tablename__ = "prediction_round_transitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_id = Column(
        Integer,
        ForeignKey("prediction_rounds.id", ondelete="CASCADE"),
        nullable=False
    )
    from_status = Column(String(16), nullable=True)
    to_status = Column(String(16), nullable=False)
    changed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    changed_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    reason = Column(Text, nullable=False, default="")
    trigger = Column(String(64), nullable=False, default="manual")

    __table_args__ = (
        Index("idx_round_transitions_round", "round_id", "id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "round_id": self.round_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by": self.changed_by,
            "changed_at": isoformat(self.changed_at),
            "reason": self.reason,
            "trigger": self.trigger,
        }


@event.listens_for(PredictionRoundTransition, 'before_update')
def prevent_transition_update(mapper, connection, target):
    """Status log rows are immutable once written."""
    raise ValueError("Prediction round transitions are append-only")
