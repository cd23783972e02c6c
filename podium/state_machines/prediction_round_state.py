"""
Prediction Round State Machine
Server-side status enforcement for prediction rounds.

    draft -> open -> locked -> scored -> published
    locked | scored | published -> open   (reopen, reason required)

Every applied change appends one PredictionRoundTransition row.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from podium.errors import ConflictError, ErrorCode, InvalidTransitionError, NotFoundError, ValidationError
from podium.orm.prediction_round import (
    PredictionRound, PredictionRoundTransition, RoundStatus, ROUND_STATUSES
)

logger = logging.getLogger(__name__)


class PredictionRoundStateMachine:
    """
    Applies status changes to a loaded round and records them.

    The caller owns the session and commits; the machine only mutates the
    round and adds log rows.
    """

    ALLOWED_TRANSITIONS: Dict[RoundStatus, List[RoundStatus]] = {
        RoundStatus.DRAFT: [RoundStatus.OPEN],
        RoundStatus.OPEN: [RoundStatus.LOCKED],
        RoundStatus.LOCKED: [RoundStatus.SCORED],
        RoundStatus.SCORED: [RoundStatus.PUBLISHED],
        RoundStatus.PUBLISHED: [],
    }

    # Statuses that may go back to open when a reason is given
    REOPENABLE_STATUSES = frozenset({
        RoundStatus.LOCKED,
        RoundStatus.SCORED,
        RoundStatus.PUBLISHED,
    })

    TIMESTAMP_FIELDS: Dict[RoundStatus, str] = {
        RoundStatus.OPEN: "opened_at",
        RoundStatus.LOCKED: "locked_at",
        RoundStatus.SCORED: "scored_at",
        RoundStatus.PUBLISHED: "published_at",
    }

    def __init__(self, db: AsyncSession, round_obj: PredictionRound):
        self.db = db
        self.round = round_obj

    @classmethod
    def _is_valid_transition(cls, from_status: RoundStatus, to_status: RoundStatus) -> bool:
        return to_status in cls.ALLOWED_TRANSITIONS.get(from_status, [])

    @classmethod
    def _is_reopen(cls, from_status: RoundStatus, to_status: RoundStatus) -> bool:
        return to_status == RoundStatus.OPEN and from_status in cls.REOPENABLE_STATUSES

    @staticmethod
    def parse_status(value) -> RoundStatus:
        try:
            return RoundStatus(getattr(value, "value", value))
        except ValueError:
            raise ValidationError(
                f"Unknown round status: {value}",
                details={"field": "to_status", "allowed": ROUND_STATUSES}
            )

    def record(
        self,
        from_status: Optional[str],
        to_status: str,
        changed_by: Optional[int] = None,
        reason: str = "",
        trigger: str = "manual",
        now: Optional[datetime] = None,
    ) -> PredictionRoundTransition:
        """Append a status log row without validating the edge."""
        entry = PredictionRoundTransition(
            round_id=self.round.id,
            from_status=from_status,
            to_status=to_status,
            changed_by=changed_by,
            changed_at=now or datetime.utcnow(),
            reason=reason or "",
            trigger=trigger or "manual",
        )
        self.db.add(entry)
        return entry

    def transition(
        self,
        to_status,
        changed_by: Optional[int] = None,
        reason: str = "",
        trigger: str = "manual",
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Move the round to to_status.

        Returns:
            False when the round is already in to_status (nothing recorded)

        Raises:
            ValidationError: Unknown status, or reopen without a reason
            InvalidTransitionError: Edge not allowed from the current status
        """
        target = self.parse_status(to_status)
        current = RoundStatus(self.round.status)
        reason = (reason or "").strip()

        if target == current:
            return False

        if self._is_reopen(current, target):
            if not reason:
                raise ValidationError(
                    "A reason is required to reopen a round",
                    code=ErrorCode.MISSING_FIELD,
                    details={"field": "reason"}
                )
        elif not self._is_valid_transition(current, target):
            raise InvalidTransitionError(current.value, target.value)

        now = now or datetime.utcnow()
        self.round.status = target.value
        self.round.updated_by = changed_by
        self.apply_timestamps(target, now)
        self.record(current.value, target.value, changed_by, reason, trigger, now)

        logger.info(
            f"Prediction round {self.round.id}: {current.value} -> {target.value} "
            f"(trigger={trigger}, by={changed_by})"
        )
        return True

    def apply_timestamps(self, status: RoundStatus, now: datetime):
        field = self.TIMESTAMP_FIELDS.get(status)
        if field:
            setattr(self.round, field, now)
        if status == RoundStatus.PUBLISHED:
            self.round.requires_review = False


async def load_round(db: AsyncSession, round_id: int, for_update: bool = False) -> PredictionRound:
    """Fetch a round with fresh column values, optionally row-locked."""
    stmt = select(PredictionRound).where(PredictionRound.id == round_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt.execution_options(populate_existing=True))
    round_obj = result.scalar_one_or_none()
    if round_obj is None:
        raise NotFoundError("Prediction round", round_id)
    return round_obj


async def bump_round_version(db: AsyncSession, round_obj: PredictionRound) -> int:
    """
    Claim the next version of a round before saving it.

    Raises:
        ConflictError: Someone else saved the round since it was loaded
    """
    expected = round_obj.version
    result = await db.execute(
        update(PredictionRound)
        .where(PredictionRound.id == round_obj.id, PredictionRound.version == expected)
        .values(version=expected + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(
            f"Prediction round {round_obj.id} was modified concurrently",
            code=ErrorCode.CONCURRENT_MODIFICATION,
            details={"round_id": round_obj.id, "expected_version": expected}
        )
    set_committed_value(round_obj, "version", expected + 1)
    return expected + 1
