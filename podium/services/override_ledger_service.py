"""
Override Ledger Service

Manual score totals set by admins, and their removal.
"""
import logging
import math
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from podium.core.ids import to_id, to_optional_id
from podium.errors import APIError, ConflictError, ErrorCode, NotFoundError, ValidationError, log_and_raise_internal
from podium.orm.prediction_round import RoundStatus
from podium.orm.prediction_score import PredictionScore
from podium.services.prediction_scoring import round_to_two_decimals
from podium.services.score_recompute_service import score_round_from_race_results
from podium.state_machines.prediction_round_state import load_round

logger = logging.getLogger(__name__)

OVERRIDABLE_STATUSES = frozenset({RoundStatus.SCORED.value, RoundStatus.PUBLISHED.value})


async def _load_overridable_score(db: AsyncSession, round_id: int, user_id: int) -> PredictionScore:
    round_obj = await load_round(db, round_id)
    if round_obj.status not in OVERRIDABLE_STATUSES:
        raise ConflictError(
            "Score overrides are only allowed for scored or published rounds",
            code=ErrorCode.INVALID_STATE,
            details={"status": round_obj.status}
        )

    result = await db.execute(
        select(PredictionScore)
        .where(PredictionScore.round_id == round_id, PredictionScore.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    score = result.scalar_one_or_none()
    if score is None:
        raise NotFoundError("Prediction score", f"{round_id}/{user_id}")
    return score


def _parse_total(total: Any) -> float:
    if isinstance(total, bool):
        total = None
    try:
        value = float(total)
    except (TypeError, ValueError):
        value = float("nan")
    if not math.isfinite(value):
        raise ValidationError(
            "Override total must be a finite number",
            details={"field": "total"}
        )
    return value


async def override_user_score(
    db: AsyncSession,
    round_id: Any,
    user_id: Any,
    total: Any,
    reason: str,
    override_by: Any = None,
) -> Dict[str, Any]:
    """
    Replace a user's computed total with a manual one.

    The breakdown is left untouched so the computed awards remain visible.

    Raises:
        ValidationError: Non-finite total or empty reason
        ConflictError: Round not scored or published
        NotFoundError: Round or score row missing
    """
    round_id = to_id(round_id, "round_id")
    user_id = to_id(user_id, "user_id")
    override_by = to_optional_id(override_by, "override_by")
    value = _parse_total(total)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError(
            "A reason is required for a score override",
            code=ErrorCode.MISSING_FIELD,
            details={"field": "reason"}
        )

    try:
        score = await _load_overridable_score(db, round_id, user_id)
        score.total = round_to_two_decimals(value)
        score.is_overridden = True
        score.override_reason = reason
        score.override_by = override_by
        score.override_at = datetime.utcnow()
        await db.commit()
    except APIError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        log_and_raise_internal(e, f"override_user_score(round={round_id}, user={user_id})")

    logger.info(f"Prediction score override: round={round_id} user={user_id} total={score.total} by={override_by}")
    return score.to_dict()


async def clear_user_score_override(
    db: AsyncSession,
    round_id: Any,
    user_id: Any,
    cleared_by: Any = None,
) -> Dict[str, Any]:
    """
    Drop a manual override and recompute the round.

    The recompute is forced and keeps any other users' overrides.

    Returns:
        {cleared: True, rescore_result}
    """
    round_id = to_id(round_id, "round_id")
    user_id = to_id(user_id, "user_id")
    cleared_by = to_optional_id(cleared_by, "cleared_by")

    try:
        score = await _load_overridable_score(db, round_id, user_id)
        if not score.is_overridden:
            raise ConflictError(
                "This score is not overridden",
                code=ErrorCode.INVALID_STATE,
                details={"round_id": round_id, "user_id": user_id}
            )
        score.clear_override()
        await db.commit()
    except APIError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        log_and_raise_internal(e, f"clear_user_score_override(round={round_id}, user={user_id})")

    logger.info(f"Prediction score override cleared: round={round_id} user={user_id} by={cleared_by}")

    rescore_result = await score_round_from_race_results(
        db,
        round_id,
        generated_by=cleared_by,
        trigger="override_clear_recalc",
        force=True,
        preserve_overrides=True,
    )
    return {"cleared": True, "rescore_result": rescore_result}
