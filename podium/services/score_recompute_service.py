"""
Score Recompute Service

Turns race results into PredictionScore rows for a round.

Guarantees:
- Idempotent: an unforced run on a scored round whose results hash is
  unchanged writes nothing and reports skipped=True.
- Overrides survive recomputation when preserve_overrides is set; the
  round is then flagged requires_review.
- Runs for the same round are serialized in-process by a per-round lock;
  across processes the round version turns a lost update into a 409.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from podium.core.ids import to_id, to_optional_id
from podium.errors import APIError, ConflictError, ErrorCode, NotFoundError, log_and_raise_internal
from podium.orm.prediction_entry import PredictionEntry
from podium.orm.prediction_round import RoundStatus
from podium.orm.prediction_score import PredictionScore
from podium.services import season_directory
from podium.services.prediction_scoring import (
    build_actual_snapshot,
    build_race_results_hash,
    calculate_round_score,
    round_to_two_decimals,
)
from podium.state_machines.prediction_round_state import (
    PredictionRoundStateMachine,
    bump_round_version,
    load_round,
)

logger = logging.getLogger(__name__)

SCORABLE_STATUSES = frozenset({
    RoundStatus.LOCKED.value,
    RoundStatus.SCORED.value,
    RoundStatus.PUBLISHED.value,
})

# Per-round locks for recompute serialization
_round_locks: Dict[int, asyncio.Lock] = {}
_lock_lock = asyncio.Lock()  # Lock for creating round locks


async def get_round_lock(round_id: int) -> asyncio.Lock:
    """Get or create a lock for a specific round."""
    async with _lock_lock:
        if round_id not in _round_locks:
            _round_locks[round_id] = asyncio.Lock()
        return _round_locks[round_id]


async def drop_round_locks(round_ids: Iterable[int]) -> None:
    """Forget the locks of deleted rounds."""
    async with _lock_lock:
        for round_id in round_ids:
            _round_locks.pop(round_id, None)


def _actual_snapshot(actual: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "p1": actual["p1"],
        "p2": actual["p2"],
        "p3": actual["p3"],
        "last_place": actual["last_place"],
        "top3": list(actual["top3"]),
    }


async def score_round_from_race_results(
    db: AsyncSession,
    round_id: Any,
    generated_by: Any = None,
    trigger: str = "manual",
    force: bool = False,
    preserve_overrides: bool = True,
) -> Dict[str, Any]:
    """
    Score every participant of a round from the race's current results.

    Args:
        round_id: Round to score (locked, scored or published)
        generated_by: Admin or system user that asked for the run
        trigger: Recorded in score provenance and the status log
        force: Rescore even if the results hash is unchanged; required
            for published rounds
        preserve_overrides: Keep manual totals of overridden rows

    Returns:
        {skipped, race_results_hash, updated_scores, preserved_overrides, round}

    Raises:
        NotFoundError: Round, season or race missing
        ConflictError: Status not scorable, published without force,
            race outside the round's season, concurrent save
    """
    round_id = to_id(round_id, "round_id")
    generated_by = to_optional_id(generated_by, "generated_by")

    lock = await get_round_lock(round_id)
    async with lock:
        try:
            return await _score_round(db, round_id, generated_by, trigger, force, preserve_overrides)
        except APIError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            log_and_raise_internal(e, f"score_round_from_race_results(round={round_id})")


async def _score_round(
    db: AsyncSession,
    round_id: int,
    generated_by: Optional[int],
    trigger: str,
    force: bool,
    preserve_overrides: bool,
) -> Dict[str, Any]:
    round_obj = await load_round(db, round_id, for_update=True)
    status = round_obj.status

    if status not in SCORABLE_STATUSES:
        raise ConflictError(
            "Scoring is only allowed for locked, scored or published rounds",
            code=ErrorCode.INVALID_STATE,
            details={"status": status}
        )
    if status == RoundStatus.PUBLISHED.value and not force:
        raise ConflictError(
            "Published rounds are not rescored silently; use rescore-from-race",
            code=ErrorCode.INVALID_STATE,
            details={"status": status}
        )

    season = await season_directory.get_season(db, round_obj.season_id)
    if season is None:
        raise NotFoundError("Season", round_obj.season_id)
    race = await season_directory.get_race(db, round_obj.race_id)
    if race is None:
        raise NotFoundError("Race", round_obj.race_id)
    if race.season_id != round_obj.season_id:
        raise ConflictError(
            "Race and prediction round belong to different seasons",
            details={"race_season_id": race.season_id, "round_season_id": round_obj.season_id}
        )

    race_results = await season_directory.get_race_results(db, race.id)
    race_results_hash = build_race_results_hash(race_results)

    if (
        not force
        and status == RoundStatus.SCORED.value
        and round_obj.last_race_results_hash == race_results_hash
    ):
        logger.info(f"Prediction round {round_id}: results unchanged, scoring skipped")
        return {
            "skipped": True,
            "race_results_hash": race_results_hash,
            "updated_scores": 0,
            "preserved_overrides": [],
            "round": round_obj.to_dict(),
        }

    participants = await season_directory.get_season_participants(db, season.id)
    assignments = await season_directory.get_team_assignments(db, season.id)
    scored_users = [user_id for user_id in participants if user_id in assignments]

    actual = build_actual_snapshot(participants, assignments, race_results)
    actual_snapshot = _actual_snapshot(actual)

    entries_result = await db.execute(
        select(PredictionEntry).where(PredictionEntry.round_id == round_id)
    )
    entry_by_user = {e.user_id: e for e in entries_result.scalars().all()}

    scores_result = await db.execute(
        select(PredictionScore)
        .where(PredictionScore.round_id == round_id)
        .execution_options(populate_existing=True)
    )
    score_by_user = {s.user_id: s for s in scores_result.scalars().all()}

    now = datetime.utcnow()
    config = round_obj.scoring_config
    preserved: List[int] = []

    for user_id in scored_users:
        calculated = calculate_round_score(entry_by_user.get(user_id), actual, config)
        score = score_by_user.get(user_id)
        if score is None:
            score = PredictionScore(round_id=round_id, user_id=user_id, is_overridden=False)
            db.add(score)

        if preserve_overrides and score.is_overridden:
            preserved.append(user_id)
            score.total = round_to_two_decimals(score.total or 0)
        else:
            score.total = calculated["total"]
            score.breakdown = calculated["breakdown"]

        score.predicted = calculated["predicted"]
        score.actual = dict(actual_snapshot)
        score.generated_race_id = race.id
        score.generated_results_hash = race_results_hash
        score.generated_at = now
        score.generated_trigger = trigger
        score.generated_by = generated_by

    # Score rows go out as one batch; the round is saved afterwards so a
    # crash in between leaves a stale hash and the next run redoes the work.
    await db.commit()

    machine = PredictionRoundStateMachine(db, round_obj)
    if status == RoundStatus.SCORED.value:
        machine.record(status, status, generated_by, "Round was re-scored.", trigger, now)
    else:
        reason = (
            "Round was set back to scored for recalculation."
            if status == RoundStatus.PUBLISHED.value
            else "Round was automatically scored."
        )
        machine.record(status, RoundStatus.SCORED.value, generated_by, reason, trigger, now)
        round_obj.status = RoundStatus.SCORED.value

    round_obj.scored_at = round_obj.scored_at or now
    round_obj.last_scored_at = now
    round_obj.last_race_results_hash = race_results_hash
    round_obj.updated_by = generated_by
    round_obj.requires_review = bool(preserved)

    await bump_round_version(db, round_obj)
    await db.commit()

    logger.info(
        f"Prediction round {round_id} scored: {len(scored_users)} scores, "
        f"{len(preserved)} overrides preserved (trigger={trigger}, force={force})"
    )

    return {
        "skipped": False,
        "race_results_hash": race_results_hash,
        "updated_scores": len(scored_users),
        "preserved_overrides": preserved,
        "round": round_obj.to_dict(),
    }


async def rescore_round_from_race(
    db: AsyncSession,
    round_id: Any,
    generated_by: Any = None,
    trigger: str = "publish_recheck",
) -> Dict[str, Any]:
    """Forced, override-preserving rescore; the only way to rescore a published round."""
    return await score_round_from_race_results(
        db,
        round_id,
        generated_by=generated_by,
        trigger=trigger or "publish_recheck",
        force=True,
        preserve_overrides=True,
    )
