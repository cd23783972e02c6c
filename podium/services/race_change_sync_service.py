"""
Race Change Sync Service

Called whenever a race's results are created, edited or deleted.
Unpublished scored work is recomputed transparently; published rounds
are only flagged for review so admins decide what users get to see.
"""
import logging
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from podium.core.ids import to_id, to_optional_id
from podium.errors import APIError, NotFoundError, log_and_raise_internal
from podium.orm.prediction_round import PredictionRound, RoundStatus
from podium.services import season_directory
from podium.services.prediction_scoring import build_race_results_hash
from podium.services.score_recompute_service import (
    SCORABLE_STATUSES,
    get_round_lock,
    score_round_from_race_results,
)
from podium.state_machines.prediction_round_state import (
    PredictionRoundStateMachine,
    bump_round_version,
    load_round,
)

logger = logging.getLogger(__name__)

SYNC_TRIGGER = "race_result_update"


async def _flag_published_round(
    db: AsyncSession,
    round_id: int,
    latest_hash: str,
    triggered_by,
) -> bool:
    """Mark a published round for review. Returns False if it changed status meanwhile."""
    lock = await get_round_lock(round_id)
    async with lock:
        try:
            round_obj = await load_round(db, round_id, for_update=True)
            if round_obj.status != RoundStatus.PUBLISHED.value:
                return False
            old_hash = round_obj.last_race_results_hash
            now = datetime.utcnow()

            round_obj.requires_review = True
            round_obj.last_race_results_hash = latest_hash
            round_obj.updated_by = triggered_by
            PredictionRoundStateMachine(db, round_obj).record(
                RoundStatus.PUBLISHED.value,
                RoundStatus.PUBLISHED.value,
                triggered_by,
                f"Race results changed (old hash {old_hash or 'none'}, new hash {latest_hash}); review required.",
                SYNC_TRIGGER,
                now,
            )
            await bump_round_version(db, round_obj)
            await db.commit()
            return True
        except APIError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            log_and_raise_internal(e, f"flag_published_round(round={round_id})")


async def sync_predictions_for_race(
    db: AsyncSession,
    race_id: Any,
    triggered_by: Any = None,
) -> Dict[str, Any]:
    """
    React to a race-result change.

    For each locked, scored or published round on the race:
    - stored hash equals the new hash: unchanged
    - published: requires_review set, hash stamped, change logged
    - otherwise: forced rescore keeping overrides

    A round with no stored hash counts as changed.

    Returns:
        {race_id, latest_hash, rounds_total, rescored, review_flagged, unchanged}
    """
    race_id = to_id(race_id, "race_id")
    triggered_by = to_optional_id(triggered_by, "triggered_by")

    race = await season_directory.get_race(db, race_id)
    if race is None:
        raise NotFoundError("Race", race_id)

    latest_hash = build_race_results_hash(await season_directory.get_race_results(db, race_id))

    result = await db.execute(
        select(PredictionRound.id, PredictionRound.status, PredictionRound.last_race_results_hash)
        .where(
            PredictionRound.race_id == race_id,
            PredictionRound.status.in_(sorted(SCORABLE_STATUSES)),
        )
        .order_by(PredictionRound.id)
    )
    rounds = result.all()

    summary = {
        "race_id": race_id,
        "latest_hash": latest_hash,
        "rounds_total": len(rounds),
        "rescored": 0,
        "review_flagged": 0,
        "unchanged": 0,
    }

    for round_id, status, stored_hash in rounds:
        if stored_hash and stored_hash == latest_hash:
            summary["unchanged"] += 1
            continue

        if status == RoundStatus.PUBLISHED.value:
            if await _flag_published_round(db, round_id, latest_hash, triggered_by):
                summary["review_flagged"] += 1
                continue

        await score_round_from_race_results(
            db,
            round_id,
            generated_by=triggered_by,
            trigger=SYNC_TRIGGER,
            force=True,
            preserve_overrides=True,
        )
        summary["rescored"] += 1

    logger.info(
        f"Race {race_id} prediction sync: {summary['rounds_total']} rounds, "
        f"{summary['rescored']} rescored, {summary['review_flagged']} flagged, "
        f"{summary['unchanged']} unchanged"
    )
    return summary
