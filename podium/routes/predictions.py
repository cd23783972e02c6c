"""
Prediction Round API Routes.

User endpoints: browse rounds, submit picks, own history.
Admin endpoints: round lifecycle, scoring, overrides, race sync, deletes.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from podium.config.feature_flags import feature_flags
from podium.database import get_db
from podium.errors import ErrorCode, ErrorResponse, ForbiddenError
from podium.orm.user import User
from podium.rbac import get_current_user, require_admin
from podium.schemas.predictions import (
    CreateRoundRequest,
    EntryRequest,
    OverrideRequest,
    RescoreRequest,
    ScoreRequest,
    ScoringConfigUpdate,
    TransitionRequest,
)
from podium.services import prediction_round_service as rounds
from podium.services.override_ledger_service import clear_user_score_override, override_user_score
from podium.services.race_change_sync_service import sync_predictions_for_race
from podium.services.score_recompute_service import (
    rescore_round_from_race,
    score_round_from_race_results,
)


router = APIRouter(
    prefix="/api/predictions",
    tags=["predictions"],
    responses={
        code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 409)
    },
)
limiter = Limiter(key_func=get_remote_address)


# =============================================================================
# Feature Flag Check
# =============================================================================

def check_predictions_enabled():
    """Check if prediction rounds are enabled."""
    if not feature_flags.FEATURE_PREDICTION_ROUNDS:
        raise ForbiddenError("Prediction rounds are disabled", code=ErrorCode.FEATURE_DISABLED)


def check_race_sync_enabled():
    if not feature_flags.FEATURE_RACE_CHANGE_SYNC:
        raise ForbiddenError("Race change sync is disabled", code=ErrorCode.FEATURE_DISABLED)


# =============================================================================
# User Routes
# =============================================================================

@router.get("/rounds")
async def list_my_rounds(
    season_id: Optional[int] = None,
    race_id: Optional[int] = None,
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Non-draft rounds of the caller's seasons with their own entry and score."""
    check_predictions_enabled()
    items = await rounds.list_rounds_for_user(
        db, current_user.id, season_id=season_id, race_id=race_id, status=status
    )
    return {"success": True, "rounds": items}


@router.get("/rounds/{round_id}")
async def get_my_round(
    round_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    check_predictions_enabled()
    details = await rounds.get_round_details_for_user(db, round_id, current_user.id)
    return {"success": True, **details}


@router.put("/rounds/{round_id}/entry")
@limiter.limit("30/minute")
async def submit_entry(
    request: Request,
    round_id: int,
    body: EntryRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create or replace the caller's picks while the round is open."""
    check_predictions_enabled()
    entry = await rounds.upsert_user_entry(db, round_id, current_user.id, body.picks)
    return {"success": True, "entry": entry}


@router.get("/me")
async def my_history(
    season_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    check_predictions_enabled()
    history = await rounds.get_user_prediction_history(db, current_user.id, season_id=season_id)
    return {"success": True, **history}


# =============================================================================
# Admin Routes
# =============================================================================

@router.get("/admin/rounds")
async def admin_list_rounds(
    season_id: Optional[int] = None,
    race_id: Optional[int] = None,
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    check_predictions_enabled()
    items = await rounds.list_rounds_for_admin(db, season_id=season_id, race_id=race_id, status=status)
    return {"success": True, "rounds": items}


@router.post("/admin/rounds", status_code=201)
async def admin_create_round(
    body: CreateRoundRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    check_predictions_enabled()
    round_data = await rounds.create_round(
        db,
        body.season_id,
        body.race_id,
        scoring_config=body.scoring_config,
        created_by=admin.id,
    )
    return {"success": True, "round": round_data}


@router.get("/admin/rounds/{round_id}")
async def admin_get_round(
    round_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    check_predictions_enabled()
    details = await rounds.get_round_details_for_admin(db, round_id)
    return {"success": True, **details}


@router.patch("/admin/rounds/{round_id}/status")
async def admin_transition_round(
    round_id: int,
    body: TransitionRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    check_predictions_enabled()
    round_data = await rounds.transition_round_status(
        db,
        round_id,
        body.to_status,
        changed_by=admin.id,
        reason=body.reason,
        trigger=body.trigger or "manual_admin",
    )
    return {"success": True, "round": round_data}


@router.patch("/admin/rounds/{round_id}/scoring-config")
async def admin_update_scoring_config(
    round_id: int,
    body: ScoringConfigUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    check_predictions_enabled()
    result = await rounds.update_round_scoring_config(db, round_id, body, updated_by=admin.id)
    return {"success": True, **result}


@router.post("/admin/rounds/{round_id}/score")
async def admin_score_round(
    round_id: int,
    body: Optional[ScoreRequest] = None,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    check_predictions_enabled()
    body = body or ScoreRequest()
    result = await score_round_from_race_results(
        db,
        round_id,
        generated_by=admin.id,
        trigger="manual_admin",
        force=body.force,
        preserve_overrides=body.preserve_overrides,
    )
    return {"success": True, **result}


@router.post("/admin/rounds/{round_id}/publish")
async def admin_publish_round(
    round_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    check_predictions_enabled()
    round_data = await rounds.publish_round(db, round_id, published_by=admin.id)
    return {"success": True, "round": round_data}


@router.post("/admin/rounds/{round_id}/rescore-from-race")
async def admin_rescore_round(
    round_id: int,
    body: Optional[RescoreRequest] = None,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    check_predictions_enabled()
    trigger = body.trigger if body and body.trigger else "publish_recheck"
    result = await rescore_round_from_race(db, round_id, generated_by=admin.id, trigger=trigger)
    return {"success": True, **result}


@router.patch("/admin/rounds/{round_id}/scores/{user_id}/override")
async def admin_override_score(
    round_id: int,
    user_id: int,
    body: OverrideRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    check_predictions_enabled()
    score = await override_user_score(
        db, round_id, user_id, body.total, body.reason, override_by=admin.id
    )
    return {"success": True, "score": score}


@router.delete("/admin/rounds/{round_id}/scores/{user_id}/override")
async def admin_clear_override(
    round_id: int,
    user_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    check_predictions_enabled()
    result = await clear_user_score_override(db, round_id, user_id, cleared_by=admin.id)
    return {"success": True, **result}


@router.delete("/admin/rounds/{round_id}")
async def admin_delete_round(
    round_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    check_predictions_enabled()
    result = await rounds.delete_prediction_round(db, round_id, deleted_by=admin.id)
    return {"success": True, **result}


@router.post("/admin/races/{race_id}/sync")
async def admin_sync_race(
    race_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Re-evaluate every round of a race after its results were edited."""
    check_predictions_enabled()
    check_race_sync_enabled()
    summary = await sync_predictions_for_race(db, race_id, triggered_by=admin.id)
    return {"success": True, **summary}
