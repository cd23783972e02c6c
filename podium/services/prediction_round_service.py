"""
Prediction Round Service

Round creation, status changes, entry submission, listings, history and
deletes. Scoring itself lives in score_recompute_service; manual totals
in override_ledger_service.

All functions take the request's AsyncSession and commit their own work.
"""
import logging
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from podium.core.ids import to_id, to_optional_id
from podium.database import run_with_optional_transaction
from podium.errors import (
    APIError, ConflictError, ErrorCode, ForbiddenError, NotFoundError, ValidationError,
    log_and_raise_internal,
)
from podium.orm.prediction_entry import PredictionEntry
from podium.orm.prediction_round import (
    PredictionRound, PredictionRoundTransition, RoundStatus, SCORING_CONFIG_DEFAULTS
)
from podium.orm.prediction_score import PredictionScore
from podium.orm.race import Race
from podium.orm.season import Season
from podium.orm.user import User
from podium.services import season_directory
from podium.services.pick_validator import validate_picks
from podium.services.prediction_scoring import build_rank_map, round_to_two_decimals
from podium.services.score_recompute_service import (
    drop_round_locks, get_round_lock, score_round_from_race_results,
)
from podium.state_machines.prediction_round_state import (
    PredictionRoundStateMachine,
    bump_round_version,
    load_round,
)

logger = logging.getLogger(__name__)

HISTORY_STATUSES = (RoundStatus.SCORED.value, RoundStatus.PUBLISHED.value)

# camelCase names accepted for scoring config keys
SCORING_CONFIG_ALIASES = {
    "exactPositionPoints": "exact_position_points",
    "top3AnyPositionPoints": "top3_any_position_points",
    "exactLastPlacePoints": "exact_last_place_points",
    "tieBreakerEnabled": "tie_breaker_enabled",
    "tieBreakerExactPoints": "tie_breaker_exact_points",
    "tieBreakerProximityWindow": "tie_breaker_proximity_window",
}


# =============================================================================
# Helpers
# =============================================================================

def normalize_scoring_config(raw: Any, partial: bool = False) -> Dict[str, Any]:
    """
    Validate a scoring config mapping.

    With partial=False missing keys take their defaults; with partial=True
    only the given keys are returned.

    Raises:
        ValidationError: Unknown key, non-boolean flag, negative or
            non-finite weight
    """
    if raw is None:
        raw = {}
    if hasattr(raw, "model_dump"):
        raw = raw.model_dump(exclude_unset=True)
    if not isinstance(raw, dict):
        raise ValidationError("scoring_config must be an object", details={"field": "scoring_config"})

    config: Dict[str, Any] = {} if partial else dict(SCORING_CONFIG_DEFAULTS)
    for key, value in raw.items():
        name = SCORING_CONFIG_ALIASES.get(key, key)
        if name not in SCORING_CONFIG_DEFAULTS:
            raise ValidationError(
                f"Unknown scoring config key: {key}",
                details={"field": key, "allowed": sorted(SCORING_CONFIG_DEFAULTS)}
            )
        if name == "tie_breaker_enabled":
            if not isinstance(value, bool):
                raise ValidationError(f"{name} must be a boolean", details={"field": name})
            config[name] = value
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"{name} must be a number", details={"field": name})
        if not math.isfinite(value) or value < 0:
            raise ValidationError(f"{name} must be a finite number >= 0", details={"field": name})
        config[name] = value
    return config


def _parse_status_filter(status: Optional[str]) -> Optional[str]:
    if status is None or status == "":
        return None
    return PredictionRoundStateMachine.parse_status(status).value


async def _name_maps(db: AsyncSession, rounds: Iterable[PredictionRound]):
    rounds = list(rounds)
    season_ids = {r.season_id for r in rounds}
    race_ids = {r.race_id for r in rounds}
    seasons, races = {}, {}
    if season_ids:
        result = await db.execute(select(Season.id, Season.name).where(Season.id.in_(season_ids)))
        seasons = dict(result.all())
    if race_ids:
        result = await db.execute(select(Race.id, Race.name).where(Race.id.in_(race_ids)))
        races = dict(result.all())
    return seasons, races


def _labelled(round_obj: PredictionRound, seasons: Dict, races: Dict, **extra) -> Dict[str, Any]:
    data = round_obj.to_dict()
    data["season_name"] = seasons.get(round_obj.season_id)
    data["race_name"] = races.get(round_obj.race_id)
    data.update(extra)
    return data


async def _user_labels(db: AsyncSession, user_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
    user_ids = {u for u in user_ids if u is not None}
    if not user_ids:
        return {}
    result = await db.execute(
        select(User.id, User.username, User.realname).where(User.id.in_(user_ids))
    )
    return {
        user_id: {"username": username, "realname": realname}
        for user_id, username, realname in result.all()
    }


async def _load_transitions(db: AsyncSession, round_id: int) -> List[PredictionRoundTransition]:
    result = await db.execute(
        select(PredictionRoundTransition)
        .where(PredictionRoundTransition.round_id == round_id)
        .order_by(PredictionRoundTransition.id)
    )
    return list(result.scalars().all())


# =============================================================================
# Round lifecycle
# =============================================================================

async def create_round(
    db: AsyncSession,
    season_id: Any,
    race_id: Any,
    scoring_config: Any = None,
    created_by: Any = None,
) -> Dict[str, Any]:
    """
    Create a draft round for a race.

    Raises:
        NotFoundError: Season or race missing
        ValidationError: Race belongs to another season, bad scoring config
        ConflictError: A round already exists for the pair
    """
    season_id = to_id(season_id, "season_id")
    race_id = to_id(race_id, "race_id")
    created_by = to_optional_id(created_by, "created_by")
    config = normalize_scoring_config(scoring_config)

    season = await season_directory.get_season(db, season_id)
    if season is None:
        raise NotFoundError("Season", season_id)
    race = await season_directory.get_race(db, race_id)
    if race is None:
        raise NotFoundError("Race", race_id)
    if race.season_id != season_id:
        raise ValidationError(
            "Race does not belong to the selected season",
            details={"race_id": race_id, "season_id": season_id}
        )

    duplicate = ConflictError(
        "A prediction round already exists for this season and race",
        code=ErrorCode.DUPLICATE_ROUND,
        details={"season_id": season_id, "race_id": race_id}
    )
    existing = await db.execute(
        select(PredictionRound.id).where(
            PredictionRound.season_id == season_id,
            PredictionRound.race_id == race_id,
        )
    )
    if existing.first() is not None:
        raise duplicate

    round_obj = PredictionRound(
        season_id=season_id,
        race_id=race_id,
        status=RoundStatus.DRAFT.value,
        created_by=created_by,
        updated_by=created_by,
        version=1,
        **config,
    )
    db.add(round_obj)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise duplicate
    except SQLAlchemyError as e:
        await db.rollback()
        log_and_raise_internal(e, "create_round")

    logger.info(f"Prediction round {round_obj.id} created for season={season_id} race={race_id}")
    return round_obj.to_dict()


async def transition_round_status(
    db: AsyncSession,
    round_id: Any,
    to_status: Any,
    changed_by: Any = None,
    reason: Optional[str] = None,
    trigger: str = "manual",
) -> Dict[str, Any]:
    """
    Move a round along the lifecycle.

    Requesting the current status returns the round unchanged.

    Raises:
        ValidationError: Unknown status, reopen without reason
        InvalidTransitionError: Edge not allowed
        NotFoundError: Round missing
    """
    round_id = to_id(round_id, "round_id")
    target = PredictionRoundStateMachine.parse_status(to_status)
    changed_by = to_optional_id(changed_by, "changed_by")

    lock = await get_round_lock(round_id)
    async with lock:
        try:
            round_obj = await load_round(db, round_id, for_update=True)
            machine = PredictionRoundStateMachine(db, round_obj)
            if machine.transition(target, changed_by, reason or "", trigger or "manual"):
                await bump_round_version(db, round_obj)
                await db.commit()
            return round_obj.to_dict()
        except APIError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            log_and_raise_internal(e, f"transition_round_status(round={round_id})")


async def publish_round(db: AsyncSession, round_id: Any, published_by: Any = None) -> Dict[str, Any]:
    """
    Publish a scored round.

    Raises:
        ConflictError: Round is not in status scored
    """
    round_id = to_id(round_id, "round_id")
    published_by = to_optional_id(published_by, "published_by")

    lock = await get_round_lock(round_id)
    async with lock:
        try:
            round_obj = await load_round(db, round_id, for_update=True)
            if round_obj.status != RoundStatus.SCORED.value:
                raise ConflictError(
                    "Only scored rounds can be published",
                    code=ErrorCode.INVALID_STATE,
                    details={"status": round_obj.status}
                )
            PredictionRoundStateMachine(db, round_obj).transition(
                RoundStatus.PUBLISHED, published_by, "Prediction round published.", "manual"
            )
            await bump_round_version(db, round_obj)
            await db.commit()
        except APIError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            log_and_raise_internal(e, f"publish_round(round={round_id})")

    return round_obj.to_dict()


async def update_round_scoring_config(
    db: AsyncSession,
    round_id: Any,
    scoring_config: Any,
    updated_by: Any = None,
) -> Dict[str, Any]:
    """
    Change a round's scoring weights.

    Scored rounds are recomputed right away (forced, overrides kept).
    Published rounds must be reopened first.

    Returns:
        {round, rescore_result}
    """
    round_id = to_id(round_id, "round_id")
    updated_by = to_optional_id(updated_by, "updated_by")
    changes = normalize_scoring_config(scoring_config, partial=True)
    if not changes:
        raise ValidationError("No scoring config changes given", code=ErrorCode.MISSING_FIELD)

    lock = await get_round_lock(round_id)
    async with lock:
        try:
            round_obj = await load_round(db, round_id, for_update=True)
            if round_obj.status == RoundStatus.PUBLISHED.value:
                raise ConflictError(
                    "Scoring config of a published round cannot change; reopen it first",
                    code=ErrorCode.INVALID_STATE,
                    details={"status": round_obj.status}
                )
            for key, value in changes.items():
                setattr(round_obj, key, value)
            round_obj.updated_by = updated_by
            await bump_round_version(db, round_obj)
            await db.commit()
        except APIError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            log_and_raise_internal(e, f"update_round_scoring_config(round={round_id})")

    logger.info(f"Prediction round {round_id} scoring config updated: {sorted(changes)}")

    if round_obj.status == RoundStatus.SCORED.value:
        rescore = await score_round_from_race_results(
            db,
            round_id,
            generated_by=updated_by,
            trigger="scoring_config_update",
            force=True,
            preserve_overrides=True,
        )
        return {"round": rescore["round"], "rescore_result": rescore}

    return {"round": round_obj.to_dict(), "rescore_result": None}


# =============================================================================
# Entries
# =============================================================================

async def upsert_user_entry(db: AsyncSession, round_id: Any, user_id: Any, picks: Any) -> Dict[str, Any]:
    """
    Create or replace a user's picks for an open round.

    Runs under the round lock so a status change cannot land between the
    open check and the write.

    Raises:
        NotFoundError: Round or season missing
        ConflictError: Round not open, concurrent first submission
        ForbiddenError: User not in the season or without a team
        ValidationError: Picks invalid
    """
    round_id = to_id(round_id, "round_id")
    user_id = to_id(user_id, "user_id")

    lock = await get_round_lock(round_id)
    async with lock:
        try:
            round_obj = await load_round(db, round_id, for_update=True)
            if round_obj.status != RoundStatus.OPEN.value:
                raise ConflictError(
                    "Picks can only be created or changed while the round is open",
                    code=ErrorCode.INVALID_STATE,
                    details={"status": round_obj.status}
                )

            season = await season_directory.get_season(db, round_obj.season_id)
            if season is None:
                raise NotFoundError("Season", round_obj.season_id)
            if not await season_directory.is_season_participant(db, season.id, user_id):
                raise ForbiddenError(
                    "You are not a participant of this season",
                    code=ErrorCode.NOT_PARTICIPANT
                )
            if await season_directory.get_team_assignment(db, season.id, user_id) is None:
                raise ForbiddenError(
                    "You have no team assigned for this season",
                    code=ErrorCode.NO_TEAM_ASSIGNMENT
                )

            normalized = validate_picks(picks, await season_directory.get_season_team_ids(db, season.id))

            result = await db.execute(
                select(PredictionEntry).where(
                    PredictionEntry.round_id == round_id,
                    PredictionEntry.user_id == user_id,
                )
            )
            entry = result.scalar_one_or_none()
            if entry is None:
                entry = PredictionEntry(round_id=round_id, user_id=user_id)
                db.add(entry)

            entry.p1_team_id = normalized["p1"]
            entry.p2_team_id = normalized["p2"]
            entry.p3_team_id = normalized["p3"]
            entry.last_place_team_id = normalized["last_place"]
            entry.tie_breaker = normalized["tie_breaker"]
            entry.submitted_at = datetime.utcnow()

            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(
                "An entry for this round was submitted concurrently; please retry",
                code=ErrorCode.CONFLICT
            )
        except APIError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            log_and_raise_internal(e, f"upsert_user_entry(round={round_id}, user={user_id})")

    logger.info(f"Prediction entry saved: round={round_id} user={user_id}")
    return entry.to_dict()


# =============================================================================
# Listings and details
# =============================================================================

async def list_rounds_for_admin(
    db: AsyncSession,
    season_id: Any = None,
    race_id: Any = None,
    status: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """All rounds, newest first, with entry and score counts."""
    season_id = to_optional_id(season_id, "season_id")
    race_id = to_optional_id(race_id, "race_id")
    status = _parse_status_filter(status)

    stmt = select(PredictionRound)
    if season_id:
        stmt = stmt.where(PredictionRound.season_id == season_id)
    if race_id:
        stmt = stmt.where(PredictionRound.race_id == race_id)
    if status:
        stmt = stmt.where(PredictionRound.status == status)
    result = await db.execute(
        stmt.order_by(PredictionRound.created_at.desc(), PredictionRound.id.desc())
    )
    rounds = list(result.scalars().all())
    if not rounds:
        return []

    round_ids = [r.id for r in rounds]
    entry_counts = dict((await db.execute(
        select(PredictionEntry.round_id, func.count(PredictionEntry.id))
        .where(PredictionEntry.round_id.in_(round_ids))
        .group_by(PredictionEntry.round_id)
    )).all())
    score_counts = dict((await db.execute(
        select(PredictionScore.round_id, func.count(PredictionScore.id))
        .where(PredictionScore.round_id.in_(round_ids))
        .group_by(PredictionScore.round_id)
    )).all())

    seasons, races = await _name_maps(db, rounds)
    return [
        _labelled(
            r, seasons, races,
            metrics={
                "entries": entry_counts.get(r.id, 0),
                "scores": score_counts.get(r.id, 0),
            },
        )
        for r in rounds
    ]


async def list_rounds_for_user(
    db: AsyncSession,
    user_id: Any,
    season_id: Any = None,
    race_id: Any = None,
    status: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Non-draft rounds of the user's seasons, each with the user's own
    entry and score (or None).

    Raises:
        ForbiddenError: status=draft was requested
    """
    user_id = to_id(user_id, "user_id")
    season_id = to_optional_id(season_id, "season_id")
    race_id = to_optional_id(race_id, "race_id")
    status = _parse_status_filter(status)
    if status == RoundStatus.DRAFT.value:
        raise ForbiddenError("Draft rounds are only visible to admins")

    season_ids = await season_directory.list_participant_season_ids(db, user_id)
    if season_id:
        season_ids = [s for s in season_ids if s == season_id]
    if not season_ids:
        return []

    stmt = select(PredictionRound).where(PredictionRound.season_id.in_(season_ids))
    if status:
        stmt = stmt.where(PredictionRound.status == status)
    else:
        stmt = stmt.where(PredictionRound.status != RoundStatus.DRAFT.value)
    if race_id:
        stmt = stmt.where(PredictionRound.race_id == race_id)
    result = await db.execute(
        stmt.order_by(PredictionRound.created_at.desc(), PredictionRound.id.desc())
    )
    rounds = list(result.scalars().all())
    if not rounds:
        return []

    round_ids = [r.id for r in rounds]
    entries = (await db.execute(
        select(PredictionEntry).where(
            PredictionEntry.round_id.in_(round_ids),
            PredictionEntry.user_id == user_id,
        )
    )).scalars().all()
    scores = (await db.execute(
        select(PredictionScore).where(
            PredictionScore.round_id.in_(round_ids),
            PredictionScore.user_id == user_id,
        )
    )).scalars().all()
    entry_by_round = {e.round_id: e.to_dict() for e in entries}
    score_by_round = {s.round_id: s.to_dict() for s in scores}

    seasons, races = await _name_maps(db, rounds)
    return [
        _labelled(
            r, seasons, races,
            my_entry=entry_by_round.get(r.id),
            my_score=score_by_round.get(r.id),
        )
        for r in rounds
    ]


async def get_round_details_for_admin(db: AsyncSession, round_id: Any) -> Dict[str, Any]:
    """Round with status log, all entries (submission order) and scores (best first)."""
    round_id = to_id(round_id, "round_id")
    round_obj = await load_round(db, round_id)
    transitions = await _load_transitions(db, round_id)

    entries = (await db.execute(
        select(PredictionEntry)
        .where(PredictionEntry.round_id == round_id)
        .order_by(PredictionEntry.submitted_at.asc(), PredictionEntry.id.asc())
    )).scalars().all()
    scores = (await db.execute(
        select(PredictionScore)
        .where(PredictionScore.round_id == round_id)
        .order_by(PredictionScore.total.desc(), PredictionScore.user_id.asc())
    )).scalars().all()

    users = await _user_labels(
        db,
        [e.user_id for e in entries]
        + [s.user_id for s in scores]
        + [s.override_by for s in scores]
        + [t.changed_by for t in transitions]
    )
    team_ids = await season_directory.get_season_team_ids(db, round_obj.season_id)
    seasons, races = await _name_maps(db, [round_obj])

    round_data = _labelled(round_obj, seasons, races)
    round_data["status_log"] = [
        dict(t.to_dict(), changed_by_user=users.get(t.changed_by)) for t in transitions
    ]
    return {
        "round": round_data,
        "entries": [dict(e.to_dict(), user=users.get(e.user_id)) for e in entries],
        "scores": [
            dict(s.to_dict(), user=users.get(s.user_id), override_by_user=users.get(s.override_by))
            for s in scores
        ],
        "teams": await season_directory.get_team_names(db, team_ids),
    }


async def get_round_details_for_user(db: AsyncSession, round_id: Any, user_id: Any) -> Dict[str, Any]:
    """
    A participant's view of a round.

    Raises:
        NotFoundError: Round missing or still a draft
        ForbiddenError: User is not a participant of the round's season
    """
    round_id = to_id(round_id, "round_id")
    user_id = to_id(user_id, "user_id")

    round_obj = await load_round(db, round_id)
    if round_obj.status == RoundStatus.DRAFT.value:
        raise NotFoundError("Prediction round", round_id)
    if not await season_directory.is_season_participant(db, round_obj.season_id, user_id):
        raise ForbiddenError(
            "You are not a participant of this season",
            code=ErrorCode.NOT_PARTICIPANT
        )

    entry = (await db.execute(
        select(PredictionEntry).where(
            PredictionEntry.round_id == round_id,
            PredictionEntry.user_id == user_id,
        )
    )).scalar_one_or_none()
    score = (await db.execute(
        select(PredictionScore).where(
            PredictionScore.round_id == round_id,
            PredictionScore.user_id == user_id,
        )
    )).scalar_one_or_none()

    placement = None
    if score is not None:
        all_scores = (await db.execute(
            select(PredictionScore.user_id, PredictionScore.total)
            .where(PredictionScore.round_id == round_id)
        )).all()
        rank_map = build_rank_map({"user_id": u, "total": t} for u, t in all_scores)
        placement = rank_map.get(user_id)

    seasons, races = await _name_maps(db, [round_obj])
    return {
        "round": _labelled(round_obj, seasons, races),
        "my_entry": entry.to_dict() if entry else None,
        "my_score": score.to_dict() if score else None,
        "my_placement": placement,
    }


async def get_user_prediction_history(
    db: AsyncSession,
    user_id: Any,
    season_id: Any = None,
) -> Dict[str, Any]:
    """
    Scored and published rounds the user has a score in.

    Returns:
        {rows: [{round, score, placement}], summary: {total_rounds,
        total_points, published_rounds, published_points}}
    """
    user_id = to_id(user_id, "user_id")
    season_id = to_optional_id(season_id, "season_id")

    empty = {
        "rows": [],
        "summary": {
            "total_rounds": 0,
            "total_points": 0,
            "published_rounds": 0,
            "published_points": 0,
        },
    }

    season_ids = await season_directory.list_participant_season_ids(db, user_id)
    if season_id:
        season_ids = [s for s in season_ids if s == season_id]
    if not season_ids:
        return empty

    rounds = (await db.execute(
        select(PredictionRound)
        .where(
            PredictionRound.season_id.in_(season_ids),
            PredictionRound.status.in_(HISTORY_STATUSES),
        )
        .order_by(PredictionRound.created_at.desc(), PredictionRound.id.desc())
    )).scalars().all()
    if not rounds:
        return empty

    round_ids = [r.id for r in rounds]
    all_scores = (await db.execute(
        select(PredictionScore).where(PredictionScore.round_id.in_(round_ids))
    )).scalars().all()

    scores_by_round: Dict[int, List[PredictionScore]] = {}
    for score in all_scores:
        scores_by_round.setdefault(score.round_id, []).append(score)

    seasons, races = await _name_maps(db, rounds)
    rows = []
    for round_obj in rounds:
        round_scores = scores_by_round.get(round_obj.id, [])
        mine = next((s for s in round_scores if s.user_id == user_id), None)
        if mine is None:
            continue
        rows.append({
            "round": _labelled(round_obj, seasons, races),
            "score": mine.to_dict(),
            "placement": build_rank_map(round_scores).get(user_id),
        })

    published = [row for row in rows if row["round"]["status"] == RoundStatus.PUBLISHED.value]
    return {
        "rows": rows,
        "summary": {
            "total_rounds": len(rows),
            "total_points": round_to_two_decimals(sum(row["score"]["total"] or 0 for row in rows)),
            "published_rounds": len(published),
            "published_points": round_to_two_decimals(
                sum(row["score"]["total"] or 0 for row in published)
            ),
        },
    }


# =============================================================================
# Deletes
# =============================================================================

async def _delete_rounds(db: AsyncSession, round_ids: List[int]) -> int:
    if not round_ids:
        return 0
    await db.execute(delete(PredictionEntry).where(PredictionEntry.round_id.in_(round_ids)))
    await db.execute(delete(PredictionScore).where(PredictionScore.round_id.in_(round_ids)))
    await db.execute(
        delete(PredictionRoundTransition).where(PredictionRoundTransition.round_id.in_(round_ids))
    )
    await db.execute(delete(PredictionRound).where(PredictionRound.id.in_(round_ids)))
    return len(round_ids)


async def delete_prediction_round(db: AsyncSession, round_id: Any, deleted_by: Any = None) -> Dict[str, Any]:
    """Delete a round with its entries, scores and status log."""
    round_id = to_id(round_id, "round_id")
    deleted_by = to_optional_id(deleted_by, "deleted_by")

    async def work(session: AsyncSession):
        exists = await session.execute(select(PredictionRound.id).where(PredictionRound.id == round_id))
        if exists.first() is None:
            raise NotFoundError("Prediction round", round_id)
        await _delete_rounds(session, [round_id])
        return {"deleted": True, "round_id": round_id}

    result = await run_with_optional_transaction(db, work, "delete_prediction_round")
    await drop_round_locks([round_id])
    logger.info(f"Prediction round {round_id} deleted by {deleted_by}")
    return result


async def delete_prediction_data_for_season(db: AsyncSession, season_id: Any) -> Dict[str, Any]:
    """Cascade for season deletion."""
    season_id = to_id(season_id, "season_id")

    async def work(session: AsyncSession):
        ids = (await session.execute(
            select(PredictionRound.id).where(PredictionRound.season_id == season_id)
        )).scalars().all()
        deleted_ids[:] = ids
        return {"season_id": season_id, "rounds_deleted": await _delete_rounds(session, list(ids))}

    deleted_ids: List[int] = []
    result = await run_with_optional_transaction(db, work, "delete_prediction_data_for_season")
    await drop_round_locks(deleted_ids)
    logger.info(f"Prediction data removed for season {season_id}: {result['rounds_deleted']} rounds")
    return result


async def delete_prediction_data_for_race(db: AsyncSession, race_id: Any) -> Dict[str, Any]:
    """Cascade for race deletion."""
    race_id = to_id(race_id, "race_id")

    async def work(session: AsyncSession):
        ids = (await session.execute(
            select(PredictionRound.id).where(PredictionRound.race_id == race_id)
        )).scalars().all()
        deleted_ids[:] = ids
        return {"race_id": race_id, "rounds_deleted": await _delete_rounds(session, list(ids))}

    deleted_ids: List[int] = []
    result = await run_with_optional_transaction(db, work, "delete_prediction_data_for_race")
    await drop_round_locks(deleted_ids)
    logger.info(f"Prediction data removed for race {race_id}: {result['rounds_deleted']} rounds")
    return result


async def delete_prediction_data_for_user(db: AsyncSession, user_id: Any) -> Dict[str, Any]:
    """Cascade for user deletion: the user's entries and score rows."""
    user_id = to_id(user_id, "user_id")

    async def work(session: AsyncSession):
        entries = await session.execute(delete(PredictionEntry).where(PredictionEntry.user_id == user_id))
        scores = await session.execute(delete(PredictionScore).where(PredictionScore.user_id == user_id))
        return {
            "user_id": user_id,
            "entries_deleted": entries.rowcount,
            "scores_deleted": scores.rowcount,
        }

    result = await run_with_optional_transaction(db, work, "delete_prediction_data_for_user")
    logger.info(
        f"Prediction data removed for user {user_id}: "
        f"{result['entries_deleted']} entries, {result['scores_deleted']} scores"
    )
    return result
