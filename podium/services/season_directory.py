"""
Season Directory

Read side of the season, roster, team-assignment and race-result records
the prediction engine depends on. Nothing here writes.
"""
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.orm.race import Race, RaceResult
from podium.orm.season import Season, season_participants, season_teams
from podium.orm.team import Team
from podium.orm.user_season_team import UserSeasonTeam


async def get_season(db: AsyncSession, season_id: int) -> Optional[Season]:
    return await db.get(Season, season_id)


async def get_race(db: AsyncSession, race_id: int) -> Optional[Race]:
    return await db.get(Race, race_id)


async def get_season_participants(db: AsyncSession, season_id: int) -> List[int]:
    result = await db.execute(
        select(season_participants.c.user_id)
        .where(season_participants.c.season_id == season_id)
        .order_by(season_participants.c.user_id)
    )
    return list(result.scalars().all())


async def get_season_team_ids(db: AsyncSession, season_id: int) -> List[int]:
    result = await db.execute(
        select(season_teams.c.team_id)
        .where(season_teams.c.season_id == season_id)
        .order_by(season_teams.c.team_id)
    )
    return list(result.scalars().all())


async def is_season_participant(db: AsyncSession, season_id: int, user_id: int) -> bool:
    result = await db.execute(
        select(season_participants.c.user_id)
        .where(
            season_participants.c.season_id == season_id,
            season_participants.c.user_id == user_id,
        )
    )
    return result.first() is not None


async def list_participant_season_ids(db: AsyncSession, user_id: int) -> List[int]:
    result = await db.execute(
        select(season_participants.c.season_id)
        .where(season_participants.c.user_id == user_id)
    )
    return list(result.scalars().all())


async def get_team_assignments(db: AsyncSession, season_id: int) -> Dict[int, int]:
    """user_id -> team_id for a season."""
    result = await db.execute(
        select(UserSeasonTeam.user_id, UserSeasonTeam.team_id)
        .where(UserSeasonTeam.season_id == season_id)
    )
    return {user_id: team_id for user_id, team_id in result.all()}


async def get_team_assignment(db: AsyncSession, season_id: int, user_id: int) -> Optional[int]:
    result = await db.execute(
        select(UserSeasonTeam.team_id)
        .where(
            UserSeasonTeam.season_id == season_id,
            UserSeasonTeam.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_team_names(db: AsyncSession, team_ids: List[int]) -> Dict[int, str]:
    if not team_ids:
        return {}
    result = await db.execute(select(Team.id, Team.name).where(Team.id.in_(team_ids)))
    return {team_id: name for team_id, name in result.all()}


async def get_race_results(db: AsyncSession, race_id: int) -> List[Dict]:
    """[{user_id, points_earned}] for a race."""
    result = await db.execute(
        select(RaceResult.user_id, RaceResult.points_earned)
        .where(RaceResult.race_id == race_id)
        .order_by(RaceResult.user_id)
    )
    return [
        {"user_id": user_id, "points_earned": points}
        for user_id, points in result.all()
    ]
