"""
Shared fixtures for the prediction engine tests.

Every test gets its own in-memory SQLite database seeded with a small
league: four drivers with teams, one participant without a team, one
outsider, an admin, and a race with results.
"""
import asyncio
from types import SimpleNamespace
from typing import AsyncGenerator, Dict

import pytest
import pytest_asyncio
from sqlalchemy import delete, insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from podium.orm import (
    Base, Race, RaceResult, Season, Team, User, UserSeasonTeam,
    season_participants, season_teams,
)
from podium.orm.prediction_round import RoundStatus
from podium.services import score_recompute_service
from podium.services.prediction_round_service import (
    create_round, publish_round, transition_round_status, upsert_user_entry,
)
from podium.services.score_recompute_service import score_round_from_race_results


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Race points per driver index; gives actual p1=Alpha, p2=Bravo, p3=Charlie, last=Delta
DEFAULT_POINTS = (25, 18, 15, 10)


@pytest.fixture(autouse=True)
def reset_round_locks(monkeypatch):
    """Round locks must not leak between event loops."""
    monkeypatch.setattr(score_recompute_service, "_round_locks", {})
    monkeypatch.setattr(score_recompute_service, "_lock_lock", asyncio.Lock())


@pytest_asyncio.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


async def set_race_results(db: AsyncSession, race_id: int, points: Dict[int, float]):
    """Replace a race's results with {user_id: points}."""
    await db.execute(delete(RaceResult).where(RaceResult.race_id == race_id))
    for user_id, value in points.items():
        db.add(RaceResult(race_id=race_id, user_id=user_id, points_earned=value))
    await db.commit()


@pytest_asyncio.fixture
async def league(db_session):
    """Seed users, teams, two seasons and their races."""
    db = db_session

    admin = User(username="admin", realname="Race Control", role="admin")
    drivers = [User(username=f"driver{i}", realname=f"Driver {i}") for i in range(1, 5)]
    benched = User(username="benched", realname="No Team")
    outsider = User(username="outsider", realname="Not In Season")
    teams = [Team(name=name) for name in ("Alpha", "Bravo", "Charlie", "Delta")]
    foreign_team = Team(name="Echo")
    season = Season(name="Season 2026", is_current=True)
    other_season = Season(name="Season 2025", is_completed=True)

    db.add_all([admin, *drivers, benched, outsider, *teams, foreign_team, season, other_season])
    await db.flush()

    race = Race(season_id=season.id, name="Monza")
    second_race = Race(season_id=season.id, name="Imola")
    other_race = Race(season_id=other_season.id, name="Spa")
    db.add_all([race, second_race, other_race])
    await db.flush()

    await db.execute(
        insert(season_participants),
        [{"season_id": season.id, "user_id": u.id} for u in [*drivers, benched]]
    )
    await db.execute(
        insert(season_teams),
        [{"season_id": season.id, "team_id": t.id} for t in teams]
    )
    for driver, team in zip(drivers, teams):
        db.add(UserSeasonTeam(user_id=driver.id, season_id=season.id, team_id=team.id))
    for driver, value in zip(drivers, DEFAULT_POINTS):
        db.add(RaceResult(race_id=race.id, user_id=driver.id, points_earned=value))
    await db.commit()

    return SimpleNamespace(
        admin=admin,
        drivers=drivers,
        benched=benched,
        outsider=outsider,
        teams=teams,
        foreign_team=foreign_team,
        season=season,
        other_season=other_season,
        race=race,
        second_race=second_race,
        other_race=other_race,
    )


def picks_for(league, order):
    """Build picks from team indexes [p1, p2, p3, last_place]."""
    t = league.teams
    return {
        "p1": t[order[0]].id,
        "p2": t[order[1]].id,
        "p3": t[order[2]].id,
        "last_place": t[order[3]].id,
    }


@pytest.fixture
def make_round(db_session, league):
    """
    Create a round on league.race and walk it to the requested status.

    entries: {driver_index: [p1, p2, p3, last] team indexes}, submitted while open.
    """
    lifecycle = [s.value for s in RoundStatus]

    async def _make(status: str = "open", entries=None, race=None, scoring_config=None) -> int:
        race = race or league.race
        created = await create_round(
            db_session, league.season.id, race.id,
            scoring_config=scoring_config, created_by=league.admin.id
        )
        round_id = created["id"]
        for step in lifecycle[1:lifecycle.index(status) + 1]:
            if step == RoundStatus.SCORED.value:
                await score_round_from_race_results(db_session, round_id, generated_by=league.admin.id)
            elif step == RoundStatus.PUBLISHED.value:
                await publish_round(db_session, round_id, published_by=league.admin.id)
            else:
                await transition_round_status(db_session, round_id, step, changed_by=league.admin.id)
            if step == RoundStatus.OPEN.value:
                for index, order in (entries or {}).items():
                    await upsert_user_entry(
                        db_session, round_id, league.drivers[index].id, picks_for(league, order)
                    )
        return round_id

    return _make


@pytest.fixture
def pick(league):
    """pick([0, 2, 1, 3]) -> picks dict for the league's teams."""
    return lambda order: picks_for(league, order)


@pytest.fixture
def set_results(db_session):
    async def _set(race_id: int, points: Dict[int, float]):
        await set_race_results(db_session, race_id, points)
    return _set
