"""
HTTP contract tests for the prediction API.

Requests go through the real app with the test session injected in place
of get_db. Every error response must carry success/error/message/code.
"""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from podium.config.feature_flags import feature_flags
from podium.database import get_db
from podium.errors import ErrorCode
from podium.main import app
from podium.rbac import create_access_token
from podium.routes.predictions import limiter


SWAPPED = [0, 2, 1, 3]


def auth(user) -> dict:
    token = create_access_token({"sub": user.id, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


def assert_error(response, status_code: int, code: str):
    assert response.status_code == status_code
    data = response.json()
    assert data["success"] is False
    assert data["code"] == code
    assert "error" in data
    assert "message" in data


@pytest_asyncio.fixture
async def client(db_session):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    limiter.reset()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# =============================================================================
# Auth and error format
# =============================================================================

class TestAuthAndErrors:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_missing_token(self, client, league):
        response = await client.get("/api/predictions/rounds")
        assert_error(response, 401, ErrorCode.AUTH_REQUIRED)

    @pytest.mark.asyncio
    async def test_garbage_token(self, client, league):
        response = await client.get(
            "/api/predictions/rounds", headers={"Authorization": "Bearer not-a-token"}
        )
        assert_error(response, 401, ErrorCode.AUTH_INVALID)

    @pytest.mark.asyncio
    async def test_inactive_user(self, client, db_session, league):
        league.drivers[0].is_active = False
        await db_session.commit()
        response = await client.get("/api/predictions/rounds", headers=auth(league.drivers[0]))
        assert_error(response, 401, ErrorCode.AUTH_INVALID)

    @pytest.mark.asyncio
    async def test_admin_routes_need_admin(self, client, league):
        response = await client.get("/api/predictions/admin/rounds", headers=auth(league.drivers[0]))
        assert_error(response, 403, ErrorCode.FORBIDDEN)

    @pytest.mark.asyncio
    async def test_request_validation(self, client, league):
        response = await client.post(
            "/api/predictions/admin/rounds", json={}, headers=auth(league.admin)
        )
        assert_error(response, 422, ErrorCode.VALIDATION_ERROR)
        assert isinstance(response.json()["details"], list)

    @pytest.mark.asyncio
    async def test_unknown_round(self, client, league):
        response = await client.get("/api/predictions/admin/rounds/4040", headers=auth(league.admin))
        assert_error(response, 404, ErrorCode.NOT_FOUND)

    @pytest.mark.asyncio
    async def test_feature_disabled(self, client, league, monkeypatch):
        monkeypatch.setattr(feature_flags, "FEATURE_PREDICTION_ROUNDS", False)
        response = await client.get("/api/predictions/rounds", headers=auth(league.drivers[0]))
        assert_error(response, 403, ErrorCode.FEATURE_DISABLED)

    @pytest.mark.asyncio
    async def test_race_sync_disabled(self, client, league, monkeypatch):
        monkeypatch.setattr(feature_flags, "FEATURE_RACE_CHANGE_SYNC", False)
        response = await client.post(
            f"/api/predictions/admin/races/{league.race.id}/sync", headers=auth(league.admin)
        )
        assert_error(response, 403, ErrorCode.FEATURE_DISABLED)


# =============================================================================
# Admin lifecycle
# =============================================================================

class TestAdminRoutes:

    @pytest.mark.asyncio
    async def test_full_round_flow(self, client, league, pick):
        admin = auth(league.admin)
        driver = league.drivers[0]

        response = await client.post(
            "/api/predictions/admin/rounds",
            json={"seasonId": league.season.id, "raceId": league.race.id},
            headers=admin,
        )
        assert response.status_code == 201
        round_id = response.json()["round"]["id"]

        response = await client.patch(
            f"/api/predictions/admin/rounds/{round_id}/status",
            json={"toStatus": "open"},
            headers=admin,
        )
        assert response.json()["round"]["status"] == "open"

        picks = pick(SWAPPED)
        response = await client.put(
            f"/api/predictions/rounds/{round_id}/entry",
            json={"picks": {
                "p1": picks["p1"], "p2": str(picks["p2"]), "p3": picks["p3"],
                "lastPlace": picks["last_place"],
            }},
            headers=auth(driver),
        )
        assert response.status_code == 200
        assert response.json()["entry"]["picks"]["p2"] == picks["p2"]

        await client.patch(
            f"/api/predictions/admin/rounds/{round_id}/status",
            json={"to_status": "locked"},
            headers=admin,
        )
        response = await client.post(f"/api/predictions/admin/rounds/{round_id}/score", headers=admin)
        assert response.status_code == 200
        assert response.json()["updated_scores"] == 4
        assert response.json()["round"]["status"] == "scored"

        response = await client.post(f"/api/predictions/admin/rounds/{round_id}/publish", headers=admin)
        assert response.json()["round"]["status"] == "published"

        response = await client.get(f"/api/predictions/rounds/{round_id}", headers=auth(driver))
        data = response.json()
        assert data["success"] is True
        assert data["my_score"]["total"] == 16
        assert data["my_placement"] == 1

        response = await client.get("/api/predictions/me", headers=auth(driver))
        assert response.json()["summary"]["published_points"] == 16

    @pytest.mark.asyncio
    async def test_invalid_transition(self, client, league, make_round):
        round_id = await make_round("draft")
        response = await client.patch(
            f"/api/predictions/admin/rounds/{round_id}/status",
            json={"toStatus": "scored"},
            headers=auth(league.admin),
        )
        assert_error(response, 409, ErrorCode.STATE_TRANSITION_INVALID)

    @pytest.mark.asyncio
    async def test_duplicate_round(self, client, league, make_round):
        await make_round("draft")
        response = await client.post(
            "/api/predictions/admin/rounds",
            json={"season_id": league.season.id, "race_id": league.race.id},
            headers=auth(league.admin),
        )
        assert_error(response, 409, ErrorCode.DUPLICATE_ROUND)

    @pytest.mark.asyncio
    async def test_scoring_config_rejects_unknown_keys(self, client, league, make_round):
        round_id = await make_round("draft")
        response = await client.patch(
            f"/api/predictions/admin/rounds/{round_id}/scoring-config",
            json={"bonusPoints": 5},
            headers=auth(league.admin),
        )
        assert_error(response, 422, ErrorCode.VALIDATION_ERROR)

    @pytest.mark.asyncio
    async def test_scoring_config_update(self, client, league, make_round):
        round_id = await make_round("draft")
        response = await client.patch(
            f"/api/predictions/admin/rounds/{round_id}/scoring-config",
            json={"exactPositionPoints": 8},
            headers=auth(league.admin),
        )
        assert response.status_code == 200
        assert response.json()["round"]["scoring_config"]["exact_position_points"] == 8
        assert response.json()["rescore_result"] is None

    @pytest.mark.asyncio
    async def test_override_and_clear(self, client, league, make_round):
        round_id = await make_round("scored", entries={0: SWAPPED})
        user_id = league.drivers[0].id
        url = f"/api/predictions/admin/rounds/{round_id}/scores/{user_id}/override"

        response = await client.patch(url, json={"total": 3, "reason": "Penalty"}, headers=auth(league.admin))
        assert response.json()["score"]["total"] == 3

        response = await client.patch(url, json={"total": 3}, headers=auth(league.admin))
        assert_error(response, 400, ErrorCode.MISSING_FIELD)

        response = await client.delete(url, headers=auth(league.admin))
        data = response.json()
        assert data["cleared"] is True
        assert data["rescore_result"]["skipped"] is False

    @pytest.mark.asyncio
    async def test_rescore_and_sync(self, client, league, make_round):
        round_id = await make_round("published", entries={0: SWAPPED})
        admin = auth(league.admin)

        response = await client.post(
            f"/api/predictions/admin/races/{league.race.id}/sync", headers=admin
        )
        assert response.json()["unchanged"] == 1

        response = await client.post(
            f"/api/predictions/admin/rounds/{round_id}/rescore-from-race", headers=admin
        )
        assert response.json()["round"]["status"] == "scored"

    @pytest.mark.asyncio
    async def test_admin_listing_and_delete(self, client, league, make_round):
        round_id = await make_round("open", entries={0: SWAPPED})
        admin = auth(league.admin)

        response = await client.get(
            "/api/predictions/admin/rounds", params={"status": "open"}, headers=admin
        )
        rounds = response.json()["rounds"]
        assert [r["id"] for r in rounds] == [round_id]
        assert rounds[0]["metrics"]["entries"] == 1

        response = await client.delete(f"/api/predictions/admin/rounds/{round_id}", headers=admin)
        assert response.json() == {"success": True, "deleted": True, "round_id": round_id}


# =============================================================================
# User routes
# =============================================================================

class TestUserRoutes:

    @pytest.mark.asyncio
    async def test_duplicate_pick_is_400(self, client, league, make_round, pick):
        round_id = await make_round("open")
        picks = dict(pick(SWAPPED), p2=pick(SWAPPED)["p1"])
        response = await client.put(
            f"/api/predictions/rounds/{round_id}/entry",
            json={"picks": picks},
            headers=auth(league.drivers[0]),
        )
        assert_error(response, 400, ErrorCode.DUPLICATE_PICK)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", ["third", "\u00b2"])
    async def test_bad_team_id_is_400(self, client, league, make_round, pick, bad_id):
        round_id = await make_round("open")
        picks = dict(pick(SWAPPED), p3=bad_id)
        response = await client.put(
            f"/api/predictions/rounds/{round_id}/entry",
            json={"picks": picks},
            headers=auth(league.drivers[0]),
        )
        assert_error(response, 400, ErrorCode.INVALID_ID)
        assert response.json()["details"]["field"] == "p3"

    @pytest.mark.asyncio
    async def test_entry_on_locked_round(self, client, league, make_round, pick):
        round_id = await make_round("locked")
        response = await client.put(
            f"/api/predictions/rounds/{round_id}/entry",
            json={"picks": pick(SWAPPED)},
            headers=auth(league.drivers[0]),
        )
        assert_error(response, 409, ErrorCode.INVALID_STATE)

    @pytest.mark.asyncio
    async def test_outsider_entry(self, client, league, make_round, pick):
        round_id = await make_round("open")
        response = await client.put(
            f"/api/predictions/rounds/{round_id}/entry",
            json={"picks": pick(SWAPPED)},
            headers=auth(league.outsider),
        )
        assert_error(response, 403, ErrorCode.NOT_PARTICIPANT)

    @pytest.mark.asyncio
    async def test_draft_rounds_hidden(self, client, league, make_round):
        round_id = await make_round("draft")
        headers = auth(league.drivers[0])

        response = await client.get("/api/predictions/rounds", headers=headers)
        assert response.json()["rounds"] == []

        response = await client.get(f"/api/predictions/rounds/{round_id}", headers=headers)
        assert_error(response, 404, ErrorCode.NOT_FOUND)

        response = await client.get("/api/predictions/rounds", params={"status": "draft"}, headers=headers)
        assert_error(response, 403, ErrorCode.FORBIDDEN)
