"""
Prediction round state machine tests.

The machine itself only needs a session with add(); DB-backed checks use
the shared fixtures.
"""
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select, update

from podium.errors import ConflictError, ErrorCode, InvalidTransitionError, NotFoundError, ValidationError
from podium.orm.prediction_round import PredictionRound, PredictionRoundTransition, RoundStatus
from podium.state_machines.prediction_round_state import (
    PredictionRoundStateMachine,
    bump_round_version,
    load_round,
)


def make_machine(status: str):
    db = MagicMock()
    round_obj = SimpleNamespace(
        id=11,
        status=status,
        updated_by=None,
        opened_at=None,
        locked_at=None,
        scored_at=None,
        published_at=None,
        requires_review=True,
    )
    return PredictionRoundStateMachine(db, round_obj), db, round_obj


# =============================================================================
# Transition table
# =============================================================================

class TestTransitionTable:

    @pytest.mark.parametrize("from_status,to_status", [
        ("draft", "open"),
        ("open", "locked"),
        ("locked", "scored"),
        ("scored", "published"),
    ])
    def test_forward_edges(self, from_status, to_status):
        machine, db, round_obj = make_machine(from_status)
        assert machine.transition(to_status, changed_by=1) is True
        assert round_obj.status == to_status
        db.add.assert_called_once()

        log_row = db.add.call_args[0][0]
        assert isinstance(log_row, PredictionRoundTransition)
        assert (log_row.from_status, log_row.to_status) == (from_status, to_status)
        assert log_row.round_id == 11

    @pytest.mark.parametrize("from_status,to_status", [
        ("draft", "locked"),
        ("draft", "scored"),
        ("open", "scored"),
        ("open", "published"),
        ("locked", "published"),
        ("published", "scored"),
        ("published", "draft"),
        ("open", "draft"),
    ])
    def test_rejected_edges(self, from_status, to_status):
        machine, db, round_obj = make_machine(from_status)
        with pytest.raises(InvalidTransitionError) as exc:
            machine.transition(to_status)
        assert exc.value.status_code == 409
        assert exc.value.code == ErrorCode.STATE_TRANSITION_INVALID
        assert round_obj.status == from_status
        db.add.assert_not_called()

    @pytest.mark.parametrize("from_status", ["locked", "scored", "published"])
    def test_reopen_requires_reason(self, from_status):
        machine, db, round_obj = make_machine(from_status)
        with pytest.raises(ValidationError) as exc:
            machine.transition("open", reason="   ")
        assert exc.value.details["field"] == "reason"
        assert round_obj.status == from_status

    @pytest.mark.parametrize("from_status", ["locked", "scored", "published"])
    def test_reopen_with_reason(self, from_status):
        machine, db, round_obj = make_machine(from_status)
        assert machine.transition("open", changed_by=3, reason="Wrong results", trigger="manual_admin")
        assert round_obj.status == "open"
        log_row = db.add.call_args[0][0]
        assert log_row.reason == "Wrong results"
        assert log_row.trigger == "manual_admin"

    def test_same_status_is_noop(self):
        machine, db, round_obj = make_machine("open")
        assert machine.transition("open") is False
        db.add.assert_not_called()

    def test_unknown_status(self):
        machine, db, round_obj = make_machine("open")
        with pytest.raises(ValidationError):
            machine.transition("archived")

    def test_enum_status_accepted(self):
        machine, db, round_obj = make_machine("draft")
        assert machine.transition(RoundStatus.OPEN)
        assert round_obj.status == "open"


# =============================================================================
# Side effects
# =============================================================================

class TestTransitionSideEffects:

    def test_timestamps_are_set(self):
        now = datetime(2026, 5, 1, 12, 0, 0)
        machine, db, round_obj = make_machine("draft")
        machine.transition("open", changed_by=5, now=now)
        assert round_obj.opened_at == now
        assert round_obj.updated_by == 5

    def test_publish_clears_review_flag(self):
        machine, db, round_obj = make_machine("scored")
        machine.transition("published")
        assert round_obj.published_at is not None
        assert round_obj.requires_review is False

    def test_record_does_not_validate(self):
        machine, db, round_obj = make_machine("published")
        row = machine.record("published", "published", None, "Race results changed", "race_result_update")
        assert row.from_status == row.to_status == "published"
        db.add.assert_called_once_with(row)


# =============================================================================
# Persistence helpers
# =============================================================================

class TestRoundPersistence:

    @pytest.mark.asyncio
    async def test_load_missing_round(self, db_session):
        with pytest.raises(NotFoundError):
            await load_round(db_session, 999)

    @pytest.mark.asyncio
    async def test_version_bump(self, db_session, make_round):
        round_id = await make_round("draft")
        round_obj = await load_round(db_session, round_id)
        before = round_obj.version

        assert await bump_round_version(db_session, round_obj) == before + 1
        await db_session.commit()

        fresh = await load_round(db_session, round_id)
        assert fresh.version == before + 1

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self, db_session, make_round):
        round_id = await make_round("draft")
        stale = await load_round(db_session, round_id)
        stale_version = stale.version

        # Another writer saves the round behind our back
        await db_session.execute(
            update(PredictionRound.__table__)
            .where(PredictionRound.__table__.c.id == round_id)
            .values(version=stale_version + 1)
        )
        await db_session.commit()

        with pytest.raises(ConflictError) as exc:
            await bump_round_version(db_session, stale)
        assert exc.value.code == ErrorCode.CONCURRENT_MODIFICATION
        assert exc.value.details["expected_version"] == stale_version

    @pytest.mark.asyncio
    async def test_status_log_is_append_only(self, db_session, make_round):
        round_id = await make_round("open")
        result = await db_session.execute(
            select(PredictionRoundTransition).where(PredictionRoundTransition.round_id == round_id)
        )
        row = result.scalars().first()
        row.reason = "rewritten"

        with pytest.raises(ValueError):
            await db_session.commit()
        await db_session.rollback()
