"""
Pydantic schemas for the prediction round API.

Identifier fields are accepted loosely (int or digit string) and converted
by the service layer, so malformed picks produce a 400 naming the field.
"""
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


IdLike = Union[int, str]


class ScoringConfigUpdate(BaseModel):
    """Partial scoring config; only fields that are sent are applied."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    exact_position_points: Optional[float] = Field(None, ge=0, alias="exactPositionPoints")
    top3_any_position_points: Optional[float] = Field(None, ge=0, alias="top3AnyPositionPoints")
    exact_last_place_points: Optional[float] = Field(None, ge=0, alias="exactLastPlacePoints")
    tie_breaker_enabled: Optional[bool] = Field(None, alias="tieBreakerEnabled")
    tie_breaker_exact_points: Optional[float] = Field(None, ge=0, alias="tieBreakerExactPoints")
    tie_breaker_proximity_window: Optional[float] = Field(None, ge=0, alias="tieBreakerProximityWindow")


class CreateRoundRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    season_id: IdLike = Field(..., alias="seasonId")
    race_id: IdLike = Field(..., alias="raceId")
    scoring_config: Optional[ScoringConfigUpdate] = Field(None, alias="scoringConfig")


class PickSet(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    p1: Optional[IdLike] = None
    p2: Optional[IdLike] = None
    p3: Optional[IdLike] = None
    last_place: Optional[IdLike] = Field(None, alias="lastPlace")
    tie_breaker: Optional[float] = Field(None, alias="tieBreaker")


class EntryRequest(BaseModel):
    picks: PickSet


class TransitionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to_status: str = Field(..., alias="toStatus")
    reason: Optional[str] = None
    trigger: Optional[str] = None


class ScoreRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    force: bool = False
    preserve_overrides: bool = Field(True, alias="preserveOverrides")


class RescoreRequest(BaseModel):
    trigger: Optional[str] = None


class OverrideRequest(BaseModel):
    total: Optional[float] = None
    reason: Optional[str] = None
