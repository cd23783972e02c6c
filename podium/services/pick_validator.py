"""
Pick Validator

Checks a user's four picks (p1, p2, p3, last place) before they are stored.
"""
import math
from typing import Any, Dict, Iterable, Mapping, Optional

from podium.core.ids import to_id
from podium.errors import ValidationError, ErrorCode
from podium.orm.prediction_entry import PICK_FIELDS

# camelCase aliases accepted from older clients
FIELD_ALIASES = {"last_place": ("lastPlace", "lastPlaceTeamId")}


def _read(picks: Any, field: str) -> Any:
    names = (field,) + FIELD_ALIASES.get(field, ())
    for name in names:
        if isinstance(picks, Mapping):
            if name in picks:
                return picks[name]
        elif hasattr(picks, name):
            return getattr(picks, name)
    return None


def _read_tie_breaker(picks: Any) -> Optional[float]:
    value = _read(picks, "tie_breaker")
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = float("nan")
    if isinstance(value, bool) or not math.isfinite(number):
        raise ValidationError(
            "tie_breaker must be a finite number",
            details={"field": "tie_breaker"}
        )
    return number


def validate_picks(picks: Any, season_team_ids: Iterable[Any]) -> Dict[str, Any]:
    """
    Validate picks against a season's team set.

    Returns:
        {"p1", "p2", "p3", "last_place": int team ids, "tie_breaker": float | None}

    Raises:
        ValidationError: Bad id, duplicate team or team outside the season
    """
    if picks is None:
        raise ValidationError("Picks are required", code=ErrorCode.MISSING_FIELD)

    normalized: Dict[str, Any] = {}
    for field in PICK_FIELDS:
        normalized[field] = to_id(_read(picks, field), field)

    seen: Dict[int, str] = {}
    for field in PICK_FIELDS:
        team_id = normalized[field]
        if team_id in seen:
            raise ValidationError(
                f"Team {team_id} is picked for both {seen[team_id]} and {field}",
                code=ErrorCode.DUPLICATE_PICK,
                details={"team_id": team_id, "fields": [seen[team_id], field]}
            )
        seen[team_id] = field

    allowed = {to_id(team_id, "team_id") for team_id in season_team_ids}
    for field in PICK_FIELDS:
        if normalized[field] not in allowed:
            raise ValidationError(
                f"Team {normalized[field]} ({field}) is not part of this season",
                code=ErrorCode.TEAM_NOT_IN_SEASON,
                details={"field": field, "team_id": normalized[field]}
            )

    normalized["tie_breaker"] = _read_tie_breaker(picks)
    return normalized
