"""
Prediction Scoring

Pure functions: no database access, no clock. The same inputs always
produce the same totals, breakdowns and hashes.

Hash format:
    sha256 over canonical JSON of [{"points_earned": p, "user_id": "<id>"}, ...]
    sorted by (user_id, points_earned), compact separators, sorted keys.
"""
import hashlib
import json
import math
import sys
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from podium.orm.prediction_round import SCORING_CONFIG_DEFAULTS


DEFAULT_SCORING_CONFIG: Dict[str, Any] = dict(SCORING_CONFIG_DEFAULTS)

PODIUM_SLOTS = ("p1", "p2", "p3")

SLOT_LABELS = {"p1": "P1", "p2": "P2", "p3": "P3"}


def round_to_two_decimals(value: float) -> float:
    """Round half-up to two decimals; epsilon nudges 1.005-style values up."""
    return math.floor((float(value) + sys.float_info.epsilon) * 100 + 0.5) / 100


def _number(value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def _canonical_points(value: Any):
    # 25.0 and 25 must hash identically
    points = _number(value)
    return int(points) if points.is_integer() else points


def _field(row: Any, name: str, default: Any = None) -> Any:
    if isinstance(row, Mapping):
        return row.get(name, default)
    return getattr(row, name, default)


def normalize_race_results(results: Iterable[Any]) -> List[Dict[str, Any]]:
    """Reduce race results to sorted {user_id, points_earned} rows."""
    normalized = []
    for row in results or []:
        user_id = _field(row, "user_id")
        if user_id is None or user_id == "":
            continue
        normalized.append({
            "user_id": str(user_id),
            "points_earned": _canonical_points(_field(row, "points_earned", 0)),
        })
    normalized.sort(key=lambda r: (r["user_id"], r["points_earned"]))
    return normalized


def build_race_results_hash(results: Iterable[Any]) -> str:
    """SHA-256 of the canonical race results; input order does not matter."""
    payload = json.dumps(
        normalize_race_results(results),
        sort_keys=True,
        separators=(',', ':')
    )
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()


def build_actual_snapshot(
    participants: Sequence[int],
    user_to_team: Mapping[int, int],
    race_results: Iterable[Any],
) -> Dict[str, Any]:
    """
    Derive the actual team outcome of a race.

    Each participant with a team assignment contributes their race points
    (0 if absent) to their team. Teams are ordered by points descending,
    ties broken by team id in lexical order.

    Returns:
        {p1, p2, p3, last_place, top3, ranking}
    """
    points_by_user: Dict[str, float] = {}
    for row in race_results or []:
        user_id = _field(row, "user_id")
        if user_id is None:
            continue
        points_by_user[str(user_id)] = _number(_field(row, "points_earned", 0))

    ranking = []
    for user_id in participants:
        team_id = user_to_team.get(user_id)
        if team_id is None:
            continue
        ranking.append({
            "team_id": team_id,
            "user_id": user_id,
            "points": points_by_user.get(str(user_id), 0.0),
        })

    ranking.sort(key=lambda r: (-r["points"], str(r["team_id"])))

    def team_at(index: int) -> Optional[int]:
        return ranking[index]["team_id"] if len(ranking) > index else None

    return {
        "p1": team_at(0),
        "p2": team_at(1),
        "p3": team_at(2),
        "last_place": ranking[-1]["team_id"] if ranking else None,
        "top3": [r["team_id"] for r in ranking[:3]],
        "ranking": ranking,
    }


def snapshot_picks(entry: Any) -> Optional[Dict[str, Any]]:
    """Pick snapshot of an entry (ORM row or mapping), or None."""
    if entry is None:
        return None
    if isinstance(entry, Mapping):
        return {
            "p1": entry.get("p1"),
            "p2": entry.get("p2"),
            "p3": entry.get("p3"),
            "last_place": entry.get("last_place"),
            "tie_breaker": entry.get("tie_breaker"),
        }
    return dict(entry.picks)


def calculate_round_score(
    entry: Any,
    actual: Mapping[str, Any],
    scoring_config: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Score one entry against the actual outcome.

    Podium slots award exact_position_points for an exact match, otherwise
    top3_any_position_points when the pick finished in the top three.
    The last-place pick only scores on an exact match. Awards worth zero
    points are left out of the breakdown.

    Returns:
        {total, breakdown, predicted}
    """
    config = dict(DEFAULT_SCORING_CONFIG)
    config.update(scoring_config or {})

    predicted = snapshot_picks(entry)
    if predicted is None:
        return {"total": 0, "breakdown": [], "predicted": None}

    top3 = set(actual.get("top3") or [])
    exact_points = _number(config["exact_position_points"])
    top3_points = _number(config["top3_any_position_points"])
    last_points = _number(config["exact_last_place_points"])

    breakdown = []

    def award(code: str, label: str, points: float, details: Dict[str, Any]):
        if points == 0:
            return
        breakdown.append({
            "code": code,
            "label": label,
            "points": round_to_two_decimals(points),
            "details": details,
        })

    for slot in PODIUM_SLOTS:
        picked = predicted.get(slot)
        if picked is None:
            continue
        if picked == actual.get(slot):
            award(
                f"exact_{slot}",
                f"Exact position {SLOT_LABELS[slot]}",
                exact_points,
                {"team_id": picked, "actual_team_id": actual.get(slot)},
            )
        elif picked in top3:
            award(
                f"top3_{slot}",
                f"Team in top 3 ({SLOT_LABELS[slot]})",
                top3_points,
                {"team_id": picked, "actual_team_id": actual.get(slot)},
            )

    last_pick = predicted.get("last_place")
    if last_pick is not None and last_pick == actual.get("last_place"):
        award(
            "exact_last_place",
            "Exact last place",
            last_points,
            {"team_id": last_pick},
        )

    total = round_to_two_decimals(sum(item["points"] for item in breakdown))
    return {"total": total, "breakdown": breakdown, "predicted": predicted}


def build_rank_map(scores: Iterable[Any]) -> Dict[int, int]:
    """
    Competition ranking (1, 2, 2, 4) of score rows by total.

    Equal totals share a rank; rows are ordered by user id within a tie.
    """
    rows = sorted(
        ((_number(_field(s, "total", 0)), _field(s, "user_id")) for s in scores),
        key=lambda r: (-r[0], r[1])
    )
    ranks: Dict[int, int] = {}
    previous_total = None
    previous_rank = 0
    for index, (total, user_id) in enumerate(rows):
        rank = previous_rank if total == previous_total else index + 1
        ranks[user_id] = rank
        previous_total, previous_rank = total, rank
    return ranks
