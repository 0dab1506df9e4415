"""
Snapshot serialization and load-time normalization.

The persisted snapshot mirrors the aggregate state with camelCase keys. Older
snapshots are upgraded on load: numeric court ids become ``court-N``, missing
gender/shuttle share fields get defaults, team entries may be full player
objects instead of ids, and the waiting list is repaired so every live player
sits in exactly one place.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError

from courtside.models.schemas import (
    CompletedMatchRecord,
    Court,
    Match,
    Phase,
    Player,
    QueuedMatch,
    RemovedPlayer,
    RotationSnapshot,
    RotationState,
)
from courtside.services import court_service
from courtside.utils.constants import COURT_ID_PREFIX, MAX_COURTS, PLAYERS_PER_TEAM

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"(\d+)$")
_CATEGORY_ALIASES = {
    "beginner": "Beginners",
    "beginners": "Beginners",
    "intermediate": "Intermediate",
    "intermediates": "Intermediate",
}
_GENDER_ALIASES = {"male": "Male", "m": "Male", "female": "Female", "f": "Female"}


# ============================================================================
# Serialization
# ============================================================================


def to_snapshot(state: RotationState) -> RotationSnapshot:
    """Flatten the id-keyed state into the persisted list shape."""
    return RotationSnapshot(
        phase=state.phase,
        courts=list(state.courts.values()),
        players=list(state.players.values()),
        queue=list(state.queue),
        matches=list(state.matches),
        advance_queue=list(state.advance_queue),
        removed_players=list(state.removed_players.values()),
        completed_matches=list(state.completed_matches),
    )


def dump_snapshot(state: RotationState) -> Dict[str, Any]:
    """JSON-ready dict with camelCase keys."""
    return to_snapshot(state).model_dump(by_alias=True, mode="json")


# ============================================================================
# Normalization helpers
# ============================================================================


def normalize_court_id(value: Any) -> Optional[str]:
    """
    Coerce a court reference into the ``court-N`` scheme.

    Args:
        value: Court id as stored by any snapshot version (int, "3", "court-3")

    Returns:
        Normalized id, or None when the value cannot be a court id
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return f"{COURT_ID_PREFIX}{int(value)}"
    text = str(value).strip()
    if not text:
        return None
    if text.startswith(COURT_ID_PREFIX):
        return text
    found = _DIGITS.search(text)
    if found:
        return f"{COURT_ID_PREFIX}{int(found.group(1))}"
    return text


def _player_fields(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Apply defaults for fields older snapshots may lack."""
    data = dict(raw)
    data["id"] = str(data.get("id", ""))
    gender = data.get("gender")
    data["gender"] = _GENDER_ALIASES.get(str(gender).lower(), "Male") if gender else "Male"
    category = data.get("category")
    if isinstance(category, str):
        data["category"] = _CATEGORY_ALIASES.get(category.lower(), category)
    for key, snake in (("shuttleShare", "shuttle_share"), ("gamesPlayed", "games_played")):
        value = data.pop(snake, data.get(key))
        data[key] = value if isinstance(value, (int, float)) and value >= 0 else 0
    return data


def _parse_player(raw: Any, model=Player) -> Optional[Player]:
    if not isinstance(raw, dict):
        return None
    try:
        return model.model_validate(_player_fields(raw))
    except ValidationError as e:
        logger.warning(f"Dropping unreadable player entry {raw.get('id')!r}: {e}")
        return None


def _team_ids(raw_team: Any, players: Dict[str, Player]) -> Optional[List[str]]:
    """
    Resolve a stored team to player ids. Full player objects are also
    registered in the pool when the pool does not know them yet.
    """
    if not isinstance(raw_team, list) or len(raw_team) != PLAYERS_PER_TEAM:
        return None
    ids = []
    for entry in raw_team:
        if isinstance(entry, dict):
            player = _parse_player(entry)
            if player is None:
                return None
            players.setdefault(player.id, player)
            ids.append(player.id)
        elif isinstance(entry, (str, int)) and not isinstance(entry, bool):
            ids.append(str(entry))
        else:
            return None
    return ids


def _parse_courts(raw: Any) -> Dict[str, Court]:
    courts: Dict[str, Court] = {}
    if isinstance(raw, int) and not isinstance(raw, bool):
        # Oldest snapshots stored only a court count
        for number in range(1, max(1, min(raw, MAX_COURTS)) + 1):
            courts[f"{COURT_ID_PREFIX}{number}"] = Court(
                id=f"{COURT_ID_PREFIX}{number}", name=f"Court {number}"
            )
        return courts
    for entry in raw if isinstance(raw, list) else []:
        if isinstance(entry, dict):
            court_id = normalize_court_id(entry.get("id"))
            name = str(entry.get("name") or "").strip()
        else:
            court_id = normalize_court_id(entry)
            name = ""
        if court_id is None or court_id in courts:
            continue
        courts[court_id] = Court(id=court_id, name=name or court_service.default_court_name(courts))
    return courts


# ============================================================================
# Load
# ============================================================================


def load_state(data: Optional[Dict[str, Any]]) -> RotationState:
    """
    Build a consistent state from a stored snapshot.

    Args:
        data: Parsed snapshot JSON (any version), or None

    Returns:
        RotationState satisfying the membership and court invariants
    """
    if data is not None and not isinstance(data, dict):
        logger.warning(f"Ignoring stored snapshot of type {type(data).__name__}; expected an object")
        data = None
    data = data or {}
    try:
        phase = Phase(data.get("phase", Phase.SETUP.value))
    except ValueError:
        phase = Phase.SETUP

    courts = _parse_courts(data.get("courts"))
    if not courts:
        courts = {f"{COURT_ID_PREFIX}1": Court(id=f"{COURT_ID_PREFIX}1", name="Court 1")}

    players: Dict[str, Player] = {}
    for raw in data.get("players") or []:
        player = _parse_player(raw)
        if player is not None and player.id not in players:
            players[player.id] = player

    removed: Dict[str, RemovedPlayer] = {}
    for raw in data.get("removedPlayers") or data.get("removed_players") or []:
        player = _parse_player(raw, model=RemovedPlayer)
        if player is not None and player.id not in players:
            removed[player.id] = player

    busy: Set[str] = set()
    matches: List[Match] = []
    for raw in data.get("matches") or []:
        if not isinstance(raw, dict) or raw.get("id") is None:
            continue
        court_id = normalize_court_id(raw.get("courtId", raw.get("court_id")))
        team1 = _team_ids(raw.get("team1"), players)
        team2 = _team_ids(raw.get("team2"), players)
        if court_id not in courts or team1 is None or team2 is None:
            logger.warning(f"Dropping match {raw.get('id')!r}: unknown court or malformed teams")
            continue
        ids = team1 + team2
        if len(set(ids)) != len(ids) or busy & set(ids) or any(m.court_id == court_id for m in matches):
            logger.warning(f"Dropping match {raw.get('id')!r}: conflicts with another match")
            continue
        busy.update(ids)
        matches.append(
            Match(id=str(raw.get("id")), court_id=court_id, team1=team1, team2=team2,
                  created_at=raw.get("createdAt", raw.get("created_at")) or 0)
        )

    advance_queue: List[QueuedMatch] = []
    for raw in data.get("advanceQueue") or data.get("advance_queue") or []:
        if not isinstance(raw, dict) or raw.get("id") is None:
            continue
        team1 = _team_ids(raw.get("team1"), players)
        team2 = _team_ids(raw.get("team2"), players)
        if team1 is None or team2 is None:
            continue
        ids = team1 + team2
        if len(set(ids)) != len(ids) or busy & set(ids):
            logger.warning(f"Dropping queued match {raw.get('id')!r}: players busy elsewhere")
            continue
        busy.update(ids)
        advance_queue.append(
            QueuedMatch(id=str(raw.get("id")), team1=team1, team2=team2,
                        created_at=raw.get("createdAt", raw.get("created_at")) or 0)
        )

    # Teams may have introduced players the pool did not list
    for pid in list(players):
        removed.pop(pid, None)
    unknown = busy - set(players)
    if unknown:
        logger.warning(f"Dropping matches that reference unknown players {sorted(unknown)}")
        matches = [m for m in matches if not set(m.player_ids) & unknown]
        advance_queue = [q for q in advance_queue if not set(q.player_ids) & unknown]
        busy = {pid for m in matches for pid in m.player_ids}
        busy |= {pid for q in advance_queue for pid in q.player_ids}

    queue: List[str] = []
    for entry in data.get("queue") or []:
        pid = str(entry.get("id")) if isinstance(entry, dict) else str(entry)
        if pid in players and pid not in busy and pid not in queue:
            queue.append(pid)
    if phase == Phase.ACTIVE:
        queue += [pid for pid in players if pid not in busy and pid not in queue]
    else:
        queue, matches, advance_queue = [], [], []

    completed: List[CompletedMatchRecord] = []
    for raw in data.get("completedMatches") or data.get("completed_matches") or []:
        record = _parse_record(raw, courts, players, removed)
        if record is not None:
            completed.append(record)

    return RotationState(
        phase=phase,
        courts=courts,
        players=players,
        queue=queue,
        matches=matches,
        advance_queue=advance_queue,
        removed_players=removed,
        completed_matches=completed,
    )


def _parse_record(
    raw: Any,
    courts: Dict[str, Court],
    players: Dict[str, Player],
    removed: Dict[str, RemovedPlayer],
) -> Optional[CompletedMatchRecord]:
    """Team entries may be frozen player objects or bare ids of known players."""
    if not isinstance(raw, dict):
        return None
    data = dict(raw)
    court_id = normalize_court_id(data.pop("court_id", data.get("courtId"))) or ""
    data["courtId"] = court_id
    if not data.get("courtNameSnapshot"):
        data["courtNameSnapshot"] = court_service.court_name(courts, court_id)
    for key in ("team1", "team2"):
        team = data.get(key)
        entries = []
        for entry in team if isinstance(team, list) else []:
            if isinstance(entry, dict):
                entries.append(_player_fields(entry))
                continue
            known = players.get(str(entry)) or removed.get(str(entry))
            if known is not None:
                entries.append(
                    {"id": known.id, "name": known.name, "category": known.category.value, "gender": known.gender.value}
                )
        if len(entries) != PLAYERS_PER_TEAM:
            logger.warning(f"Dropping completed match {raw.get('id')!r}: {key} does not hold two known players")
            return None
        data[key] = entries
    try:
        return CompletedMatchRecord.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Dropping unreadable completed match {raw.get('id')!r}: {e}")
        return None
