"""
Completed match ledger.

Builds frozen records of finished games, applies and reverses the fairness
counters a game contributes, and computes the end-of-rotation cost split.
"""

import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from courtside.models.schemas import (
    CompletedMatchRecord,
    CostSummaryResponse,
    Court,
    Match,
    Player,
    PlayerCostLine,
    PlayerSnapshot,
    RotationState,
)
from courtside.services.court_service import court_name
from courtside.utils.constants import SHARE_QUANTUM, SHUTTLE_SPLIT

logger = logging.getLogger(__name__)


# ============================================================================
# Share arithmetic
# ============================================================================


def round_share(value: float) -> float:
    """Round a shuttle share to the nearest quarter, never below zero."""
    return max(0.0, round(value * SHARE_QUANTUM) / SHARE_QUANTUM)


def share_per_player(shuttle_used: int) -> float:
    """Each of the four players carries a quarter of the shuttles used."""
    return shuttle_used / SHUTTLE_SPLIT


def format_shuttle_fraction(value: float) -> str:
    """
    Format a share as whole shuttles plus quarters.

    Examples:
        >>> format_shuttle_fraction(1.75)
        '1 3/4'
        >>> format_shuttle_fraction(0.5)
        '2/4'
    """
    quarters = round(value * SHARE_QUANTUM)
    if quarters == 0:
        return "0"
    whole, remainder = divmod(quarters, SHARE_QUANTUM)
    if remainder == 0:
        return f"{whole}"
    if whole == 0:
        return f"{remainder}/{SHARE_QUANTUM}"
    return f"{whole} {remainder}/{SHARE_QUANTUM}"


# ============================================================================
# Counters
# ============================================================================


def apply_game(player: Player, shuttle_used: int) -> None:
    """Credit one played game and its shuttle share to a player."""
    player.games_played += 1
    player.shuttle_share = round_share(player.shuttle_share + share_per_player(shuttle_used))


def reverse_game(player: Player, shuttle_used: int) -> None:
    """Take back one game's counters. Both counters are floored at zero."""
    player.games_played = max(0, player.games_played - 1)
    player.shuttle_share = round_share(player.shuttle_share - share_per_player(shuttle_used))


# ============================================================================
# Records
# ============================================================================


def snapshot_team(player_ids: Iterable[str], players: Mapping[str, Player]) -> List[PlayerSnapshot]:
    """Freeze name/category/gender for each player on a team."""
    return [
        PlayerSnapshot(
            id=players[pid].id,
            name=players[pid].name,
            category=players[pid].category,
            gender=players[pid].gender,
        )
        for pid in player_ids
    ]


def build_record(
    match: Match,
    players: Mapping[str, Player],
    courts: Mapping[str, Court],
    shuttle_used: int,
    completed_at: int,
) -> CompletedMatchRecord:
    """
    Create the ledger entry for a match being completed.

    Args:
        match: The active match
        players: Live player pool (must contain every player of the match)
        courts: Court registry, for the court name snapshot
        shuttle_used: Shuttles used in the game
        completed_at: Completion timestamp (epoch ms)

    Returns:
        A new, non-voided CompletedMatchRecord
    """
    return CompletedMatchRecord(
        id=match.id,
        court_id=match.court_id,
        court_name_snapshot=court_name(courts, match.court_id),
        team1=snapshot_team(match.team1, players),
        team2=snapshot_team(match.team2, players),
        completed_at=completed_at,
        shuttle_used=shuttle_used,
    )


def find_record(records: Iterable[CompletedMatchRecord], record_id: str) -> Optional[CompletedMatchRecord]:
    for record in records:
        if record.id == record_id:
            return record
    return None


def toggle_void(
    record: CompletedMatchRecord,
    lookup: Callable[[str], Optional[Player]],
    now: int,
) -> None:
    """
    Void or restore a completed record, correcting its players' counters.

    Players are resolved through ``lookup`` wherever they currently live;
    players that were permanently deleted are skipped.

    Args:
        record: The record to flip
        lookup: Resolves a player id to the live or removed player, or None
        now: Timestamp recorded as ``voided_at`` when voiding
    """
    voiding = not record.voided
    for player_id in record.player_ids:
        player = lookup(player_id)
        if player is None:
            logger.debug(f"Player {player_id} no longer exists; skipping counter correction")
            continue
        if voiding:
            reverse_game(player, record.shuttle_used)
        else:
            apply_game(player, record.shuttle_used)
    record.voided = voiding
    record.voided_at = now if voiding else None


def history(records: Iterable[CompletedMatchRecord]) -> List[CompletedMatchRecord]:
    """Completed records, newest first. Equal timestamps keep reverse completion order."""
    ordered = list(enumerate(records))
    ordered.sort(key=lambda item: (item[1].completed_at, item[0]), reverse=True)
    return [record for _, record in ordered]


# ============================================================================
# Cost summary
# ============================================================================


def _money(value: float) -> float:
    return round(value, 2)


def cost_summary(
    state: RotationState,
    total_court_cost: float = 0.0,
    cost_per_shuttle: float = 0.0,
) -> CostSummaryResponse:
    """
    Split court and shuttle costs across every player of the rotation.

    Court cost is shared equally by all players, live and removed. Shuttle cost
    follows each player's accumulated shuttle share.

    Args:
        state: Current rotation state
        total_court_cost: Total amount paid for the courts
        cost_per_shuttle: Price of one shuttlecock

    Returns:
        CostSummaryResponse with totals and one line per player
    """
    merged: Dict[str, Player] = {}
    for player in [*state.players.values(), *state.removed_players.values()]:
        existing = merged.get(player.id)
        if existing is None or player.games_played > existing.games_played:
            merged[player.id] = player

    everyone = list(merged.values())
    player_count = len(everyone)
    court_share = total_court_cost / player_count if player_count else 0.0
    total_shuttles = sum(p.shuttle_share for p in everyone)

    lines = []
    for player in sorted(everyone, key=lambda p: (-p.games_played, p.name)):
        shuttle_cost = player.shuttle_share * cost_per_shuttle
        lines.append(
            PlayerCostLine(
                id=player.id,
                name=player.name,
                category=player.category,
                gender=player.gender,
                games_played=player.games_played,
                shuttle_share=player.shuttle_share,
                shuttle_share_display=format_shuttle_fraction(player.shuttle_share),
                court_share=_money(court_share),
                shuttle_cost=_money(shuttle_cost),
                total_to_pay=_money(court_share + shuttle_cost),
                removed=player.id in state.removed_players,
            )
        )

    return CostSummaryResponse(
        total_players=player_count,
        total_games=sum(p.games_played for p in everyone),
        total_shuttles_used=total_shuttles,
        total_shuttle_cost=_money(total_shuttles * cost_per_shuttle),
        court_share_per_player=_money(court_share),
        players=lines,
    )
