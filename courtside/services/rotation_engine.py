"""
State transition engine for a live court rotation.

``RotationEngine.apply`` takes a state and one operation and returns a new
state; the input is never mutated. Every player id lives in exactly one of
waiting (``state.queue``), playing (an active match) or reserved (an advance
queue entry), or has been removed. Operations whose preconditions fail leave
the state untouched and report a ``NoOpReason``.
"""

import logging
import random
import re
from dataclasses import dataclass, replace
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set

from courtside.models.schemas import (
    AddCourt,
    AddPlayer,
    CancelMatch,
    CancelQueuedMatch,
    CompleteMatch,
    Court,
    CreateManualMatch,
    CreateMatch,
    DeleteCourt,
    DeleteRemovedPlayer,
    FillCourts,
    Match,
    NoOpReason,
    OperationResult,
    Phase,
    Player,
    PromoteQueuedMatch,
    QueuedMatch,
    QueueMatch,
    RemovedPlayer,
    RemovePlayer,
    RenameCourt,
    RestorePlayer,
    RotationState,
    SwitchMatchCourt,
    ToggleVoid,
    UpdateMatch,
    UpdatePlayer,
)
from courtside.services import court_service, ledger_service
from courtside.services.match_assembler import assemble, assemble_many
from courtside.utils.constants import (
    COURT_ID_PREFIX,
    MATCH_ID_PREFIX,
    MAX_COURTS,
    MIN_COURTS,
    MIN_PLAYERS_TO_START,
    PLAYER_ID_PREFIX,
    PLAYERS_PER_MATCH,
    PLAYERS_PER_TEAM,
)
from courtside.utils.datetime_utils import now_ms

logger = logging.getLogger(__name__)

SETUP_ONLY: FrozenSet[Phase] = frozenset({Phase.SETUP})
ACTIVE_ONLY: FrozenSet[Phase] = frozenset({Phase.ACTIVE})
ANY_PHASE: FrozenSet[Phase] = frozenset({Phase.SETUP, Phase.ACTIVE})

OPERATION_PHASES: Dict[str, FrozenSet[Phase]] = {
    "add_player": ANY_PHASE,
    "update_player": ANY_PHASE,
    "remove_player": ANY_PHASE,
    "restore_player": ACTIVE_ONLY,
    "delete_removed_player": ACTIVE_ONLY,
    "add_court": ANY_PHASE,
    "rename_court": ANY_PHASE,
    "delete_court": ANY_PHASE,
    "start_rotation": SETUP_ONLY,
    "create_match": ACTIVE_ONLY,
    "fill_courts": ACTIVE_ONLY,
    "create_manual_match": ACTIVE_ONLY,
    "update_match": ACTIVE_ONLY,
    "queue_match": ACTIVE_ONLY,
    "promote_queued_match": ACTIVE_ONLY,
    "cancel_queued_match": ACTIVE_ONLY,
    "complete_match": ACTIVE_ONLY,
    "cancel_match": ACTIVE_ONLY,
    "switch_match_court": ACTIVE_ONLY,
    "toggle_void": ACTIVE_ONLY,
    "reset_games": ANY_PHASE,
    "reset_setup": ANY_PHASE,
    "end_rotation": ACTIVE_ONLY,
}

_NUMERIC_SUFFIX = re.compile(r"(\d+)$")


class OperationRejected(Exception):
    """Raised inside a handler when an operation's preconditions are not met."""

    def __init__(self, reason: NoOpReason, message: str = ""):
        super().__init__(message or reason.value)
        self.reason = reason


@dataclass
class IdGenerator:
    """Monotonic id counters for players, matches and courts."""

    next_player: int = 1
    next_match: int = 1
    next_court: int = 1

    def player_id(self) -> str:
        value = f"{PLAYER_ID_PREFIX}{self.next_player}"
        self.next_player += 1
        return value

    def match_id(self) -> str:
        value = f"{MATCH_ID_PREFIX}{self.next_match}"
        self.next_match += 1
        return value

    def court_id(self) -> str:
        value = f"{COURT_ID_PREFIX}{self.next_court}"
        self.next_court += 1
        return value

    def copy(self) -> "IdGenerator":
        return replace(self)

    @classmethod
    def from_state(cls, state: RotationState) -> "IdGenerator":
        """
        Seed counters from a loaded state as max(numeric suffix) + 1.

        Args:
            state: State whose ids must never be handed out again

        Returns:
            IdGenerator positioned past every existing id
        """
        player_ids = [*state.players, *state.removed_players]
        for record in state.completed_matches:
            player_ids.extend(record.player_ids)
        match_ids = [m.id for m in state.matches]
        match_ids += [q.id for q in state.advance_queue]
        match_ids += [r.id for r in state.completed_matches]
        court_ids = list(state.courts)
        return cls(
            next_player=_max_suffix(player_ids) + 1,
            next_match=_max_suffix(match_ids) + 1,
            next_court=_max_suffix(court_ids) + 1,
        )


def _max_suffix(ids: Iterable[str]) -> int:
    highest = 0
    for value in ids:
        found = _NUMERIC_SUFFIX.search(str(value))
        if found:
            highest = max(highest, int(found.group(1)))
    return highest


# ============================================================================
# Membership queries
# ============================================================================


def playing_ids(state: RotationState) -> Set[str]:
    return {pid for match in state.matches for pid in match.player_ids}


def reserved_ids(state: RotationState) -> Set[str]:
    return {pid for queued in state.advance_queue for pid in queued.player_ids}


def waiting_players(state: RotationState) -> List[Player]:
    """Players eligible for assembly, in waiting order."""
    busy = playing_ids(state) | reserved_ids(state)
    return [state.players[pid] for pid in state.queue if pid in state.players and pid not in busy]


def membership_violations(state: RotationState) -> List[str]:
    """
    Describe every broken membership or court invariant. Empty when consistent.
    """
    problems: List[str] = []
    waiting = list(state.queue)
    playing = [pid for match in state.matches for pid in match.player_ids]
    reserved = [pid for queued in state.advance_queue for pid in queued.player_ids]

    for label, ids in (("waiting", waiting), ("playing", playing), ("reserved", reserved)):
        if len(ids) != len(set(ids)):
            problems.append(f"duplicate ids in {label}")
        unknown = set(ids) - set(state.players)
        if unknown:
            problems.append(f"{label} references unknown players {sorted(unknown)}")

    if set(waiting) & set(playing):
        problems.append("waiting and playing overlap")
    if set(waiting) & set(reserved):
        problems.append("waiting and reserved overlap")
    if set(playing) & set(reserved):
        problems.append("playing and reserved overlap")
    if set(state.players) & set(state.removed_players):
        problems.append("player both live and removed")

    court_ids = [m.court_id for m in state.matches]
    if len(court_ids) != len(set(court_ids)):
        problems.append("two matches share a court")
    if set(court_ids) - set(state.courts):
        problems.append("match bound to unknown court")
    if len(state.courts) < MIN_COURTS:
        problems.append("no courts")
    return problems


# ============================================================================
# Engine
# ============================================================================


class RotationEngine:
    """
    Applies operations to rotation state.

    The engine owns its id counters, random source and clock, so tests can make
    assembly reproducible by passing a seeded ``random.Random``.
    """

    def __init__(
        self,
        ids: Optional[IdGenerator] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.ids = ids or IdGenerator()
        self.rng = rng or random.Random()
        self.clock = clock or now_ms

    def initial_state(self) -> RotationState:
        """Empty setup-phase state with a single court."""
        court = Court(id=self.ids.court_id(), name=court_service.default_court_name({}))
        return RotationState(courts={court.id: court})

    def apply(self, state: RotationState, operation) -> OperationResult:
        """
        Apply one operation.

        Args:
            state: Current state (left untouched)
            operation: Any member of the ``Operation`` union

        Returns:
            OperationResult with the new state, or the input state and a reason
        """
        op_type = operation.type
        if state.phase not in OPERATION_PHASES[op_type]:
            logger.info(f"Rejected {op_type}: not allowed in {state.phase.value} phase")
            return OperationResult(state=state, applied=False, reason=NoOpReason.WRONG_PHASE)

        handler = getattr(self, f"_{op_type}")
        working = state.model_copy(deep=True)
        checkpoint = self.ids.copy()
        try:
            new_state = handler(working, operation)
        except OperationRejected as e:
            self.ids = checkpoint
            logger.info(f"Rejected {op_type}: {e.reason.value}")
            return OperationResult(state=state, applied=False, reason=e.reason)

        logger.debug(f"Applied {op_type}")
        return OperationResult(state=new_state, applied=True)

    def can_create_match(self, state: RotationState) -> bool:
        """True when a court is free and the fallback-permitting assembler finds a match."""
        if state.phase != Phase.ACTIVE:
            return False
        if not court_service.available_courts(state.matches, state.courts.values()):
            return False
        result = assemble(
            waiting_players(state),
            allow_unbalanced_fallback=True,
            rng=random.Random(0),
        )
        return result.match is not None

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _release(state: RotationState, player_ids: Iterable[str]) -> None:
        """Return players to the tail of the waiting list unless busy elsewhere."""
        busy = playing_ids(state) | reserved_ids(state)
        for pid in player_ids:
            if pid in state.players and pid not in busy and pid not in state.queue:
                state.queue.append(pid)

    @staticmethod
    def _claim(state: RotationState, player_ids: Iterable[str]) -> None:
        taken = set(player_ids)
        state.queue = [pid for pid in state.queue if pid not in taken]

    @staticmethod
    def _find_match(state: RotationState, match_id: str) -> Match:
        for match in state.matches:
            if match.id == match_id:
                return match
        raise OperationRejected(NoOpReason.MATCH_NOT_FOUND)

    @staticmethod
    def _find_queued(state: RotationState, queued_id: Optional[str]) -> QueuedMatch:
        if queued_id is None and state.advance_queue:
            return state.advance_queue[0]
        for queued in state.advance_queue:
            if queued.id == queued_id:
                return queued
        raise OperationRejected(NoOpReason.QUEUED_MATCH_NOT_FOUND)

    @staticmethod
    def _require_court(state: RotationState, court_id: str) -> Court:
        court = state.courts.get(court_id)
        if court is None:
            raise OperationRejected(NoOpReason.COURT_NOT_FOUND)
        return court

    def _resolve_free_court(self, state: RotationState, court_id: Optional[str]) -> str:
        """The requested court if free, else the first free court."""
        if court_id is not None:
            self._require_court(state, court_id)
            if court_service.match_on_court(state.matches, court_id) is not None:
                raise OperationRejected(NoOpReason.COURT_OCCUPIED)
            return court_id
        free = court_service.first_available_court(state.matches, state.courts.values())
        if free is None:
            raise OperationRejected(NoOpReason.NO_FREE_COURT)
        return free

    @staticmethod
    def _validate_teams(
        state: RotationState,
        team1: Sequence[str],
        team2: Sequence[str],
        editing: Optional[Match] = None,
    ) -> None:
        """
        Two teams of two distinct live players, none playing in another match
        or reserved in the advance queue.
        """
        if len(team1) != PLAYERS_PER_TEAM or len(team2) != PLAYERS_PER_TEAM:
            raise OperationRejected(NoOpReason.INVALID_TEAM)
        chosen = [*team1, *team2]
        if len(set(chosen)) != PLAYERS_PER_MATCH:
            raise OperationRejected(NoOpReason.INVALID_TEAM)
        if any(pid not in state.players for pid in chosen):
            raise OperationRejected(NoOpReason.PLAYER_NOT_FOUND)
        busy = reserved_ids(state)
        for match in state.matches:
            if editing is None or match.id != editing.id:
                busy.update(match.player_ids)
        if busy & set(chosen):
            raise OperationRejected(NoOpReason.PLAYER_UNAVAILABLE)

    def _randomize_allowed(self, state: RotationState, requested: bool) -> bool:
        """Partner shuffling only kicks in once everyone has played a game."""
        return requested and bool(state.players) and all(
            p.games_played >= 1 for p in state.players.values()
        )

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------

    def _add_player(self, state: RotationState, op: AddPlayer) -> RotationState:
        name = op.name.strip()
        if not name:
            raise OperationRejected(NoOpReason.INVALID_NAME)
        player = Player(
            id=self.ids.player_id(),
            name=name,
            category=op.category,
            gender=op.gender,
            added_at=self.clock(),
        )
        state.players[player.id] = player
        if state.phase == Phase.ACTIVE:
            state.queue.append(player.id)
        return state

    def _update_player(self, state: RotationState, op: UpdatePlayer) -> RotationState:
        player = state.players.get(op.player_id)
        if player is None:
            raise OperationRejected(NoOpReason.PLAYER_NOT_FOUND)
        if op.name is not None:
            name = op.name.strip()
            if not name:
                raise OperationRejected(NoOpReason.INVALID_NAME)
            player.name = name
        if op.category is not None:
            player.category = op.category
        if op.gender is not None:
            player.gender = op.gender
        return state

    def _remove_player(self, state: RotationState, op: RemovePlayer) -> RotationState:
        pid = op.player_id
        if pid not in state.players:
            raise OperationRejected(NoOpReason.PLAYER_NOT_FOUND)
        if pid in playing_ids(state):
            raise OperationRejected(NoOpReason.PLAYER_IN_MATCH)

        player = state.players.pop(pid)
        self._claim(state, [pid])
        if state.phase == Phase.SETUP:
            return state

        for queued in list(state.advance_queue):
            if pid in queued.player_ids:
                state.advance_queue.remove(queued)
                self._release(state, [other for other in queued.player_ids if other != pid])
        state.removed_players[pid] = RemovedPlayer(**player.model_dump(), removed_at=self.clock())
        return state

    def _restore_player(self, state: RotationState, op: RestorePlayer) -> RotationState:
        removed = state.removed_players.pop(op.player_id, None)
        if removed is None:
            raise OperationRejected(NoOpReason.PLAYER_NOT_FOUND)
        state.players[removed.id] = Player(**removed.model_dump(exclude={"removed_at"}))
        self._release(state, [removed.id])
        return state

    def _delete_removed_player(self, state: RotationState, op: DeleteRemovedPlayer) -> RotationState:
        if state.removed_players.pop(op.player_id, None) is None:
            raise OperationRejected(NoOpReason.PLAYER_NOT_FOUND)
        return state

    # ------------------------------------------------------------------
    # Courts
    # ------------------------------------------------------------------

    def _add_court(self, state: RotationState, op: AddCourt) -> RotationState:
        if len(state.courts) >= MAX_COURTS:
            raise OperationRejected(NoOpReason.COURT_LIMIT)
        name = (op.name or "").strip() or court_service.default_court_name(state.courts)
        court = Court(id=self.ids.court_id(), name=name)
        state.courts[court.id] = court
        return state

    def _rename_court(self, state: RotationState, op: RenameCourt) -> RotationState:
        court = self._require_court(state, op.court_id)
        name = op.name.strip()
        if not name:
            raise OperationRejected(NoOpReason.INVALID_NAME)
        court.name = name
        return state

    def _delete_court(self, state: RotationState, op: DeleteCourt) -> RotationState:
        self._require_court(state, op.court_id)
        if len(state.courts) <= MIN_COURTS:
            raise OperationRejected(NoOpReason.LAST_COURT)
        if court_service.match_on_court(state.matches, op.court_id) is not None:
            raise OperationRejected(NoOpReason.COURT_OCCUPIED)
        del state.courts[op.court_id]
        return state

    # ------------------------------------------------------------------
    # Rotation lifecycle
    # ------------------------------------------------------------------

    def _start_rotation(self, state: RotationState, op) -> RotationState:
        if len(state.players) < MIN_PLAYERS_TO_START:
            raise OperationRejected(NoOpReason.NOT_ENOUGH_PLAYERS)
        state.phase = Phase.ACTIVE
        state.queue = list(state.players)
        return state

    def _reset_games(self, state: RotationState, op) -> RotationState:
        for pid, removed in list(state.removed_players.items()):
            state.players[pid] = Player(**removed.model_dump(exclude={"removed_at"}))
        state.removed_players = {}
        for player in state.players.values():
            player.games_played = 0
            player.shuttle_share = 0.0
        state.completed_matches = []
        if state.phase == Phase.ACTIVE:
            self._release(state, list(state.players))
        return state

    def _reset_setup(self, state: RotationState, op) -> RotationState:
        return self.initial_state()

    def _end_rotation(self, state: RotationState, op) -> RotationState:
        return self.initial_state()

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------

    def _create_match(self, state: RotationState, op: CreateMatch) -> RotationState:
        court_id = self._resolve_free_court(state, op.court_id)
        result = assemble(
            waiting_players(state),
            allow_unbalanced_fallback=op.allow_unbalanced_fallback,
            randomize=self._randomize_allowed(state, op.randomize_partners),
            rng=self.rng,
        )
        if result.match is None:
            raise OperationRejected(NoOpReason.NO_LEGAL_MATCH)
        proposed = result.match
        state.matches.append(
            Match(
                id=self.ids.match_id(),
                court_id=court_id,
                team1=[p.id for p in proposed.team1],
                team2=[p.id for p in proposed.team2],
                created_at=self.clock(),
            )
        )
        self._claim(state, proposed.player_ids)
        return state

    def _fill_courts(self, state: RotationState, op: FillCourts) -> RotationState:
        free = court_service.available_courts(state.matches, state.courts.values())
        if not free:
            raise OperationRejected(NoOpReason.NO_FREE_COURT)
        proposals, _ = assemble_many(
            waiting_players(state),
            limit=len(free),
            allow_unbalanced_fallback=op.allow_unbalanced_fallback,
            randomize=self._randomize_allowed(state, op.randomize_partners),
            rng=self.rng,
        )
        if not proposals:
            raise OperationRejected(NoOpReason.NO_LEGAL_MATCH)
        for court_id, proposed in zip(free, proposals):
            state.matches.append(
                Match(
                    id=self.ids.match_id(),
                    court_id=court_id,
                    team1=[p.id for p in proposed.team1],
                    team2=[p.id for p in proposed.team2],
                    created_at=self.clock(),
                )
            )
            self._claim(state, proposed.player_ids)
        return state

    def _create_manual_match(self, state: RotationState, op: CreateManualMatch) -> RotationState:
        self._require_court(state, op.court_id)
        if court_service.match_on_court(state.matches, op.court_id) is not None:
            raise OperationRejected(NoOpReason.COURT_OCCUPIED)
        self._validate_teams(state, op.team1, op.team2)
        state.matches.append(
            Match(
                id=self.ids.match_id(),
                court_id=op.court_id,
                team1=list(op.team1),
                team2=list(op.team2),
                created_at=self.clock(),
            )
        )
        self._claim(state, [*op.team1, *op.team2])
        return state

    def _update_match(self, state: RotationState, op: UpdateMatch) -> RotationState:
        match = self._find_match(state, op.match_id)
        target = op.court_id or match.court_id
        self._require_court(state, target)
        occupant = court_service.match_on_court(state.matches, target)
        if occupant is not None and occupant.id != match.id:
            raise OperationRejected(NoOpReason.COURT_OCCUPIED)
        self._validate_teams(state, op.team1, op.team2, editing=match)

        previous = match.player_ids
        match.team1 = list(op.team1)
        match.team2 = list(op.team2)
        match.court_id = target
        self._claim(state, match.player_ids)
        self._release(state, [pid for pid in previous if pid not in match.player_ids])
        return state

    def _queue_match(self, state: RotationState, op: QueueMatch) -> RotationState:
        self._validate_teams(state, op.team1, op.team2)
        state.advance_queue.append(
            QueuedMatch(
                id=self.ids.match_id(),
                team1=list(op.team1),
                team2=list(op.team2),
                created_at=self.clock(),
            )
        )
        self._claim(state, [*op.team1, *op.team2])
        return state

    def _promote_queued_match(self, state: RotationState, op: PromoteQueuedMatch) -> RotationState:
        queued = self._find_queued(state, op.queued_match_id)
        court_id = self._resolve_free_court(state, op.court_id)
        state.advance_queue.remove(queued)
        state.matches.append(
            Match(
                id=queued.id,
                court_id=court_id,
                team1=list(queued.team1),
                team2=list(queued.team2),
                created_at=self.clock(),
            )
        )
        return state

    def _cancel_queued_match(self, state: RotationState, op: CancelQueuedMatch) -> RotationState:
        queued = self._find_queued(state, op.queued_match_id)
        state.advance_queue.remove(queued)
        self._release(state, queued.player_ids)
        return state

    def _complete_match(self, state: RotationState, op: CompleteMatch) -> RotationState:
        match = self._find_match(state, op.match_id)
        record = ledger_service.build_record(
            match, state.players, state.courts, op.shuttle_used, self.clock()
        )
        for pid in match.player_ids:
            ledger_service.apply_game(state.players[pid], op.shuttle_used)
        state.completed_matches.append(record)
        state.matches.remove(match)
        self._release(state, match.player_ids)
        return state

    def _cancel_match(self, state: RotationState, op: CancelMatch) -> RotationState:
        match = self._find_match(state, op.match_id)
        state.matches.remove(match)
        self._release(state, match.player_ids)
        return state

    def _switch_match_court(self, state: RotationState, op: SwitchMatchCourt) -> RotationState:
        match = self._find_match(state, op.match_id)
        self._require_court(state, op.court_id)
        if match.court_id == op.court_id:
            raise OperationRejected(NoOpReason.SAME_COURT)
        occupant = court_service.match_on_court(state.matches, op.court_id)
        if occupant is not None:
            occupant.court_id = match.court_id
        match.court_id = op.court_id
        return state

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def _toggle_void(self, state: RotationState, op: ToggleVoid) -> RotationState:
        record = ledger_service.find_record(state.completed_matches, op.record_id)
        if record is None:
            raise OperationRejected(NoOpReason.RECORD_NOT_FOUND)

        def lookup(pid: str) -> Optional[Player]:
            if pid in state.players:
                return state.players[pid]
            return state.removed_players.get(pid)

        ledger_service.toggle_void(record, lookup, self.clock())
        return state
