"""
Pydantic models for rotation state, operations and API responses.

Entity models serialize with camelCase aliases so the persisted snapshot keeps
the shape the frontend stores; snake_case names are accepted on input too.
"""

import enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Category(str, enum.Enum):
    """Player skill category."""

    BEGINNERS = "Beginners"
    INTERMEDIATE = "Intermediate"


class Gender(str, enum.Enum):
    """Player gender."""

    MALE = "Male"
    FEMALE = "Female"


class Phase(str, enum.Enum):
    """Rotation phase. Setup moves to active once, never back (except by reset)."""

    SETUP = "setup"
    ACTIVE = "active"


class NoOpReason(str, enum.Enum):
    """Why an operation left the state unchanged."""

    WRONG_PHASE = "wrong_phase"
    NOT_ENOUGH_PLAYERS = "not_enough_players"
    INVALID_NAME = "invalid_name"
    PLAYER_NOT_FOUND = "player_not_found"
    PLAYER_IN_MATCH = "player_in_match"
    PLAYER_UNAVAILABLE = "player_unavailable"
    INVALID_TEAM = "invalid_team"
    COURT_NOT_FOUND = "court_not_found"
    COURT_OCCUPIED = "court_occupied"
    COURT_LIMIT = "court_limit"
    LAST_COURT = "last_court"
    SAME_COURT = "same_court"
    NO_FREE_COURT = "no_free_court"
    NO_LEGAL_MATCH = "no_legal_match"
    MATCH_NOT_FOUND = "match_not_found"
    QUEUED_MATCH_NOT_FOUND = "queued_match_not_found"
    RECORD_NOT_FOUND = "record_not_found"


# ============================================================================
# Entities
# ============================================================================


class Player(CamelModel):
    """A participant and their fairness counters."""

    id: str
    name: str
    category: Category
    gender: Gender = Gender.MALE
    games_played: int = Field(0, ge=0)
    shuttle_share: float = Field(0.0, ge=0)
    added_at: int = 0


class RemovedPlayer(Player):
    """A player taken out of an active rotation; stats are kept for cost totals."""

    removed_at: int = 0


class Court(CamelModel):
    id: str
    name: str


class Match(CamelModel):
    """An active match. Teams hold player ids, resolved against the player pool on read."""

    id: str
    court_id: str
    team1: List[str]
    team2: List[str]
    created_at: int = 0

    @property
    def player_ids(self) -> List[str]:
        return [*self.team1, *self.team2]


class QueuedMatch(CamelModel):
    """A pre-assembled match waiting for a free court."""

    id: str
    team1: List[str]
    team2: List[str]
    created_at: int = 0

    @property
    def player_ids(self) -> List[str]:
        return [*self.team1, *self.team2]


class PlayerSnapshot(CamelModel):
    """Player details frozen at completion time."""

    id: str
    name: str
    category: Category
    gender: Gender = Gender.MALE


class CompletedMatchRecord(CamelModel):
    """Historical record of a finished game. Only the void flag ever changes."""

    id: str
    court_id: str
    court_name_snapshot: str
    team1: List[PlayerSnapshot] = Field(min_length=2, max_length=2)
    team2: List[PlayerSnapshot] = Field(min_length=2, max_length=2)
    completed_at: int = 0
    shuttle_used: int = Field(0, ge=0)
    voided: bool = False
    voided_at: Optional[int] = None

    @property
    def player_ids(self) -> List[str]:
        return [p.id for p in [*self.team1, *self.team2]]


class RotationState(BaseModel):
    """
    Aggregate in-memory state.

    Players, removed players and courts are id-keyed maps kept in insertion
    order; ``queue`` is the waiting order as a list of player ids.
    """

    phase: Phase = Phase.SETUP
    courts: Dict[str, Court] = Field(default_factory=dict)
    players: Dict[str, Player] = Field(default_factory=dict)
    queue: List[str] = Field(default_factory=list)
    matches: List[Match] = Field(default_factory=list)
    advance_queue: List[QueuedMatch] = Field(default_factory=list)
    removed_players: Dict[str, RemovedPlayer] = Field(default_factory=dict)
    completed_matches: List[CompletedMatchRecord] = Field(default_factory=list)


class RotationSnapshot(CamelModel):
    """JSON-serializable snapshot handed to persistence and to the frontend."""

    phase: Phase = Phase.SETUP
    courts: List[Court] = Field(default_factory=list)
    players: List[Player] = Field(default_factory=list)
    queue: List[str] = Field(default_factory=list)
    matches: List[Match] = Field(default_factory=list)
    advance_queue: List[QueuedMatch] = Field(default_factory=list)
    removed_players: List[RemovedPlayer] = Field(default_factory=list)
    completed_matches: List[CompletedMatchRecord] = Field(default_factory=list)


# ============================================================================
# Operations
# ============================================================================


class AddPlayer(CamelModel):
    type: Literal["add_player"] = "add_player"
    name: str
    category: Category
    gender: Gender = Gender.MALE


class UpdatePlayer(CamelModel):
    type: Literal["update_player"] = "update_player"
    player_id: str
    name: Optional[str] = None
    category: Optional[Category] = None
    gender: Optional[Gender] = None


class RemovePlayer(CamelModel):
    type: Literal["remove_player"] = "remove_player"
    player_id: str


class RestorePlayer(CamelModel):
    type: Literal["restore_player"] = "restore_player"
    player_id: str


class DeleteRemovedPlayer(CamelModel):
    type: Literal["delete_removed_player"] = "delete_removed_player"
    player_id: str


class AddCourt(CamelModel):
    type: Literal["add_court"] = "add_court"
    name: Optional[str] = None


class RenameCourt(CamelModel):
    type: Literal["rename_court"] = "rename_court"
    court_id: str
    name: str


class DeleteCourt(CamelModel):
    type: Literal["delete_court"] = "delete_court"
    court_id: str


class StartRotation(CamelModel):
    type: Literal["start_rotation"] = "start_rotation"


class CreateMatch(CamelModel):
    """Assemble a match automatically from the waiting list."""

    type: Literal["create_match"] = "create_match"
    court_id: Optional[str] = None
    randomize_partners: bool = False
    allow_unbalanced_fallback: bool = True


class FillCourts(CamelModel):
    """Assemble matches onto every free court."""

    type: Literal["fill_courts"] = "fill_courts"
    randomize_partners: bool = False
    allow_unbalanced_fallback: bool = True


class CreateManualMatch(CamelModel):
    type: Literal["create_manual_match"] = "create_manual_match"
    team1: List[str]
    team2: List[str]
    court_id: str


class UpdateMatch(CamelModel):
    type: Literal["update_match"] = "update_match"
    match_id: str
    team1: List[str]
    team2: List[str]
    court_id: Optional[str] = None


class QueueMatch(CamelModel):
    type: Literal["queue_match"] = "queue_match"
    team1: List[str]
    team2: List[str]


class PromoteQueuedMatch(CamelModel):
    type: Literal["promote_queued_match"] = "promote_queued_match"
    queued_match_id: Optional[str] = None
    court_id: Optional[str] = None


class CancelQueuedMatch(CamelModel):
    type: Literal["cancel_queued_match"] = "cancel_queued_match"
    queued_match_id: str


class CompleteMatch(CamelModel):
    type: Literal["complete_match"] = "complete_match"
    match_id: str
    shuttle_used: int = Field(0, ge=0)


class CancelMatch(CamelModel):
    type: Literal["cancel_match"] = "cancel_match"
    match_id: str


class SwitchMatchCourt(CamelModel):
    type: Literal["switch_match_court"] = "switch_match_court"
    match_id: str
    court_id: str


class ToggleVoid(CamelModel):
    type: Literal["toggle_void"] = "toggle_void"
    record_id: str


class ResetGames(CamelModel):
    type: Literal["reset_games"] = "reset_games"


class ResetSetup(CamelModel):
    type: Literal["reset_setup"] = "reset_setup"


class EndRotation(CamelModel):
    type: Literal["end_rotation"] = "end_rotation"


Operation = Annotated[
    Union[
        AddPlayer,
        UpdatePlayer,
        RemovePlayer,
        RestorePlayer,
        DeleteRemovedPlayer,
        AddCourt,
        RenameCourt,
        DeleteCourt,
        StartRotation,
        CreateMatch,
        FillCourts,
        CreateManualMatch,
        UpdateMatch,
        QueueMatch,
        PromoteQueuedMatch,
        CancelQueuedMatch,
        CompleteMatch,
        CancelMatch,
        SwitchMatchCourt,
        ToggleVoid,
        ResetGames,
        ResetSetup,
        EndRotation,
    ],
    Field(discriminator="type"),
]


class OperationResult(BaseModel):
    """Outcome of applying one operation. ``state`` is the input state when not applied."""

    state: RotationState
    applied: bool
    reason: Optional[NoOpReason] = None


# ============================================================================
# API responses
# ============================================================================


class OperationResponse(CamelModel):
    """Response from the operations endpoint."""

    applied: bool
    reason: Optional[NoOpReason] = None
    state: RotationSnapshot


class AvailabilityResponse(CamelModel):
    """Free courts and whether an automatic match could be made right now."""

    available_court_ids: List[str]
    can_create_match: bool


class PlayerCostLine(CamelModel):
    """One player's line in the end-of-rotation cost summary."""

    id: str
    name: str
    category: Category
    gender: Gender
    games_played: int
    shuttle_share: float
    shuttle_share_display: str
    court_share: float
    shuttle_cost: float
    total_to_pay: float
    removed: bool = False


class CostSummaryResponse(CamelModel):
    """End-of-rotation cost split."""

    total_players: int
    total_games: int
    total_shuttles_used: float
    total_shuttle_cost: float
    court_share_per_player: float
    players: List[PlayerCostLine]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    phase: Phase
    message: str
