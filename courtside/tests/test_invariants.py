"""
Property checks over seeded random operation sequences.

Every reachable state must keep waiting, playing and reserved players disjoint,
bind at most one match per court, and leave rejected inputs untouched.
"""
import random

import pytest

from courtside.models.schemas import (
    AddCourt,
    AddPlayer,
    CancelMatch,
    CancelQueuedMatch,
    CompleteMatch,
    CreateManualMatch,
    CreateMatch,
    DeleteCourt,
    FillCourts,
    PromoteQueuedMatch,
    QueueMatch,
    RemovePlayer,
    RestorePlayer,
    StartRotation,
    SwitchMatchCourt,
    ToggleVoid,
    UpdateMatch,
)
from courtside.services.match_assembler import (
    is_balanced,
    is_fallback_shape,
)
from courtside.services.rotation_engine import RotationEngine, membership_violations

CATEGORIES = ("Beginners", "Intermediate")
GENDERS = ("Male", "Female")


def _random_team_ids(chooser, state):
    ids = list(state.players)
    if len(ids) < 4:
        return ["x", "y"], ["z", "w"]
    picked = chooser.sample(ids, 4)
    return picked[:2], picked[2:]


def _random_operation(chooser, state):
    """Pick a plausible operation for the current state; many will be no-ops."""
    players = list(state.players)
    removed = list(state.removed_players)
    courts = list(state.courts)
    matches = [m.id for m in state.matches]
    queued = [q.id for q in state.advance_queue]
    records = [r.id for r in state.completed_matches]
    team1, team2 = _random_team_ids(chooser, state)

    options = [
        lambda: AddPlayer(
            name=f"Player {chooser.randint(1, 999)}",
            category=chooser.choice(CATEGORIES),
            gender=chooser.choice(GENDERS),
        ),
        lambda: CreateMatch(randomize_partners=chooser.random() < 0.3),
        lambda: CreateMatch(allow_unbalanced_fallback=False),
        lambda: FillCourts(),
        lambda: CreateManualMatch(team1=team1, team2=team2, court_id=chooser.choice(courts)),
        lambda: QueueMatch(team1=team1, team2=team2),
        lambda: AddCourt(),
    ]
    if players:
        options.append(lambda: RemovePlayer(player_id=chooser.choice(players)))
    if removed:
        options.append(lambda: RestorePlayer(player_id=chooser.choice(removed)))
    if len(courts) > 1:
        options.append(lambda: DeleteCourt(court_id=chooser.choice(courts)))
    if matches:
        options += [
            lambda: CompleteMatch(match_id=chooser.choice(matches), shuttle_used=chooser.randint(0, 6)),
            lambda: CompleteMatch(match_id=chooser.choice(matches), shuttle_used=chooser.randint(0, 6)),
            lambda: CancelMatch(match_id=chooser.choice(matches)),
            lambda: SwitchMatchCourt(match_id=chooser.choice(matches), court_id=chooser.choice(courts)),
            lambda: UpdateMatch(match_id=chooser.choice(matches), team1=team1, team2=team2),
        ]
    if queued:
        options += [
            lambda: PromoteQueuedMatch(),
            lambda: CancelQueuedMatch(queued_match_id=chooser.choice(queued)),
        ]
    if records:
        options.append(lambda: ToggleVoid(record_id=chooser.choice(records)))
    return chooser.choice(options)()


def _start(engine, chooser, count):
    state = engine.initial_state()
    for index in range(count):
        state = engine.apply(
            state,
            AddPlayer(
                name=f"Player {index}",
                category=chooser.choice(CATEGORIES),
                gender=chooser.choice(GENDERS),
            ),
        ).state
    state = engine.apply(state, AddCourt()).state
    return engine.apply(state, StartRotation()).state


@pytest.mark.parametrize("seed", range(12))
def test_random_sequences_keep_membership_and_court_invariants(seed):
    chooser = random.Random(seed)
    engine = RotationEngine(rng=random.Random(seed + 100))
    state = _start(engine, chooser, 10)

    for _ in range(150):
        operation = _random_operation(chooser, state)
        before = state.model_dump()
        result = engine.apply(state, operation)

        if result.applied:
            state = result.state
        else:
            assert result.reason is not None
            assert result.state is state
        assert membership_violations(state) == [], operation

        # Input states are never modified, applied or not
        if not result.applied:
            assert state.model_dump() == before

        court_ids = [m.court_id for m in state.matches]
        assert len(court_ids) == len(set(court_ids))
        assert all(p.games_played >= 0 and p.shuttle_share >= 0 for p in state.players.values())


@pytest.mark.parametrize("seed", range(8))
def test_auto_assembled_matches_are_legal(seed):
    chooser = random.Random(seed)
    engine = RotationEngine(rng=random.Random(seed))
    state = _start(engine, chooser, 12)

    for _ in range(40):
        strict = chooser.random() < 0.5
        result = engine.apply(state, CreateMatch(allow_unbalanced_fallback=not strict))
        if result.applied:
            state = result.state
            match = state.matches[-1]
            team1 = [state.players[pid] for pid in match.team1]
            team2 = [state.players[pid] for pid in match.team2]
            if strict:
                assert is_balanced(team1, team2)
            else:
                assert is_balanced(team1, team2) or is_fallback_shape(team1, team2)
        if state.matches:
            target = chooser.choice(state.matches).id
            state = engine.apply(state, CompleteMatch(match_id=target, shuttle_used=1)).state


@pytest.mark.parametrize("seed", range(5))
def test_games_spread_stays_within_one(seed):
    """Repeated assemble-and-complete on a fixed pool keeps the games spread at most one."""
    engine = RotationEngine(rng=random.Random(seed))
    state = engine.initial_state()
    for index in range(9):
        state = engine.apply(state, AddPlayer(name=f"P{index}", category="Beginners", gender="Male")).state
    state = engine.apply(state, StartRotation()).state

    for _ in range(30):
        result = engine.apply(state, CreateMatch())
        assert result.applied
        state = result.state
        state = engine.apply(state, CompleteMatch(match_id=state.matches[0].id, shuttle_used=2)).state

        games = [p.games_played for p in state.players.values()]
        if min(games) >= 1:
            assert max(games) - min(games) <= 1


def test_shuttle_split_is_exact():
    engine = RotationEngine(rng=random.Random(3))
    state = engine.initial_state()
    for index in range(4):
        state = engine.apply(state, AddPlayer(name=f"P{index}", category="Beginners")).state
    state = engine.apply(state, StartRotation()).state

    for shuttles in (1, 2, 3, 5):
        before = {pid: p.shuttle_share for pid, p in state.players.items()}
        state = engine.apply(state, CreateMatch()).state
        state = engine.apply(state, CompleteMatch(match_id=state.matches[0].id, shuttle_used=shuttles)).state
        for pid, player in state.players.items():
            assert player.shuttle_share == before[pid] + shuttles / 4
