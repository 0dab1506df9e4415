"""
Tests for the live rotation service - serialization, persistence and reload.
"""
import asyncio
import random

import pytest

from courtside.models.schemas import (
    AddPlayer,
    CreateMatch,
    EndRotation,
    NoOpReason,
    Phase,
    StartRotation,
)
from courtside.services import data_service
from courtside.services.rotation_engine import RotationEngine, membership_violations
from courtside.services.rotation_service import RotationService


def _service(session_factory, seed=1):
    return RotationService(
        engine=RotationEngine(rng=random.Random(seed)),
        state_key="test",
        session_factory=session_factory,
    )


async def _add_players(service, count, category="Beginners"):
    for index in range(count):
        result = await service.apply(AddPlayer(name=f"Player {index + 1}", category=category))
        assert result.applied


@pytest.mark.asyncio
async def test_applied_operation_is_persisted(session_factory):
    service = _service(session_factory)
    await _add_players(service, 1)

    async with session_factory() as session:
        stored = await data_service.get_snapshot(session, "test")

    assert stored["players"][0]["id"] == "p-1"
    assert stored["players"][0]["name"] == "Player 1"


@pytest.mark.asyncio
async def test_rejected_operation_is_not_persisted(session_factory):
    service = _service(session_factory)
    result = await service.apply(StartRotation())

    assert not result.applied
    assert result.reason == NoOpReason.NOT_ENOUGH_PLAYERS
    async with session_factory() as session:
        assert await data_service.get_snapshot(session, "test") is None


@pytest.mark.asyncio
async def test_reload_restores_state_and_counters(session_factory):
    service = _service(session_factory)
    await _add_players(service, 4)
    await service.apply(StartRotation())
    await service.apply(CreateMatch())

    reloaded = _service(session_factory)
    state = await reloaded.load()

    assert state.phase == Phase.ACTIVE
    assert len(state.matches) == 1
    assert state.model_dump() == service.state.model_dump()

    result = await reloaded.apply(AddPlayer(name="Late", category="Beginners"))
    assert "p-5" in result.state.players


@pytest.mark.asyncio
async def test_load_without_snapshot_keeps_fresh_state(session_factory):
    service = _service(session_factory)
    state = await service.load()
    assert state.phase == Phase.SETUP
    assert len(state.courts) == 1


@pytest.mark.asyncio
async def test_end_rotation_deletes_snapshot(session_factory):
    service = _service(session_factory)
    await _add_players(service, 4)
    await service.apply(StartRotation())

    result = await service.apply(EndRotation())

    assert result.applied
    assert service.state.phase == Phase.SETUP
    async with session_factory() as session:
        assert await data_service.get_snapshot(session, "test") is None


@pytest.mark.asyncio
async def test_persistence_failure_keeps_transition():
    def broken_factory():
        raise RuntimeError("database unavailable")

    service = _service(broken_factory)
    result = await service.apply(AddPlayer(name="Ann", category="Beginners"))

    assert result.applied
    assert "p-1" in service.state.players


@pytest.mark.asyncio
async def test_concurrent_operations_are_serialized():
    service = _service(None)
    await asyncio.gather(
        *(service.apply(AddPlayer(name=f"P{i}", category="Beginners")) for i in range(12))
    )
    await service.apply(StartRotation())
    await asyncio.gather(*(service.apply(CreateMatch()) for _ in range(3)))

    state = service.state
    assert len(state.players) == 12
    assert sorted(state.players) == sorted(f"p-{i}" for i in range(1, 13))
    assert len(state.matches) == 1
    assert membership_violations(state) == []


def test_reads():
    service = _service(None)
    assert service.snapshot().phase == Phase.SETUP
    availability = service.availability()
    assert availability.available_court_ids == ["court-1"]
    assert availability.can_create_match is False
    assert service.history() == []
    assert service.find_record("m-1") is None
    assert service.cost_summary(10.0, 2.0).total_players == 0


@pytest.mark.asyncio
async def test_load_ignores_snapshot_that_is_not_an_object(session_factory):
    async with session_factory() as session:
        await data_service.save_snapshot(session, "test", [{"phase": "active"}])

    service = _service(session_factory)
    state = await service.load()

    assert state.phase == Phase.SETUP
    assert state.players == {}
    await _add_players(service, 1)
    assert service.state.players["p-1"].name == "Player 1"
