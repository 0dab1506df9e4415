"""
Tests for snapshot persistence against an in-memory database.
"""
import pytest

from courtside.database.models import RotationSnapshot
from courtside.services import data_service


@pytest.mark.asyncio
async def test_get_missing_snapshot(db_session):
    assert await data_service.get_snapshot(db_session, "default") is None


@pytest.mark.asyncio
async def test_save_and_get_snapshot(db_session):
    payload = {"phase": "setup", "players": [{"id": "p-1", "name": "Ann", "category": "Beginners"}]}

    await data_service.save_snapshot(db_session, "default", payload)

    assert await data_service.get_snapshot(db_session, "default") == payload


@pytest.mark.asyncio
async def test_save_snapshot_overwrites(db_session):
    await data_service.save_snapshot(db_session, "default", {"phase": "setup"})
    await data_service.save_snapshot(db_session, "default", {"phase": "active"})

    assert await data_service.get_snapshot(db_session, "default") == {"phase": "active"}


@pytest.mark.asyncio
async def test_snapshots_are_keyed(db_session):
    await data_service.save_snapshot(db_session, "tuesday", {"phase": "active"})
    await data_service.save_snapshot(db_session, "thursday", {"phase": "setup"})

    assert (await data_service.get_snapshot(db_session, "tuesday"))["phase"] == "active"
    assert (await data_service.get_snapshot(db_session, "thursday"))["phase"] == "setup"


@pytest.mark.asyncio
async def test_delete_snapshot(db_session):
    await data_service.save_snapshot(db_session, "default", {"phase": "active"})

    assert await data_service.delete_snapshot(db_session, "default") is True
    assert await data_service.get_snapshot(db_session, "default") is None
    assert await data_service.delete_snapshot(db_session, "default") is False


@pytest.mark.asyncio
async def test_unreadable_snapshot_returns_none(db_session):
    db_session.add(RotationSnapshot(key="broken", payload="{not json"))
    await db_session.commit()

    assert await data_service.get_snapshot(db_session, "broken") is None
