"""
Snapshot persistence.

Stores the rotation snapshot as JSON text keyed by rotation name.
"""

import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import RotationSnapshot

logger = logging.getLogger(__name__)


async def get_snapshot(session: AsyncSession, key: str) -> Optional[Dict[str, Any]]:
    """
    Get a stored snapshot.

    Args:
        session: Database session
        key: Rotation key

    Returns:
        Parsed snapshot dict, or None if nothing is stored or it is unreadable
    """
    result = await session.execute(select(RotationSnapshot).where(RotationSnapshot.key == key))
    row = result.scalar_one_or_none()
    if row is None:
        return None
    try:
        return json.loads(row.payload)
    except json.JSONDecodeError as e:
        logger.error(f"Stored snapshot {key!r} is not valid JSON: {e}")
        return None


async def save_snapshot(session: AsyncSession, key: str, payload: Dict[str, Any]) -> None:
    """
    Store a snapshot (upsert).

    Args:
        session: Database session
        key: Rotation key
        payload: JSON-serializable snapshot
    """
    text = json.dumps(payload)
    result = await session.execute(select(RotationSnapshot).where(RotationSnapshot.key == key))
    row = result.scalar_one_or_none()
    if row is None:
        session.add(RotationSnapshot(key=key, payload=text))
    else:
        row.payload = text
    await session.commit()


async def delete_snapshot(session: AsyncSession, key: str) -> bool:
    """
    Delete a stored snapshot.

    Returns:
        True if a snapshot was deleted
    """
    result = await session.execute(delete(RotationSnapshot).where(RotationSnapshot.key == key))
    await session.commit()
    return result.rowcount > 0
