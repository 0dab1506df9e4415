"""
Live rotation holder.

Owns the current state and the engine, applies operations one at a time and
writes the snapshot to the database after every applied operation.
"""

import asyncio
import logging
import random
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database import db
from courtside.models.schemas import (
    AvailabilityResponse,
    CompletedMatchRecord,
    CostSummaryResponse,
    OperationResult,
    RotationSnapshot,
    RotationState,
)
from courtside.services import court_service, data_service, ledger_service, settings_service
from courtside.services.rotation_engine import IdGenerator, RotationEngine
from courtside.services.snapshot_service import dump_snapshot, load_state, to_snapshot

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]


def _default_session_factory() -> AsyncSession:
    # Resolved per call so tests can swap db.AsyncSessionLocal
    return db.AsyncSessionLocal()


class RotationService:
    """
    Serializes operations against a single live rotation.

    Args:
        engine: Engine to apply operations with (a seeded one from settings when omitted)
        state_key: Key the snapshot is stored under
        session_factory: Callable returning an AsyncSession; None disables persistence
    """

    def __init__(
        self,
        engine: Optional[RotationEngine] = None,
        state_key: Optional[str] = None,
        session_factory: Optional[SessionFactory] = _default_session_factory,
    ):
        if engine is None:
            engine = RotationEngine(rng=random.Random(settings_service.get_rotation_seed()))
        self.engine = engine
        self.state_key = state_key or settings_service.get_state_key()
        self.session_factory = session_factory
        self.state: RotationState = self.engine.initial_state()
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load(self) -> RotationState:
        """
        Replace the live state with the stored snapshot, if there is one.

        Returns:
            The state now held by the service
        """
        if self.session_factory is None:
            return self.state
        async with self._lock:
            try:
                async with self.session_factory() as session:
                    data = await data_service.get_snapshot(session, self.state_key)
                if data is None:
                    logger.info(f"No stored rotation under {self.state_key!r}; starting fresh")
                    return self.state
                state = load_state(data)
            except Exception as e:
                logger.error(f"Could not read stored rotation {self.state_key!r}: {e}", exc_info=True)
                return self.state

            self.engine.ids = IdGenerator.from_state(state)
            self.state = state
            logger.info(
                f"Loaded rotation {self.state_key!r}: phase={state.phase.value}, "
                f"{len(state.players)} players, {len(state.matches)} active matches"
            )
            return self.state

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def apply(self, operation) -> OperationResult:
        """
        Apply one operation and persist the result.

        Args:
            operation: Any member of the ``Operation`` union

        Returns:
            The engine's OperationResult
        """
        async with self._lock:
            result = self.engine.apply(self.state, operation)
            if not result.applied:
                return result
            self.state = result.state
            if operation.type == "end_rotation":
                await self._delete()
            else:
                await self._save()
            return result

    async def _save(self) -> None:
        if self.session_factory is None:
            return
        try:
            async with self.session_factory() as session:
                await data_service.save_snapshot(session, self.state_key, dump_snapshot(self.state))
        except Exception as e:
            logger.error(f"Failed to persist rotation {self.state_key!r}: {e}", exc_info=True)

    async def _delete(self) -> None:
        if self.session_factory is None:
            return
        try:
            async with self.session_factory() as session:
                deleted = await data_service.delete_snapshot(session, self.state_key)
            if deleted:
                logger.info(f"Deleted stored rotation {self.state_key!r}")
        except Exception as e:
            logger.error(f"Failed to delete stored rotation {self.state_key!r}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> RotationSnapshot:
        return to_snapshot(self.state)

    def availability(self) -> AvailabilityResponse:
        return AvailabilityResponse(
            available_court_ids=court_service.available_courts(
                self.state.matches, self.state.courts.values()
            ),
            can_create_match=self.engine.can_create_match(self.state),
        )

    def history(self) -> List[CompletedMatchRecord]:
        return ledger_service.history(self.state.completed_matches)

    def find_record(self, record_id: str) -> Optional[CompletedMatchRecord]:
        return ledger_service.find_record(self.state.completed_matches, record_id)

    def cost_summary(self, total_court_cost: float = 0.0, cost_per_shuttle: float = 0.0) -> CostSummaryResponse:
        return ledger_service.cost_summary(self.state, total_court_cost, cost_per_shuttle)


# Global rotation instance
_rotation_service: Optional[RotationService] = None


def get_rotation_service() -> RotationService:
    """Get the global rotation service instance."""
    global _rotation_service
    if _rotation_service is None:
        _rotation_service = RotationService()
    return _rotation_service
