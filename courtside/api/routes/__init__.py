"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter) lives here; every sub-router imports what it
needs from this package.
"""

from fastapi import APIRouter
from slowapi import Limiter
from slowapi.util import get_remote_address

from courtside.services import settings_service

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = settings_service.is_test_env()
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from courtside.api.routes.rotation import router as rotation_router  # noqa: E402
from courtside.api.routes.ledger import router as ledger_router  # noqa: E402

router = APIRouter()
router.include_router(rotation_router)
router.include_router(ledger_router)
