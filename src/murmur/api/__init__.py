"""API route aggregation.

All routers registered here get mounted in main.py.

Auth is applied at the include_router level for protected routers; the
handlers also ask for the User itself, and FastAPI resolves the
dependency once per request. Health and auth routers are open.
"""

from fastapi import APIRouter, Depends

from murmur.api.auth import router as auth_router
from murmur.api.conversations import router as conversations_router
from murmur.api.health import router as health_router
from murmur.api.messages import router as messages_router
from murmur.api.users import router as users_router
from murmur.auth.dependencies import get_current_user

# All protected routers require authentication
_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api/v1")

# Open routes
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])

# Protected routes (valid access token required)
api_router.include_router(users_router, tags=["users"], dependencies=_auth)
api_router.include_router(conversations_router, tags=["conversations"], dependencies=_auth)
api_router.include_router(messages_router, tags=["messages"], dependencies=_auth)
