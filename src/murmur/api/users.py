"""User search."""

from fastapi import APIRouter, Depends, Query

from murmur.api.deps import user_svc
from murmur.auth.dependencies import get_current_user
from murmur.db.models import User
from murmur.schemas.user import UserRead
from murmur.services.user_service import UserService

router = APIRouter()


@router.get("/users", response_model=list[UserRead])
async def search_users(
    search: str = Query("", description="Substring of name or email"),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    svc: UserService = Depends(user_svc),
):
    """Find peers to talk to. The caller is never in the result."""
    return await svc.search_users(user, search=search, limit=limit)
