"""Auth API — signup, login, refresh, current user.

- POST /auth/signup → create an account, returns user + tokens
- POST /auth/login → email/password → user + tokens
- POST /auth/refresh → refresh token → new token pair
- GET /auth/me → current user
"""

from fastapi import APIRouter, Depends

from murmur.api.deps import user_svc
from murmur.auth.dependencies import get_current_user
from murmur.db.models import User
from murmur.schemas.user import (
    AuthResponse,
    LoginRequest,
    RefreshRequest,
    SignupRequest,
    TokenResponse,
    UserDetail,
)
from murmur.services.user_service import UserService

router = APIRouter(prefix="/auth")


@router.post("/signup", response_model=AuthResponse, status_code=201)
async def signup(body: SignupRequest, svc: UserService = Depends(user_svc)):
    user, tokens = await svc.signup(
        name=body.name,
        email=body.email,
        password=body.password,
        pic=body.pic,
    )
    return {"user": user, **tokens}


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest, svc: UserService = Depends(user_svc)):
    user, tokens = await svc.login(email=body.email, password=body.password)
    return {"user": user, **tokens}


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, svc: UserService = Depends(user_svc)):
    return await svc.refresh(body.refresh_token)


@router.get("/me", response_model=UserDetail)
async def get_me(user: User = Depends(get_current_user)):
    return user
