"""Auth routes for user registration and login."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from secudo.api.deps import get_db
from secudo.api.ratelimit import AUTH_RATE_LIMIT, limiter
from secudo.api.schemas import LoginRequest, RegisterRequest
from secudo.auth import Session, require_session
from secudo.auth_providers.user_account import login_user, register_user
from secudo.rbac import normalize_global_role
from secudo.storage.database import Database

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", status_code=201)
@limiter.limit(AUTH_RATE_LIMIT)
async def register(request: Request, req: RegisterRequest, db: Database = Depends(get_db)):
    """Register a new account with the Viewer global role."""
    user = await register_user(db, req.email, req.password, req.first_name, req.last_name)
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": str(normalize_global_role(user.role)),
    }


@router.post("/login")
@limiter.limit(AUTH_RATE_LIMIT)
async def login(request: Request, req: LoginRequest, db: Database = Depends(get_db)):
    """Login with email and password, returns a bearer token."""
    user, token = await login_user(db, req.email, req.password)
    return {"user_id": user.id, "email": user.email, "token": token}


@router.get("/me")
async def me(session: Session = Depends(require_session)):
    return {
        "id": session.id,
        "email": session.email,
        "role": str(session.role),
        "first_name": session.first_name,
        "last_name": session.last_name,
    }
