# taskpilot/routers/auth.py
# PURPOSE: /register, /login, /me

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from ..auth import create_access_token, get_current_user, hash_password, verify_password
from ..config import settings
from ..errors import NotFound, Unauthenticated
from ..models import LoginRequest, RegisterResponse, TokenResponse, UserCredentials, UserPublic
from ..rate_limit import limiter
from ..store_db import create_user, get_db, get_user_by_username

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_REGISTER)
def register_user(
    request: Request, response: Response, payload: UserCredentials, db: Session = Depends(get_db)
):
    user = create_user(db, payload.username, hash_password(payload.password))
    logger.info("registered user id=%s", user.id)
    return RegisterResponse(
        user=UserPublic.model_validate(user),
        token=create_access_token(user),
    )


@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.RATE_LIMIT_LOGIN)
def login(
    request: Request,
    response: Response,
    payload: LoginRequest,
    db: Session = Depends(get_db),
):
    user = get_user_by_username(db, payload.username)
    if user is None:
        raise NotFound("User not found")
    if not verify_password(payload.password, user.password_hash):
        raise Unauthenticated("Invalid credentials")
    return TokenResponse(token=create_access_token(user))


@router.get("/me", response_model=UserPublic)
def me(user: UserPublic = Depends(get_current_user)):
    # If token is valid, user is injected
    return user
