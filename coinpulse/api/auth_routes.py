from typing import Optional

import asyncpg
from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from ..auth import (
    CurrentUser,
    bearer_token,
    create_session,
    delete_session,
    get_current_user,
    get_services,
)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=8)


class LoginRequest(BaseModel):
    email: str
    password: str


def _user_payload(row) -> dict:
    return {
        "id": str(row["id"]),
        "username": row["username"],
        "email": row["email"],
        "telegramChatId": row["telegram_chat_id"],
    }


async def _session_response(services, row) -> dict:
    token, expires_at = await create_session(services, row["id"])
    return {
        "token": token,
        "expiresAt": expires_at.isoformat(),
        "user": _user_payload(row),
    }


@router.post("/register", status_code=201)
async def register(payload: RegisterRequest, services=Depends(get_services)):
    pool = services.db.pg_pool
    email = payload.email.strip().lower()
    username = payload.username.strip()
    if "@" not in email:
        raise HTTPException(status_code=400, detail="Invalid email")

    exists = await pool.fetchval(
        "SELECT 1 FROM users WHERE email = $1 OR username = $2",
        email,
        username,
    )
    if exists:
        raise HTTPException(status_code=409, detail="Email or username already exists")

    try:
        row = await pool.fetchrow(
            """
            INSERT INTO users (email, username, password_hash)
            VALUES ($1, $2, crypt($3, gen_salt('bf')))
            RETURNING id, username, email, telegram_chat_id
            """,
            email,
            username,
            payload.password,
        )
    except asyncpg.UniqueViolationError:
        raise HTTPException(status_code=409, detail="Email or username already exists")

    return await _session_response(services, row)


@router.post("/login")
async def login(payload: LoginRequest, services=Depends(get_services)):
    pool = services.db.pg_pool

    row = await pool.fetchrow(
        """
        SELECT id, username, email, telegram_chat_id
        FROM users
        WHERE email = $1 AND is_active = true
          AND password_hash = crypt($2, password_hash)
        """,
        payload.email.strip().lower(),
        payload.password,
    )
    if not row:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    return await _session_response(services, row)


@router.get("/me")
async def me(user: CurrentUser = Depends(get_current_user)):
    return {"user": user.to_dict()}


@router.post("/refresh")
async def refresh(
    user: CurrentUser = Depends(get_current_user),
    authorization: Optional[str] = Header(default=None),
    services=Depends(get_services),
):
    old_token = bearer_token(authorization)
    token, expires_at = await create_session(services, user.id)
    await delete_session(services, old_token)
    return {"token": token, "expiresAt": expires_at.isoformat(), "user": user.to_dict()}


@router.post("/logout")
async def logout(
    user: CurrentUser = Depends(get_current_user),
    authorization: Optional[str] = Header(default=None),
    services=Depends(get_services),
):
    await delete_session(services, bearer_token(authorization))
    return {"success": True}
