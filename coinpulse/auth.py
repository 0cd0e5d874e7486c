import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from starlette.requests import HTTPConnection


@dataclass(frozen=True)
class CurrentUser:
    id: UUID
    username: str
    email: Optional[str]
    telegram_chat_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "username": self.username,
            "email": self.email,
            "telegramChatId": self.telegram_chat_id,
        }


def session_key(token: str) -> str:
    return f"session:{token}"


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return token


async def create_session(services, user_id: UUID) -> Tuple[str, datetime]:
    ttl = services.settings.SESSION_TTL_SECONDS
    token = secrets.token_urlsafe(32)
    await services.db.redis.set(session_key(token), str(user_id), ex=ttl)
    return token, datetime.now(timezone.utc) + timedelta(seconds=ttl)


async def delete_session(services, token: str) -> None:
    await services.db.redis.delete(session_key(token))


async def get_current_user_from_token(services, token: str) -> CurrentUser:
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user_id_str = await services.db.redis.get(session_key(token))
    if not user_id_str:
        raise HTTPException(status_code=401, detail="Session expired")

    if isinstance(user_id_str, (bytes, bytearray)):
        user_id_str = user_id_str.decode("utf-8")

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid session")

    row = await services.db.pg_pool.fetchrow(
        "SELECT id, username, email, telegram_chat_id FROM users WHERE id = $1 AND is_active = true",
        user_id,
    )
    if not row:
        raise HTTPException(status_code=401, detail="User not found")

    return CurrentUser(
        id=row["id"],
        username=row["username"],
        email=row["email"],
        telegram_chat_id=row["telegram_chat_id"],
    )


def get_services(conn: HTTPConnection):
    """从 app.state 取服务容器（HTTP 与 WebSocket 通用）"""
    return conn.app.state.services


async def get_current_user(
    authorization: Optional[str] = Header(default=None),
    services=Depends(get_services),
) -> CurrentUser:
    token = bearer_token(authorization)
    return await get_current_user_from_token(services, token)
