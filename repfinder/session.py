"""Signed session cookie carrying the acting user's identity."""
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

from repfinder.config import settings

SESSION_ALGORITHM = "HS256"


def encode_session(user: dict[str, str]) -> str:
    expires = datetime.now(timezone.utc) + timedelta(seconds=settings.session_max_age)
    payload = {
        "sub": str(user["user_id"]),
        "username": user["username"],
        "full_name": user["full_name"],
        "exp": expires,
    }
    return jwt.encode(payload, settings.session_secret, algorithm=SESSION_ALGORITHM)


def decode_session(token: str) -> dict[str, str] | None:
    try:
        payload = jwt.decode(token, settings.session_secret, algorithms=[SESSION_ALGORITHM])
    except JWTError:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None
    return {
        "user_id": str(user_id),
        "username": str(payload.get("username") or ""),
        "full_name": str(payload.get("full_name") or ""),
    }


def get_session_user(request: Request) -> dict[str, str] | None:
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        return None
    return decode_session(token)


def require_session(request: Request) -> dict[str, str]:
    user = get_session_user(request)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


def set_session_cookie(response, user: dict[str, str]) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        encode_session(user),
        max_age=settings.session_max_age,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(settings.session_cookie_name, path="/")
