import logging
import os
import time

import httpx
from fastapi import HTTPException, Request, Response
from jose import JWTError, jwt

from core.config import SESSION_COOKIE_NAME, SESSION_MAX_AGE_SEC, env_flag
from prepme.db.user_repo import create_user, get_user, get_user_by_email

logger = logging.getLogger("prepme.auth")

_DEV_SESSION_SECRET = "prepme-dev-session-secret"


def _environment() -> str:
    return str(os.getenv("ENV", "development")).strip().lower()


def _session_secret() -> str:
    secret = str(os.getenv("SESSION_SECRET") or "").strip()
    if secret:
        return secret
    if _environment() == "production":
        raise HTTPException(500, "SESSION_SECRET is not configured")
    return _DEV_SESSION_SECRET


async def _verify_with_supabase_async(token: str) -> str | None:
    supabase_url = str(os.getenv("SUPABASE_URL") or "").strip()
    api_key = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY")
    if not supabase_url or not api_key:
        return None

    url = f"{supabase_url.rstrip('/')}/auth/v1/user"
    try:
        async with httpx.AsyncClient(timeout=6.0) as client:
            response = await client.get(
                url,
                headers={
                    "Authorization": f"Bearer {token}",
                    "apikey": api_key,
                },
            )
    except httpx.HTTPError as exc:
        logger.warning("supabase token check failed | err=%s", exc)
        return None

    if response.status_code != 200:
        return None

    try:
        data = response.json()
    except ValueError:
        return None

    user_id = data.get("id")
    return str(user_id) if user_id else None


async def verify_id_token(token: str) -> str:
    """Resolve the provider-issued ID token to a user id."""
    jwt_secret = os.getenv("SUPABASE_JWT_SECRET")
    if jwt_secret:
        try:
            payload = jwt.decode(
                token,
                jwt_secret,
                algorithms=["HS256"],
                options={"verify_aud": False},
            )
        except JWTError:
            raise HTTPException(401, "Invalid token")
    else:
        user_id = await _verify_with_supabase_async(token)
        if user_id:
            payload = {"sub": user_id}
        else:
            if _environment() == "production":
                raise HTTPException(500, "SUPABASE_JWT_SECRET is not configured")
            if not env_flag("ALLOW_UNVERIFIED_JWT_DEV"):
                raise HTTPException(
                    401,
                    "Token verification unavailable in development; configure SUPABASE_JWT_SECRET or set ALLOW_UNVERIFIED_JWT_DEV=true",
                )
            try:
                payload = jwt.get_unverified_claims(token)
                logger.warning("ALLOW_UNVERIFIED_JWT_DEV enabled; using unverified token claims in non-production mode")
            except JWTError:
                raise HTTPException(401, "Invalid token")

    user_id = (payload or {}).get("sub")
    if not user_id:
        raise HTTPException(401, "Invalid token")
    return str(user_id)


def create_session_token(user_id: str, now_ts: float | None = None) -> str:
    issued_at = int(now_ts if now_ts is not None else time.time())
    claims = {
        "sub": str(user_id),
        "iat": issued_at,
        "exp": issued_at + SESSION_MAX_AGE_SEC,
        "typ": "session",
    }
    return jwt.encode(claims, _session_secret(), algorithm="HS256")


def verify_session_token(token: str) -> str | None:
    try:
        payload = jwt.decode(token, _session_secret(), algorithms=["HS256"])
    except JWTError:
        return None
    if payload.get("typ") != "session":
        return None
    user_id = payload.get("sub")
    return str(user_id) if user_id else None


def set_session_cookie(response: Response, user_id: str) -> None:
    # Fixed 7-day lifetime, no rotation.
    response.set_cookie(
        SESSION_COOKIE_NAME,
        create_session_token(user_id),
        max_age=SESSION_MAX_AGE_SEC,
        httponly=True,
        secure=_environment() == "production",
        path="/",
        samesite="lax",
    )


async def sign_up(uid: str, name: str, email: str) -> dict:
    try:
        if await get_user(uid) is not None:
            return {"success": False, "message": "User already exists."}
        if await get_user_by_email(email) is not None:
            return {"success": False, "message": "Email already exists."}
        await create_user(uid, name, email)
    except Exception as exc:
        logger.error("Error creating a user | uid=%s err=%s", uid, exc)
        return {"success": False, "message": "Failed to create an account."}
    return {"success": True, "message": "User created successfully."}


async def sign_in(email: str, id_token: str, response: Response) -> dict:
    try:
        user = await get_user_by_email(email)
        if user is None:
            return {"success": False, "message": "User does not exist. Create an account instead."}
        user_id = await verify_id_token(id_token)
        set_session_cookie(response, user_id)
    except Exception as exc:
        logger.error("Error signing in a user | err=%s", exc)
        return {"success": False, "message": "Failed to log in to an account."}
    return {"success": True, "message": "User signed in successfully."}


def sign_out(response: Response) -> dict:
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"success": True, "message": "Signed out successfully."}


async def get_current_user(request: Request) -> dict | None:
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None
    try:
        user_id = verify_session_token(token)
        if not user_id:
            return None
        return await get_user(user_id)
    except Exception as exc:
        logger.warning("get_current_user failed | err=%s", exc)
        return None


async def is_authenticated(request: Request) -> bool:
    return await get_current_user(request) is not None


async def require_user(request: Request) -> dict:
    user = await get_current_user(request)
    if user is None:
        raise HTTPException(401, "Unauthorized")
    return user
