# services/supabase_auth.py
import logging
import os

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from database import get_db
from models.user import User

logger = logging.getLogger(__name__)


def _jwt_settings() -> tuple:
    # Read lazily so importing the app (tests, alembic) doesn't need auth env
    secret = os.getenv("SUPABASE_JWT_SECRET")
    if not secret:
        raise RuntimeError("SUPABASE_JWT_SECRET is not set in environment variables")
    project_url = os.getenv("SUPABASE_PROJECT_URL", "").rstrip("/")
    audience = os.getenv("SUPABASE_JWT_AUD", "authenticated")
    return secret, project_url, audience


def _get_bearer_token(request: Request) -> str:
    auth = request.headers.get("Authorization")
    if not auth or not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    return auth.split(" ", 1)[1].strip()


async def get_current_supabase_user(request: Request) -> dict:
    token = _get_bearer_token(request)
    secret, project_url, audience = _jwt_settings()

    try:
        return jwt.decode(
            token,
            secret,                 # HS256 uses shared secret
            algorithms=["HS256"],
            audience=audience,
            issuer=f"{project_url}/auth/v1",
        )
    except JWTError as e:
        logger.warning("jwt_rejected err=%s", e)
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def get_current_db_user(
    db: Session = Depends(get_db),
    payload: dict = Depends(get_current_supabase_user),
) -> User:
    # 1) Read Supabase UUID from JWT
    supabase_user_id = payload.get("sub")
    if not supabase_user_id:
        raise HTTPException(status_code=401, detail="Invalid auth token")

    # 2) Try to find existing local user
    user = (
        db.query(User)
        .filter(User.supabase_user_id == str(supabase_user_id))
        .first()
    )
    if user:
        return user

    # 3) Auto-create local user on first login
    email = payload.get("email") or (payload.get("user_metadata") or {}).get("email")
    if not email:
        raise HTTPException(
            status_code=400,
            detail="Cannot create user: email missing from Supabase token",
        )

    user = User(email=email, supabase_user_id=str(supabase_user_id))
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("user_created user_id=%s", user.id, extra={"user_id": user.id})
    return user
