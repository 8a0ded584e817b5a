# neyma/core/auth.py
import logging
import uuid
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import ExpiredSignatureError, JWTError, jwt
from sqlmodel import Session, select

from neyma.core.config import get_settings
from neyma.database import get_session
from neyma.models.user import Profile
from neyma.sessions import SessionRegistry, UserSession, get_registry

logger = logging.getLogger(__name__)

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header will NOT raise immediately
#   so we can support "guest" mode (unauthenticated).
bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a Supabase access token (JWT).

    Verification:
      - signature (HS256 using SUPABASE_JWT_SECRET)
      - expiration time (exp)
      - audience is NOT verified (Supabase 'aud' may vary)

    Raises:
        ExpiredSignatureError: if the token is well-formed but expired.
        HTTPException(401): if token is otherwise invalid.
    """
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.SUPABASE_JWT_ALG],
            options={"verify_aud": False},
        )
    except ExpiredSignatureError:
        raise
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def _expired_subject(token: str) -> uuid.UUID | None:
    """Read `sub` from an expired token without trusting anything else."""
    try:
        return uuid.UUID(jwt.get_unverified_claims(token).get("sub", ""))
    except (JWTError, ValueError, TypeError):
        return None


def _default_name_from_email(email: str) -> str:
    """
    Derive a default display name from email if the user has not
    completed their profile yet.
    """
    if "@" in email:
        return email.split("@", 1)[0]
    return email


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
    registry: SessionRegistry = Depends(get_registry),
) -> Profile | None:
    """
    Resolve the current customer from a Supabase JWT.

    Flow:
      1. If no Authorization header => guest => return None.
      2. Decode JWT; an expired token forces the user's storefront
         session out and answers 401.
      3. Find the profile in public.profiles, auto-provision if missing.
    """
    if credentials is None:
        return None  # guest mode

    try:
        payload = decode_access_token(credentials.credentials)
    except ExpiredSignatureError:
        user_id = _expired_subject(credentials.credentials)
        if user_id is not None:
            registry.expire(user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired",
        )

    sub = payload.get("sub")
    email = payload.get("email")

    if not sub or not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing sub/email",
        )

    # Supabase provides sub as a string; enforce UUID
    try:
        sub_uuid = uuid.UUID(sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid sub in token",
        )

    profile = session.exec(select(Profile).where(Profile.id == sub_uuid)).first()

    # Auto-provision profile if not found yet.
    # Default role = "user" (admin must be manually promoted).
    if profile is None:
        metadata = payload.get("user_metadata") or {}
        profile = Profile(
            id=sub_uuid,
            email=email,
            full_name=metadata.get("full_name") or _default_name_from_email(email),
            phone_number=metadata.get("phone_number"),
            role="user",
        )
        session.add(profile)
        session.commit()
        session.refresh(profile)
        logger.info("Provisioned profile for %s", sub_uuid)

    return profile


def require_auth(profile: Profile | None = Depends(get_current_user)) -> Profile:
    """
    Enforce authentication.

    Raises:
        HTTPException(401): if there is no signed-in user.
    """
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return profile


def require_admin(profile: Profile = Depends(require_auth)) -> Profile:
    """
    Enforce admin role.

    Raises:
        HTTPException(403): if role is not admin.
    """
    if not profile.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return profile


def get_user_session(
    profile: Profile | None = Depends(get_current_user),
    registry: SessionRegistry = Depends(get_registry),
) -> UserSession:
    """
    Storefront session of the caller; guests get a transient one.
    """
    if profile is None:
        return registry.guest()
    return registry.for_identity(profile)
