import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone

from jose import jwt, JWTError
from passlib.context import CryptContext
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from storefront.config import Settings, get_settings
from storefront.database import get_db
from storefront.errors import AuthenticationError, AuthorizationError, ValidationError
from storefront.models import User


ALGORITHM = "HS256"
TOKEN_COOKIE = "token"
FORGOT_PASSWORD_EXPIRE_MINUTES = 30


# =====================================================
# PASSWORD HASHING
# =====================================================

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
BCRYPT_MAX_BYTES = 72


def _validate_password_length(password: str) -> None:
    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValidationError("Password is too long (maximum 72 bytes allowed).")


def hash_password(password: str) -> str:
    _validate_password_length(password)
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    # Nothing over the limit was ever hashed, so it cannot match
    if len(plain_password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def hash_password_if_changed(user: User, password: str | None) -> bool:
    """
    Hash and assign a new password. Call before persisting a user whose
    password may have changed. Returns True when the hash was replaced.
    """
    if not password:
        return False
    user.hashed_password = hash_password(password)
    return True


def compare_password(user: User, password: str) -> bool:
    return verify_password(password, user.hashed_password)


# =====================================================
# JWT HANDLING
# =====================================================

def create_token(user: User, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(days=settings.jwt_expiry_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str, settings: Settings) -> dict | None:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except JWTError:
        return None


# =====================================================
# PASSWORD RESET TOKENS
# =====================================================

def digest_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_forgot_password_token(user: User) -> str:
    """
    Store the digest + expiry on the user and return the raw token,
    which only ever travels in the reset email.
    """
    token = secrets.token_hex(30)
    user.forgot_password_token = digest_reset_token(token)
    user.forgot_password_expiry = datetime.now(timezone.utc) + timedelta(
        minutes=FORGOT_PASSWORD_EXPIRE_MINUTES
    )
    return token


def clear_forgot_password_token(user: User) -> None:
    user.forgot_password_token = None
    user.forgot_password_expiry = None


# =====================================================
# AUTH HELPERS
# =====================================================

def get_token_from_request(request: Request) -> str | None:
    token = request.cookies.get(TOKEN_COOKIE)
    if token:
        return token

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None

    return None


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    token = get_token_from_request(request)
    if not token:
        raise AuthenticationError("User not logged in")

    payload = decode_token(token, settings)
    if not payload or not payload.get("sub"):
        raise AuthenticationError("Token invalid or expired")

    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        raise AuthenticationError("Token invalid or expired")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise AuthenticationError("User not found")

    return user


def require_roles(*roles: str):
    """Dependency factory: only users whose role is in ``roles`` get through."""
    allowed = {str(getattr(r, "value", r)) for r in roles}

    def role_gate(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise AuthorizationError()
        return user

    return role_gate
