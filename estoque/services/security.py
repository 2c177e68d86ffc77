"""
Authentication and Authorization utilities.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from estoque.config import settings
from estoque.errors import AccessDeniedError, AuthError, ValidationError, storage_errors
from estoque.models.user import User

logger = logging.getLogger(__name__)

ADMIN = "admin"
DEFAULT_ROLE = "comum"
ROLES = (ADMIN, DEFAULT_ROLE)


@dataclass(frozen=True)
class Principal:
    """The authenticated user behind a request."""

    id: int
    username: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN


def verify_password(plain_password: str, hashed_password_in_db: str) -> bool:
    """
    Verify plain password against stored bcrypt hash in database.

    Args:
        plain_password: Plain text password from the client
        hashed_password_in_db: Bcrypt hash stored in database

    Returns:
        True if password matches hash, False otherwise
    """
    try:
        return bcrypt.checkpw(
            plain_password.encode('utf-8'),
            hashed_password_in_db.encode('utf-8')
        )
    except ValueError:
        # Malformed hash in storage
        return False


def get_password_hash(plain_password: str, rounds: int = 12) -> str:
    """
    Hash a plain password using Bcrypt.

    The salt is generated per call and stored inside the hash, in the
    ``$2b$[cost]$[22 character salt][31 character hash]`` format.
    """
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(plain_password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def create_access_token(principal: Principal, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token for ``principal``.

    Claims: ``sub`` (user id), ``usuario``, ``nivel``, ``exp`` and ``iat``.
    """
    now = datetime.utcnow()
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_minutes))
    to_encode = {
        "sub": str(principal.id),
        "usuario": principal.username,
        "nivel": principal.role,
        "exp": expire,
        "iat": now,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Principal:
    """
    Decode and validate a JWT access token.

    Raises:
        AuthError: If token is invalid, expired or malformed
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise AuthError("Invalid or expired token") from e

    try:
        return Principal(
            id=int(payload["sub"]),
            username=payload["usuario"],
            role=payload.get("nivel", DEFAULT_ROLE),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise AuthError("Invalid or expired token") from e


def require_admin(principal: Principal) -> Principal:
    if not principal.is_admin:
        raise AccessDeniedError("Admin access required")
    return principal


async def authenticate(session: AsyncSession, username: str, password: str) -> Principal:
    """Check a username/password pair against the users table."""
    with storage_errors():
        result = await session.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(password or "", user.password_hash):
        logger.warning("Failed login for user %r", username)
        raise AuthError("Invalid username or password")
    return Principal(id=user.id, username=user.username, role=user.role)


async def register_user(session: AsyncSession, username: str, password: str,
                        role: str = DEFAULT_ROLE) -> User:
    username = (username or "").strip()
    if not username or not password:
        raise ValidationError("Username and password are required")
    if role not in ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")

    user = User(username=username, password_hash=get_password_hash(password), role=role)
    session.add(user)
    try:
        with storage_errors(ValidationError, "User already exists"):
            await session.commit()
    except ValidationError:
        await session.rollback()
        raise
    await session.refresh(user)
    logger.info("Registered user %s with role %s", user.username, user.role)
    return user


async def list_users(session: AsyncSession):
    with storage_errors():
        result = await session.execute(select(User).order_by(User.id))
    return result.scalars().all()
