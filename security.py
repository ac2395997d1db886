"""
Password hashing, access tokens and the request session.

Handlers never look at tokens themselves: they depend on `get_session` (who is
calling, if anyone) or `require_session` (someone must be calling).
"""
import datetime
from dataclasses import dataclass
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import Settings, get_settings
from database import to_object_id
from errors import AuthenticationError, AuthorizationError

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/login", auto_error=False)


def hash_password(raw_password: str) -> str:
    return pwd_context.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(raw_password, hashed_password)


@dataclass(frozen=True)
class Session:
    """A resolved session. Identity is an ObjectId, compared by value."""

    user_id: ObjectId

    def owns(self, owner_id: Any) -> bool:
        return isinstance(owner_id, ObjectId) and owner_id == self.user_id


def create_access_token(user_id: ObjectId, settings: Settings = None) -> str:
    """Issue a signed token whose subject is the user id."""
    settings = settings or get_settings()
    expire_at = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(
        minutes=settings.JWT_EXPIRE_MINUTES
    )
    payload = {"sub": str(user_id), "exp": expire_at}
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str, settings: Settings = None) -> Optional[Dict[str, Any]]:
    settings = settings or get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def get_session(
    token: Optional[str] = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings),
) -> Optional[Session]:
    if not token:
        return None
    payload = decode_token(token, settings)
    if not payload:
        return None
    user_id = to_object_id(payload.get("sub"))
    if user_id is None:
        return None
    return Session(user_id=user_id)


def require_session(session: Optional[Session] = Depends(get_session)) -> Session:
    if session is None:
        raise AuthenticationError()
    return session


def ensure_owner(session: Session, owner_id: Any) -> None:
    if not session.owns(owner_id):
        raise AuthorizationError()
