"""
User records: registration, credential checks and author lookups.
"""
from typing import Any, Dict, Iterable, List

from bson import ObjectId
from loguru import logger
from pydantic import ValidationError as SchemaError
from pymongo.errors import DuplicateKeyError

from database import USERS, create_document, get_db
from errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from schemas import User
from security import hash_password, verify_password

MIN_PASSWORD_LENGTH = 6
PUBLIC_FIELDS = ("_id", "name", "email", "image", "created_at", "updated_at")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def sanitize(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: user[k] for k in PUBLIC_FIELDS if k in user}


def register(name: str, email: str, password: str) -> Dict[str, Any]:
    name = (name or "").strip()
    if not name or not email or not password:
        raise ValidationError("All fields are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    email = normalize_email(email)
    try:
        record = User(name=name, email=email, password=hash_password(password))
    except SchemaError:
        raise ValidationError("Email address is not valid")

    users = get_db()[USERS]
    if users.find_one({"email": email}):
        raise ConflictError("User with this email already exists")
    try:
        user_id = create_document(USERS, record)
    except DuplicateKeyError:
        raise ConflictError("User with this email already exists")

    logger.info(f"Registered user {user_id}")
    return sanitize(users.find_one({"_id": user_id}))


def authenticate(email: str, password: str) -> Dict[str, Any]:
    user = get_db()[USERS].find_one({"email": normalize_email(email or "")})
    if not user or not password or not verify_password(password, user["password"]):
        raise AuthenticationError("Invalid credentials")
    return sanitize(user)


def get_user(user_id: ObjectId) -> Dict[str, Any]:
    user = get_db()[USERS].find_one({"_id": user_id})
    if not user:
        raise NotFoundError("User")
    return sanitize(user)


def author_summaries(author_ids: Iterable[ObjectId]) -> Dict[ObjectId, Dict[str, Any]]:
    """Map author ids to `{_id, name}` for attaching to novels."""
    ids: List[ObjectId] = list({a for a in author_ids if isinstance(a, ObjectId)})
    if not ids:
        return {}
    cursor = get_db()[USERS].find({"_id": {"$in": ids}}, {"name": 1})
    return {u["_id"]: {"_id": u["_id"], "name": u.get("name")} for u in cursor}
