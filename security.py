import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import Cookie, Depends, Header, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

from database import get_db

logger = logging.getLogger(__name__)

# JWT Config
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days
TOKEN_COOKIE = "token"

PRIVATE_USER_FIELDS = ("password_hash", "reset_token", "reset_token_expiry")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def to_object_id(value: str, what: str = "id") -> ObjectId:
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"Invalid {what}")
    return ObjectId(value)


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
    return doc


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    user = serialize_doc(doc)
    for field in PRIVATE_USER_FIELDS:
        user.pop(field, None)
    return user


def _token_from_request(authorization: Optional[str], cookie_token: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1]
    return cookie_token or None


def _load_user(database: Database, token: str) -> Dict[str, Any]:
    payload = decode_token(token)
    user_id = payload.get("sub")
    if not user_id or not ObjectId.is_valid(user_id):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = database["user"].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return public_user(user)


# Dependencies to get the current user

def get_current_user(
    authorization: Optional[str] = Header(default=None),
    token: Optional[str] = Cookie(default=None),
    database: Database = Depends(get_db),
):
    raw = _token_from_request(authorization, token)
    if not raw:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return _load_user(database, raw)


def get_optional_user(
    authorization: Optional[str] = Header(default=None),
    token: Optional[str] = Cookie(default=None),
    database: Database = Depends(get_db),
):
    """Like get_current_user, but anonymous or stale sessions resolve to None."""
    raw = _token_from_request(authorization, token)
    if not raw:
        return None
    try:
        return _load_user(database, raw)
    except HTTPException:
        return None


def require_admin(current_user: dict = Depends(get_current_user)):
    if current_user.get("role") != "admin":
        logger.warning("Non-admin user %s denied admin access", current_user.get("id"))
        raise HTTPException(status_code=403, detail="Admins only")
    return current_user
