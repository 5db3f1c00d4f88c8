import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, get_db
from schemas import User as UserSchema
from security import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    TOKEN_COOKIE,
    create_access_token,
    get_current_user,
    hash_password,
    public_user,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

APP_URL = os.getenv("APP_URL", "http://localhost:3000")
RESET_TOKEN_TTL = timedelta(hours=1)


# Auth models
class RegisterInput(BaseModel):
    name: Optional[str] = None
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginInput(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Dict[str, Any]


class ForgotPasswordInput(BaseModel):
    email: EmailStr


class ResetPasswordInput(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)


class ProfileUpdate(BaseModel):
    name: str


def profile(db: Database, user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": user["id"],
        "name": user.get("name"),
        "email": user["email"],
        "role": user.get("role", "user"),
        "created_at": user.get("created_at"),
        "orders_count": db["order"].count_documents({"user_id": user["id"]}),
        "wishlist_count": len(user.get("wishlist") or []),
    }


def _find_by_reset_token(db: Database, token: str):
    user = db["user"].find_one({"reset_token": token})
    if not user or not user.get("reset_token_expiry"):
        return None
    expiry = user["reset_token_expiry"]
    # pymongo hands back naive UTC datetimes unless the client is tz_aware
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    if expiry <= datetime.now(timezone.utc):
        return None
    return user


@router.post("/auth/register", response_model=TokenResponse, status_code=201)
def register(payload: RegisterInput, db: Database = Depends(get_db)):
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    user_model = UserSchema(
        name=payload.name.strip() if payload.name else None,
        email=email,
        password_hash=hash_password(payload.password),
        role="user",
    )
    try:
        user_id = create_document(db, "user", user_model)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Email already registered")
    logger.info("User %s registered", user_id)
    token = create_access_token({"sub": user_id, "email": email})
    user = db["user"].find_one({"_id": ObjectId(user_id)})
    return TokenResponse(access_token=token, user=public_user(user))


@router.post("/auth/login", response_model=TokenResponse)
def login(payload: LoginInput, response: Response, db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": payload.email.lower()})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        logger.warning("Failed login for %s", payload.email)
        raise HTTPException(status_code=401, detail="Invalid email or password")
    user_id = str(user["_id"])
    token = create_access_token({"sub": user_id, "email": user["email"], "name": user.get("name")})
    response.set_cookie(
        TOKEN_COOKIE, token,
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60, httponly=True, samesite="strict",
    )
    return TokenResponse(access_token=token, user=public_user(user))


@router.post("/auth/logout")
def logout(response: Response):
    response.delete_cookie(TOKEN_COOKIE, httponly=True, samesite="strict")
    return {"message": "Logged out successfully"}


@router.get("/auth/me")
def me(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return {"user": profile(db, current_user)}


@router.post("/auth/forgot-password")
def forgot_password(payload: ForgotPasswordInput, db: Database = Depends(get_db)):
    generic = {"message": "If an account with that email exists, a password reset link has been issued."}
    user = db["user"].find_one({"email": payload.email.lower()})
    if not user:
        return generic

    token = secrets.token_hex(32)
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {
            "reset_token": token,
            "reset_token_expiry": datetime.now(timezone.utc) + RESET_TOKEN_TTL,
            "updated_at": datetime.now(timezone.utc),
        }},
    )
    logger.info("Password reset requested for user %s", user["_id"])
    # No mail transport is wired in, the link goes back to the caller
    return {**generic, "reset_link": f"{APP_URL}/auth/reset-password?token={token}"}


@router.get("/auth/validate-reset-token")
def validate_reset_token(token: Optional[str] = None, db: Database = Depends(get_db)):
    if not token or not _find_by_reset_token(db, token):
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    return {"valid": True}


@router.post("/auth/reset-password")
def reset_password(payload: ResetPasswordInput, db: Database = Depends(get_db)):
    user = _find_by_reset_token(db, payload.token)
    if not user:
        logger.warning("Rejected password reset with invalid or expired token")
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    db["user"].update_one(
        {"_id": user["_id"]},
        {
            "$set": {"password_hash": hash_password(payload.password), "updated_at": datetime.now(timezone.utc)},
            "$unset": {"reset_token": "", "reset_token_expiry": ""},
        },
    )
    logger.info("Password reset for user %s", user["_id"])
    return {"message": "Password reset successfully"}


@router.get("/user/profile")
def get_profile(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return {"user": profile(db, current_user)}


@router.put("/user/profile")
def update_profile(payload: ProfileUpdate, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required and cannot be empty")
    db["user"].update_one(
        {"_id": ObjectId(current_user["id"])},
        {"$set": {"name": name, "updated_at": datetime.now(timezone.utc)}},
    )
    return {"message": "Profile updated successfully", "user": profile(db, {**current_user, "name": name})}
