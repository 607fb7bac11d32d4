# Overview: Access/refresh token issuance and verification for staff sessions.

"""
Token Service

Access tokens are short-lived and carry the user id and role. Refresh
tokens live longer, are signed with a separate secret, carry type=refresh,
and rotate on every use: only the hash of the newest refresh token is kept
on the user row, so a replayed older token is rejected.
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from jose import JWTError, jwt

from ..extensions import db
from ..models import User
from ..time_utils import utcnow

REFRESH_TOKEN_TYPE = "refresh"
ACCESS_TOKEN_TYPE = "access"


class TokenError(Exception):
    """Raised when a token is missing, malformed, expired, or revoked."""


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": "Bearer",
            "expires_in": self.expires_in,
        }


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_access_token(user: User) -> str:
    minutes = current_app.config["JWT_ACCESS_EXPIRES_MINUTES"]
    now = utcnow()
    claims = {
        "sub": str(user.id),
        "role": user.role,
        "username": user.username,
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(claims, current_app.config["JWT_SECRET"], algorithm=current_app.config["JWT_ALGORITHM"])


def create_refresh_token(user: User) -> str:
    days = current_app.config["JWT_REFRESH_EXPIRES_DAYS"]
    now = utcnow()
    claims = {
        "sub": str(user.id),
        "type": REFRESH_TOKEN_TYPE,
        # jti makes two tokens issued within the same second distinct
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + timedelta(days=days),
    }
    return jwt.encode(
        claims,
        current_app.config["JWT_REFRESH_SECRET"],
        algorithm=current_app.config["JWT_ALGORITHM"],
    )


def issue_tokens(user: User) -> TokenPair:
    """Issue a new pair and store the refresh token hash (rotation point)."""
    access = create_access_token(user)
    refresh = create_refresh_token(user)
    user.refresh_token_hash = _hash_token(refresh)
    db.session.commit()
    return TokenPair(
        access_token=access,
        refresh_token=refresh,
        expires_in=current_app.config["JWT_ACCESS_EXPIRES_MINUTES"] * 60,
    )


def decode_access_token(token: str) -> dict:
    try:
        claims = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
    except JWTError as exc:
        raise TokenError("Invalid or expired token") from exc
    if claims.get("type") != ACCESS_TOKEN_TYPE or not claims.get("sub"):
        raise TokenError("Invalid token type")
    return claims


def user_for_access_token(token: str) -> User:
    claims = decode_access_token(token)
    user = db.session.get(User, int(claims["sub"]))
    if not user or not user.is_active:
        raise TokenError("User not found or inactive")
    return user


def rotate_refresh_token(refresh_token: str) -> tuple[User, TokenPair]:
    """
    Exchange a refresh token for a new pair.

    Raises TokenError if the token does not verify, is not a refresh token,
    or is not the one currently stored for the user.
    """
    try:
        claims = jwt.decode(
            refresh_token,
            current_app.config["JWT_REFRESH_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
    except JWTError as exc:
        raise TokenError("Invalid or expired refresh token") from exc

    if claims.get("type") != REFRESH_TOKEN_TYPE or not claims.get("sub"):
        raise TokenError("Invalid token type")

    user = db.session.get(User, int(claims["sub"]))
    if not user or not user.is_active:
        raise TokenError("User not found or inactive")
    if user.refresh_token_hash != _hash_token(refresh_token):
        raise TokenError("Refresh token has been revoked")

    return user, issue_tokens(user)


def revoke_refresh_token(user: User) -> None:
    user.refresh_token_hash = None
    db.session.commit()
