# Overview: Service-layer operations for staff accounts; password hashing, login, and profile changes.

"""
Staff Authentication Service

WHY: Every confirmation and sale finalization is attributed to a staff
account, so credentials must be strong and verifiable.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Tokens are issued separately (see token_service.py)
"""

import re

import bcrypt

from ..extensions import db
from ..models import User, USER_ROLES
from ..time_utils import utcnow


MIN_PASSWORD_LENGTH = 8
BCRYPT_ROUNDS = 12

# (pattern, what the message says is missing)
PASSWORD_RULES = (
    (r"[A-Z]", "uppercase letter"),
    (r"[a-z]", "lowercase letter"),
    (r"\d", "digit"),
    (r"[!@#$%^&*(),.'\":{}|<>_\-]", "special character"),
)


class PasswordValidationError(ValueError):
    """Password rejected by the strength rules; the message names the rule."""


class AuthError(Exception):
    """Raised for account operation errors."""
    def __init__(self, message: str, status_code: int = 400, details: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}


def validate_password_strength(password: str) -> None:
    """Raise PasswordValidationError naming the first rule the password breaks."""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    for pattern, requirement in PASSWORD_RULES:
        if not re.search(pattern, password):
            raise PasswordValidationError(f"Password must contain at least one {requirement}")


def hash_password(password: str) -> str:
    """Strength-check, then bcrypt-hash. Returns the hash as text for the String column."""
    validate_password_strength(password)
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time bcrypt comparison; a malformed stored hash is a mismatch."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    role: str = "manager",
    full_name: str | None = None,
) -> User:
    """
    Create a staff user with bcrypt password hashing.

    Raises:
        AuthError: If the role is unknown or username/email is taken (409)
        PasswordValidationError: If password doesn't meet requirements
    """
    if role not in USER_ROLES:
        raise AuthError(f"Unknown role: {role}", details={"allowed_roles": list(USER_ROLES)})

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise AuthError("Username or email already exists", status_code=409)

    password_hash = hash_password(password)

    user = User(
        username=username,
        email=email,
        password_hash=password_hash,
        role=role,
        full_name=full_name,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate by username or email.

    Returns the User and stamps last_login_at when the credentials match an
    active account; None otherwise.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def change_password(user: User, current_password: str, new_password: str) -> User:
    """
    Change a user's password after re-checking the current one.

    Revokes the stored refresh token so other sessions must log in again.
    """
    if not verify_password(current_password, user.password_hash):
        raise AuthError("Current password is incorrect", status_code=401)
    if current_password == new_password:
        raise AuthError("New password must be different from the current password")

    user.password_hash = hash_password(new_password)
    user.refresh_token_hash = None
    db.session.commit()
    return user


PROFILE_FIELDS = {"full_name", "email", "phone", "address"}


def update_profile(user: User, patch: dict) -> User:
    """Apply profile changes; email must stay unique across staff."""
    new_email = patch.get("email")
    if new_email and new_email != user.email:
        taken = db.session.query(User).filter(User.email == new_email, User.id != user.id).first()
        if taken:
            raise AuthError("Email already in use", status_code=409)

    for key, value in patch.items():
        if key in PROFILE_FIELDS:
            setattr(user, key, value)

    db.session.commit()
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.created_at.desc(), User.id.desc()).all()
