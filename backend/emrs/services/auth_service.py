# Overview: Service-layer operations for auth; user creation and credential checks.

"""
Authentication Service

WHY: Every request, approval, issue and return is attributed to a user.
Uses bcrypt for secure password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
"""

import logging
import re

import bcrypt

from ..extensions import db
from ..models import Department, User
from ..models.org import ROLES
from ..validation import AuthenticationError, ConflictError, NotFoundError, ValidationError
from . import session_service
from emrs.time_utils import utcnow


logger = logging.getLogger(__name__)


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12 (strength checked first)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    name: str,
    email: str,
    password: str,
    role: str = "staff",
    department_id: int | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: unknown role or weak password
        NotFoundError: department_id does not exist
        ConflictError: email already registered
    """
    if role not in ROLES:
        raise ValidationError(f"Unknown role: {role}")

    if department_id is not None and db.session.get(Department, department_id) is None:
        raise NotFoundError("Department not found")

    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("Email already exists")

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        department_id=department_id,
    )

    db.session.add(user)
    db.session.commit()
    logger.info("Created user %s (%s, department=%s)", user.id, role, department_id)
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        User.email == (email or "").strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def change_password(
    user: User,
    current_password: str,
    new_password: str,
    *,
    keep_session_id: int | None = None,
) -> int:
    """
    Replace user's password after re-checking the current one.

    Every other session of the user is revoked. Returns the number of
    sessions revoked.

    Raises:
        ValidationError: a field is missing
        AuthenticationError: current_password does not match
        PasswordValidationError: new_password too weak
    """
    if not current_password or not new_password:
        raise ValidationError("currentPassword and newPassword required")

    if not verify_password(current_password, user.password_hash):
        raise AuthenticationError("Current password is incorrect")

    user.password_hash = hash_password(new_password)
    db.session.commit()

    revoked = session_service.revoke_all_user_sessions(user.id, keep_session_id=keep_session_id)
    logger.info("Password changed for user %s (%s other sessions revoked)", user.id, revoked)
    return revoked
