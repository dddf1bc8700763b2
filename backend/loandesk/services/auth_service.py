# Overview: Service-layer operations for users, passwords and role membership.

"""
Authentication Service with Group Scoping

Every action must be attributable to a signed-in user. Passwords are hashed
with bcrypt and checked for strength at creation time.

MULTI-TENANT: Users belong to exactly one group (group_id). Login looks
users up by email, which is globally unique.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit and special char
- Bearer tokens managed separately (see token_service.py)
- Authentication fails for inactive users and inactive groups
"""

import re

import bcrypt

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Group, Role, User, UserRole
from loandesk.time_utils import utcnow


ROLE_USER = "user"
ROLE_ADMIN = "admin"

DEFAULT_ROLES = (
    (ROLE_USER, "Day-to-day lending: borrowers, loans and kiosk mode"),
    (ROLE_ADMIN, "Group administration"),
)


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


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

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt (cost factor 12)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash counts as a
    mismatch rather than an error.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_group(name: str) -> Group:
    """Create a group and seed its default roles."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Group name is required")

    group = Group(name=name)
    db.session.add(group)
    db.session.commit()

    create_default_roles(group.id)
    return group


def create_user(
    group_id: int,
    name: str,
    email: str,
    password: str,
    roles: tuple[str, ...] = (ROLE_USER,),
) -> User:
    """
    Create a user in a group and grant the given roles.

    Raises:
        NotFoundError: group doesn't exist
        ValidationError: group inactive, email taken, or weak password
    """
    group = db.session.get(Group, group_id)
    if group is None:
        raise NotFoundError("Group not found")
    if not group.is_active:
        raise ValidationError("Group is not active")

    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("Email is required")

    existing = db.session.query(User).filter(User.email == email).first()
    if existing:
        raise ValidationError("Email already exists")

    user = User(
        group_id=group_id,
        name=(name or "").strip() or email,
        email=email,
        password_hash=hash_password(password),
    )
    db.session.add(user)
    db.session.commit()

    for role_name in roles:
        assign_role(user.id, role_name)

    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate a user by email and password.

    Returns the User if the credentials are valid and both the user and its
    group are active, None otherwise. Updates last_login_at on success.
    """
    email = (email or "").strip().lower()
    user = db.session.query(User).filter(
        User.email == email,
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    group = db.session.get(Group, user.group_id)
    if not group or not group.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def assign_role(user_id: int, role_name: str) -> UserRole:
    """Assign one of the user's group roles. Idempotent."""
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    role = db.session.query(Role).filter_by(group_id=user.group_id, name=role_name).first()
    if not role:
        raise NotFoundError(f"Role {role_name} not found")

    existing = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if existing:
        return existing

    user_role = UserRole(user_id=user_id, role_id=role.id)
    db.session.add(user_role)
    db.session.commit()
    return user_role


def revoke_role(user_id: int, role_name: str) -> bool:
    """Remove a role from a user. Returns False if the user did not hold it."""
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    role = db.session.query(Role).filter_by(group_id=user.group_id, name=role_name).first()
    if not role:
        return False

    deleted = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).delete()
    db.session.commit()
    return deleted > 0


def create_default_roles(group_id: int) -> None:
    """Create the standard roles for a group if they don't exist."""
    for name, description in DEFAULT_ROLES:
        existing = db.session.query(Role).filter_by(group_id=group_id, name=name).first()
        if not existing:
            db.session.add(Role(group_id=group_id, name=name, description=description))

    db.session.commit()
