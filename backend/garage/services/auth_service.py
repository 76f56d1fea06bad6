# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every approval, rejection and resubmission must be attributable to a
user and a role. Uses bcrypt for password hashing and validates password
strength.

MULTI-TENANT: Users belong to exactly one company (company_id).
Username/email uniqueness is company-scoped.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters; upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, Role, Company
from garage.time_utils import utcnow


class PasswordValidationError(Exception):
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
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    company_id: int,
    username: str,
    email: str,
    password: str,
    role_id: int | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValueError: If company doesn't exist, user exists, or role belongs to another company
        PasswordValidationError: If password doesn't meet requirements
    """
    company = db.session.get(Company, company_id)
    if not company:
        raise ValueError("Company not found")
    if not company.is_active:
        raise ValueError("Company is not active")

    existing = db.session.query(User).filter(
        User.company_id == company_id,
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValueError("Username or email already exists in this company")

    if role_id is not None:
        role = db.session.get(Role, role_id)
        if not role or role.company_id != company_id:
            raise ValueError("Role does not belong to this company")

    user = User(
        company_id=company_id,
        role_id=role_id,
        username=username,
        email=email,
        first_name=first_name,
        last_name=last_name,
        password_hash=hash_password(password),
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(company_code: str, username: str, password: str) -> User | None:
    """
    Authenticate user with username (or email) and password within a company.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at on success.
    """
    company = db.session.query(Company).filter_by(code=company_code).first()
    if not company or not company.is_active:
        return None

    user = db.session.query(User).filter(
        User.company_id == company.id,
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()
    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def get_or_create_role(company_id: int, name: str, description: str | None = None) -> Role:
    role = db.session.query(Role).filter_by(company_id=company_id, name=name).first()
    if role:
        return role
    role = Role(company_id=company_id, name=name, description=description)
    db.session.add(role)
    db.session.flush()
    return role


def override_role_name() -> str:
    return current_app.config.get("OVERRIDE_ROLE_NAME", "Super Admin")


def is_override_role(role: Role | None) -> bool:
    """Privileged role check by configured name."""
    return bool(role and role.name == override_role_name())
