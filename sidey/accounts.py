"""
Account lifecycle: signup, signin and password changes.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from sidey.config import Settings
from sidey.db import DbClient, ProfileRecord, SiteRecord, UserRecord, utc_now
from sidey.errors import Conflict, Unauthenticated, ValidationError
from sidey.identity import Principal
from sidey.schemas import (
    ResetPasswordRequest,
    SigninRequest,
    SignupRequest,
    UpdatePasswordRequest,
)
from sidey.security import (
    generate_id,
    hash_password,
    issue_token,
    password_needs_rehash,
    verify_password,
)

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
MIN_SITE_NAME_LENGTH = 3
SITE_NAME_PATTERN = re.compile(r"^[a-z0-9-]+$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Compared against when the email is unknown so both paths cost a hash check.
_UNKNOWN_USER_HASH = hash_password("unknown-user-placeholder")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_site_name(site_name: str) -> str:
    return site_name.strip().lower()


def _session_payload(user: UserRecord, settings: Settings) -> dict:
    token = issue_token(
        {"userId": user.id, "email": user.email, "siteName": user.site_name},
        settings.jwt_secret,
        ttl_seconds=settings.token_ttl_seconds,
    )
    return {
        "token": token,
        "user": {
            "id": user.id,
            "email": user.email,
            "siteName": user.site_name,
            "fullName": user.full_name,
            "isPro": bool(user.is_pro),
            "isAdmin": bool(user.is_admin),
            "customDomain": user.custom_domain,
        },
    }


def _check_new_password(password: Optional[str], label: str = "Password") -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"{label} must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    return password


def signup(db: DbClient, settings: Settings, request: SignupRequest) -> dict:
    """
    Create the user, their site and an empty profile together.

    Format and uniqueness are checked before anything is written; the store
    writes the three rows as one unit.
    """
    if not request.email or not request.password or not request.site_name:
        raise ValidationError("Email, password, and site name are required")
    email = normalize_email(request.email)
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email address")
    password = _check_new_password(request.password)
    site_name = normalize_site_name(request.site_name)
    if not SITE_NAME_PATTERN.match(site_name):
        raise ValidationError(
            "Site name can only contain lowercase letters, numbers, and hyphens"
        )
    if len(site_name) < MIN_SITE_NAME_LENGTH:
        raise ValidationError(
            f"Site name must be at least {MIN_SITE_NAME_LENGTH} characters"
        )

    if db.get_user_by_email(email) is not None:
        raise Conflict("Email already registered")
    if db.get_site(site_name) is not None or db.get_user_by_site_name(site_name):
        raise Conflict("Site name already taken")

    now = utc_now()
    full_name = request.full_name or None
    user = UserRecord(
        id=generate_id(),
        email=email,
        password_hash=hash_password(password),
        site_name=site_name,
        full_name=full_name,
        created_at=now,
        updated_at=now,
    )
    site = SiteRecord(
        id=site_name,
        owner_id=user.id,
        owner_email=email,
        created_at=now,
        updated_at=now,
    )
    profile = ProfileRecord(
        site_id=site_name, full_name=full_name, created_at=now, updated_at=now
    )
    db.create_account(user, site, profile)
    logger.info("Created account %s for site %s", user.id, site_name)
    return _session_payload(user, settings)


def signin(db: DbClient, settings: Settings, request: SigninRequest) -> dict:
    if not request.email or not request.password:
        raise ValidationError("Email and password are required")
    user = db.get_user_by_email(normalize_email(request.email))
    stored_hash = user.password_hash if user else _UNKNOWN_USER_HASH
    if not verify_password(request.password, stored_hash) or user is None:
        logger.info("Failed sign-in attempt")
        raise Unauthenticated("Invalid email or password")
    if password_needs_rehash(user.password_hash):
        db.update_user(user.id, {"password_hash": hash_password(request.password)})
    return _session_payload(user, settings)


def request_password_reset(db: DbClient, request: ResetPasswordRequest) -> dict:
    """Acknowledge a reset request without revealing whether the account exists."""
    if not request.email:
        raise ValidationError("Email is required")
    user = db.get_user_by_email(normalize_email(request.email))
    if user is not None:
        # TODO: send the reset link once an email provider is configured.
        logger.info("Password reset requested for user %s", user.id)
    return {
        "success": True,
        "message": "If an account exists with this email, a reset link will be sent.",
    }


def update_password(
    db: DbClient, principal: Principal, request: UpdatePasswordRequest
) -> dict:
    if not request.current_password or not request.new_password:
        raise ValidationError("Current and new passwords are required")
    new_password = _check_new_password(request.new_password, "New password")
    user = db.get_user(principal.user_id)
    if user is None or not verify_password(
        request.current_password, user.password_hash
    ):
        raise Unauthenticated("Current password is incorrect")
    db.update_user(user.id, {"password_hash": hash_password(new_password)})
    logger.info("Password updated for user %s", user.id)
    return {"success": True, "message": "Password updated successfully"}
