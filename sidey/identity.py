"""
Resolve bearer tokens into principals.

Token claims only identify the user. Authorization flags are re-read from the
store on every request so revoking a privilege takes effect immediately.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sidey.db import DbClient, UserRecord
from sidey.errors import Unauthenticated
from sidey.security import verify_token

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Principal:
    user_id: str
    email: str
    site_name: str
    full_name: Optional[str] = None
    is_pro: bool = False
    is_admin: bool = False
    custom_domain: Optional[str] = None

    @classmethod
    def from_user(cls, user: UserRecord) -> "Principal":
        return cls(
            user_id=user.id,
            email=user.email,
            site_name=user.site_name,
            full_name=user.full_name,
            is_pro=bool(user.is_pro),
            is_admin=bool(user.is_admin),
            custom_domain=user.custom_domain,
        )

    def owns_site(self, site_id: Optional[str]) -> bool:
        return self.is_admin or (site_id is not None and site_id == self.site_name)

    def as_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "email": self.email,
            "siteName": self.site_name,
            "fullName": self.full_name,
            "isPro": self.is_pro,
            "isAdmin": self.is_admin,
            "customDomain": self.custom_domain,
        }


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


def authenticate(
    authorization: Optional[str], db: DbClient, secret: str
) -> Optional[Principal]:
    """
    Return the principal for an ``Authorization`` header value, or None.

    Missing or malformed headers, invalid or expired tokens, and tokens for
    users that no longer exist all yield None rather than an error.
    """
    claims = verify_token(extract_bearer_token(authorization), secret)
    if not claims or not claims.get("userId"):
        return None
    user = db.get_user(str(claims["userId"]))
    if user is None:
        return None
    return Principal.from_user(user)


def require_auth(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise Unauthenticated("Authentication required")
    return principal
