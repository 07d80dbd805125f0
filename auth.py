"""
Identity and access control.

The bearer token only proves *who* the caller is. Role and account status
are re-read from the users collection on every guarded call, so a demotion
or block takes effect immediately instead of when the token expires.

Every route declares its operation name; `ACCESS_POLICY` maps that name to
the capability it needs and `guard()` enforces it before the route body
runs. Every operation that writes needs an active account; plain
AUTHENTICATED is only used for reads.

Tokens are minted by the external identity provider. `POST /jwt` only
renews a valid token for an active caller, for that caller's own email.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional, Iterable

import jwt
from fastapi import Depends, Header

from config import Config
from database import get_db, now
from directory import UserDirectory
from errors import AccountBlocked, Forbidden, Unauthorized

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    STAFF = "staff"
    ADMIN = "admin"


ROLE_REQUIREMENTS = {
    Capability.STAFF: ("admin", "volunteer"),
    Capability.ADMIN: ("admin",),
}

ACCESS_POLICY = {
    "issue_token": Capability.ACTIVE,
    # users
    "register_user": Capability.PUBLIC,
    "search_donors": Capability.PUBLIC,
    "get_user": Capability.PUBLIC,
    "get_user_role": Capability.PUBLIC,
    "update_profile": Capability.ACTIVE,
    "search_users": Capability.ADMIN,
    "set_user_status": Capability.ADMIN,
    "set_user_role": Capability.ADMIN,
    # donation requests
    "create_request": Capability.PUBLIC,
    "list_my_requests": Capability.AUTHENTICATED,
    "get_request": Capability.AUTHENTICATED,
    "update_request": Capability.ACTIVE,
    "delete_request": Capability.ACTIVE,
    "list_all_requests": Capability.STAFF,
    "list_pending_requests": Capability.PUBLIC,
    "list_requests_by_status": Capability.PUBLIC,
    "accept_request": Capability.ACTIVE,
    "set_request_status": Capability.STAFF,
    "volunteer_requests": Capability.STAFF,
    # funds and blogs
    "record_fund": Capability.ACTIVE,
    "list_funds": Capability.AUTHENTICATED,
    "fund_total": Capability.AUTHENTICATED,
    "create_blog": Capability.ACTIVE,
    "list_blogs": Capability.PUBLIC,
    "get_blog": Capability.PUBLIC,
    "set_blog_status": Capability.ADMIN,
    "delete_blog": Capability.ADMIN,
}


@dataclass
class Caller:
    email: str
    role: Optional[str] = None
    status: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_staff(self) -> bool:
        return self.role in ROLE_REQUIREMENTS[Capability.STAFF]


def issue_token(email: str, role: str) -> str:
    payload = {
        "email": email,
        "role": role,
        "exp": now() + timedelta(days=Config.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(payload, Config.JWT_SECRET, algorithm=Config.JWT_ALGORITHM)


def decode_token(authorization: Optional[str]) -> Optional[dict]:
    """Return the verified claim, or None when no credential was sent."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthorized()
    try:
        claim = jwt.decode(parts[1], Config.JWT_SECRET, algorithms=[Config.JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.warning(f"Rejected token: {e}")
        raise Unauthorized()
    if not claim.get("email"):
        raise Unauthorized()
    return claim


def resolve_caller(claim: dict, directory: UserDirectory) -> Caller:
    # role and status come from the directory, never from the claim
    user = directory.lookup(claim["email"])
    if not user:
        return Caller(email=claim["email"])
    return Caller(email=user["email"], role=user.get("role"), status=user.get("status"), name=user.get("name"))


def require_authenticated(claim: Optional[dict]) -> dict:
    if claim is None:
        raise Unauthorized()
    return claim


def require_active_account(caller: Caller) -> Caller:
    if caller.status is None:
        raise Forbidden()
    if caller.status == "blocked":
        raise AccountBlocked()
    return caller


def require_role(caller: Caller, allowed_roles: Iterable[str]) -> Caller:
    if caller.role not in allowed_roles:
        raise Forbidden()
    return caller


def require_self_or_admin(caller: Caller, email: str) -> None:
    if caller.email != email and not caller.is_admin:
        raise Forbidden()


def require_owner_or_admin(caller: Caller, doc: dict) -> None:
    if caller.email not in (doc.get("requestedBy"), doc.get("requesterEmail")) and not caller.is_admin:
        raise Forbidden()


def guard(operation: str):
    """Build the dependency enforcing `operation`'s capability.

    Public operations still resolve a caller when a valid token is sent and
    return None otherwise.
    """
    capability = ACCESS_POLICY[operation]

    def dep(authorization: Optional[str] = Header(None), database=Depends(get_db)) -> Optional[Caller]:
        directory = UserDirectory(database)
        if capability is Capability.PUBLIC:
            try:
                claim = decode_token(authorization)
            except Unauthorized:
                return None
            return resolve_caller(claim, directory) if claim else None

        claim = require_authenticated(decode_token(authorization))
        caller = resolve_caller(claim, directory)
        if capability is Capability.AUTHENTICATED:
            return caller
        require_active_account(caller)
        if capability in ROLE_REQUIREMENTS:
            require_role(caller, ROLE_REQUIREMENTS[capability])
        return caller

    return dep
