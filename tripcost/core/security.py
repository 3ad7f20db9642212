"""Caller identity and role checks.

Authentication happens upstream; by the time a request reaches this service the
gateway has resolved the caller into ``X-User-Id`` / ``X-User-Role`` headers.
Internal calls (budget usage refresh) carry a shared bearer token instead.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from tripcost.core.errors import AuthorizationError
from tripcost.models.constants import Role


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def can_act_for(self, owner_id: str) -> bool:
        return self.is_admin or self.user_id == owner_id


def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Actor:
    if not x_user_id or not x_user_id.strip():
        raise AuthorizationError("missing caller identity")
    try:
        role = Role(x_user_role.lower()) if x_user_role else Role.USER
    except ValueError:
        raise AuthorizationError(f"unknown role '{x_user_role}'")
    return Actor(user_id=x_user_id.strip(), role=role)


def require_owner_or_admin(actor: Actor, owner_id: str, what: str) -> None:
    if not actor.can_act_for(owner_id):
        raise AuthorizationError(f"Not authorized to access this {what}")


def require_admin(actor: Actor, action: str) -> None:
    if not actor.is_admin:
        raise AuthorizationError(f"Only administrators can {action}")


def token_matches(presented: Optional[str], expected: str) -> bool:
    if not presented:
        return False
    return hmac.compare_digest(presented.encode(), expected.encode())


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()
