"""
Caller privilege resolution for the Store service.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import Request
from jose import JWTError, jwt

from shared.errors import AuthenticationError, ForbiddenError
from shared.logging import get_logger, set_user_context
from ..models import Identity, Role


class ResolutionReason(str, Enum):
    """Why a credential resolved to the role it did."""
    MISSING = "missing"
    INVALID = "invalid"
    VERIFIED = "verified"


@dataclass(frozen=True)
class RoleResolution:
    """Outcome of classifying a bearer credential."""
    role: Role
    reason: ResolutionReason
    identity: Optional[Identity] = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


ANONYMOUS_MISSING = RoleResolution(Role.ANONYMOUS, ResolutionReason.MISSING)


class AccessGate:
    """Soft classifier from bearer credential to role.

    ``resolve_role`` never raises: missing, malformed, expired or badly signed
    credentials all come back as ANONYMOUS, with the reason recorded.
    """

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm
        self.logger = get_logger("store.access_gate")

    def resolve_role(self, credential: Optional[str]) -> RoleResolution:
        """Classify an Authorization header value or a bare token."""
        token = self._extract_token(credential)
        if not token:
            return ANONYMOUS_MISSING

        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            self.logger.debug("Credential rejected", error=str(e))
            return RoleResolution(Role.ANONYMOUS, ResolutionReason.INVALID)

        identity = self._identity_from_claims(claims)
        if identity is None:
            return RoleResolution(Role.ANONYMOUS, ResolutionReason.INVALID)

        return RoleResolution(identity.role, ResolutionReason.VERIFIED, identity)

    def resolve_request(self, request: Request) -> RoleResolution:
        """Resolve the role for an incoming request, caching it on request state."""
        cached = getattr(request.state, "role_resolution", None)
        if cached is not None:
            return cached

        resolution = self.resolve_role(request.headers.get("Authorization"))
        request.state.role_resolution = resolution
        if resolution.identity is not None:
            set_user_context(resolution.identity.id)
        return resolution

    def _extract_token(self, credential: Optional[str]) -> Optional[str]:
        if not credential:
            return None
        credential = credential.strip()
        if credential.startswith("Bearer "):
            credential = credential[7:].strip()
        elif credential.lower() == "bearer":
            return None
        return credential or None

    def _identity_from_claims(self, claims: Dict[str, Any]) -> Optional[Identity]:
        subject = claims.get("id") or claims.get("sub")
        if subject is None or subject == "":
            return None
        role = Role.ADMIN if claims.get("role") == Role.ADMIN.value else Role.USER
        return Identity(id=str(subject), role=role)


def require_user(gate: AccessGate, request: Request) -> Identity:
    """Return the caller identity or raise AuthenticationError."""
    resolution = gate.resolve_request(request)
    if resolution.identity is None:
        if resolution.reason is ResolutionReason.MISSING:
            raise AuthenticationError("Not authorized, no token")
        raise AuthenticationError("Not authorized, token failed")
    return resolution.identity


def require_admin(gate: AccessGate, request: Request) -> Identity:
    """Return the caller identity when it is an admin, else raise."""
    identity = require_user(gate, request)
    if not identity.is_admin:
        raise ForbiddenError("Admin access required")
    return identity
