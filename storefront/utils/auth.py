from dataclasses import dataclass
from typing import Optional

import jwt

from ..errors import AuthorizationError

JWT_ALGORITHM = "HS256"


@dataclass(frozen=True)
class Identity:
    user_id: str
    is_admin: bool = False

    def can_access(self, owner_id: Optional[str]) -> bool:
        return self.is_admin or (owner_id is not None and str(owner_id) == self.user_id)


def decode_identity(token: Optional[str], secret_key: str) -> Optional[Identity]:
    """Read the caller from an already issued HS256 token; ``None`` when absent or invalid."""
    if not token:
        return None
    try:
        claims = jwt.decode(token, secret_key, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    subject = claims.get("sub") or claims.get("userId")
    if not subject:
        return None
    return Identity(user_id=str(subject), is_admin=bool(claims.get("is_admin") or claims.get("isAdmin")))


def token_from_request(request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header.split(" ", 1)[1].strip() or None
    return request.cookies.get("jwt")


def ensure_access(identity: Optional[Identity], owner_id: Optional[str]) -> Identity:
    if identity is None:
        raise AuthorizationError("Not authorized, no token")
    if not identity.can_access(owner_id):
        raise AuthorizationError("Not authorized", status_code=403)
    return identity


def ensure_admin(identity: Optional[Identity]) -> Identity:
    if identity is None:
        raise AuthorizationError("Not authorized, no token")
    if not identity.is_admin:
        raise AuthorizationError("Not authorized as an admin", status_code=403)
    return identity
