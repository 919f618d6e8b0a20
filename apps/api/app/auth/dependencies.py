import uuid
from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Header, HTTPException, status

from app.auth.jwt import decode_jwt, jwt_http_exception
from app.config import allowed_roles_list, settings
from app.models.user import UserRole
from app.services.role_resolver import CallerIdentity

TEST_BYPASS_USER_ID = uuid.UUID("00000000-0000-4000-8000-00000000b1a5")


@dataclass
class AuthContext:
    user_id: uuid.UUID
    role: str
    org_id: uuid.UUID | None = None
    source: str | None = None

    @property
    def caller(self) -> CallerIdentity:
        return CallerIdentity(
            user_id=self.user_id,
            role=UserRole(self.role.lower()),
            session_org_id=self.org_id,
        )


def _optional_uuid(value: object) -> uuid.UUID | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("expected a UUID string")
    return uuid.UUID(value)


def get_auth_context(authorization: str | None = Header(default=None)) -> AuthContext:
    if not authorization and settings.enable_test_auth_bypass:
        return AuthContext(user_id=TEST_BYPASS_USER_ID, role="OWNER", source="test")

    if not authorization or not authorization.startswith("Bearer "):
        raise jwt_http_exception("Missing bearer token")

    token = authorization.removeprefix("Bearer ").strip()
    try:
        payload = decode_jwt(token, settings.jwt_secret)
    except Exception as err:
        raise jwt_http_exception("Invalid JWT") from err

    role = payload.get("role")
    if role not in allowed_roles_list():
        raise jwt_http_exception("Invalid JWT claims")
    try:
        user_id = _optional_uuid(payload.get("sub"))
        org_id = _optional_uuid(payload.get("org"))
    except ValueError as err:
        raise jwt_http_exception("Invalid JWT claims") from err
    if user_id is None:
        raise jwt_http_exception("Invalid JWT claims")

    return AuthContext(user_id=user_id, role=role, org_id=org_id, source=payload.get("source"))


def require_roles(*roles: str) -> Callable[[AuthContext], AuthContext]:
    def dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if auth.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return auth

    return dependency
