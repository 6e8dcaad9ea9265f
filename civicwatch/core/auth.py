# civicwatch/core/auth.py
from __future__ import annotations

from datetime import timedelta
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.orm import Session

from civicwatch.core.errors import ErrorKind, Result, guard, unwrap
from civicwatch.core.rbac import AccessContext, require_admin_only, require_super_admin
from civicwatch.core.security import ALGORITHM, create_access_token, decode_access_token
from civicwatch.models.user import User

# OAuth2 bearer scheme for Swagger "Authorize" button and DI.
# auto_error=False so soft-auth routes can fall back to the anonymous view.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


class AccessGate:
    """Issues bearer tokens and resolves them back into an AccessContext."""

    def __init__(self, secret_key: str, algorithm: str = ALGORITHM, expire_minutes: int = 60):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue_token(self, user: User) -> str:
        return create_access_token(
            {"sub": str(user.id)},
            self.secret_key,
            expires_delta=timedelta(minutes=self.expire_minutes),
            algorithm=self.algorithm,
        )

    @staticmethod
    def context_for(user: User) -> AccessContext:
        return AccessContext(
            user_id=user.id,
            email=user.email,
            name=user.name or "",
            capabilities=user.capability_set,
            area_code=user.area_code,
            assigned_area_codes=tuple(user.assigned_area_codes),
            is_suspended=user.suspension_active(),
        )

    def resolve(self, db: Session, token: Optional[str]) -> Result[AccessContext]:
        if not token:
            return Result.failure(ErrorKind.UNAUTHENTICATED, "Not authenticated")
        try:
            payload = decode_access_token(token, self.secret_key, self.algorithm)
        except JWTError:
            return Result.failure(ErrorKind.UNAUTHENTICATED, "Could not validate credentials")

        sub = payload.get("sub")
        try:
            user_id = int(sub)
        except (TypeError, ValueError):
            return Result.failure(ErrorKind.UNAUTHENTICATED, "Could not validate credentials")

        user = db.get(User, user_id)
        if user is None:
            return Result.failure(ErrorKind.UNAUTHENTICATED, "Could not validate credentials")
        return Result.success(self.context_for(user))


# -----------------------------
# FastAPI dependencies
# -----------------------------
def get_db(request: Request):
    """Yield a DB session from the app's session factory and close it afterwards."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_services(request: Request):
    return request.app.state.services


def get_access_context(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> AccessContext:
    """
    Resolve the bearer token or fail with 401.
    Side-effect: stores the principal on request.state for request logging.
    """
    ctx = unwrap(get_services(request).gate.resolve(db, token))
    request.state.user_id = ctx.user_id
    return ctx


def get_optional_context(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Optional[AccessContext]:
    """Soft authentication: a missing or invalid token yields None."""
    if not token:
        return None
    result = get_services(request).gate.resolve(db, token)
    if not result.ok:
        return None
    request.state.user_id = result.value.user_id
    return result.value


def admin_context(ctx: AccessContext = Depends(get_access_context)) -> AccessContext:
    guard(require_admin_only(ctx))
    return ctx


def super_admin_context(ctx: AccessContext = Depends(get_access_context)) -> AccessContext:
    guard(require_super_admin(ctx))
    return ctx
