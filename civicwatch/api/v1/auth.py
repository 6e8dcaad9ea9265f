# civicwatch/api/v1/auth.py
from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from civicwatch.core.auth import get_access_context, get_db, get_services
from civicwatch.core.errors import ErrorKind, Result, unwrap
from civicwatch.core.rbac import AccessContext
from civicwatch.models.user import User
from civicwatch.schemas.user import SignupIn, TokenOut, UserOut

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_out(user: User, token: str) -> TokenOut:
    return TokenOut(access_token=token, user=UserOut.model_validate(user))


@router.post("/signup", response_model=TokenOut, status_code=status.HTTP_201_CREATED)
def signup(
    payload: SignupIn,
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    user, token = unwrap(services.accounts.signup(db, payload))
    return _token_out(user, token)


@router.post("/login", response_model=TokenOut)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    # OAuth2 form: "username" carries the email
    user, token = unwrap(services.accounts.authenticate(db, form_data.username, form_data.password))
    return _token_out(user, token)


@router.get("/me", response_model=UserOut)
def me(
    ctx: AccessContext = Depends(get_access_context),
    db: Session = Depends(get_db),
):
    user = db.get(User, ctx.user_id)
    if user is None:
        unwrap(Result.failure(ErrorKind.UNAUTHENTICATED, "Could not validate credentials"))
    return user
