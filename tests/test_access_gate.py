from datetime import timedelta

from civicwatch.core.errors import ErrorKind
from civicwatch.core.rbac import (
    AccessContext,
    Capability,
    ensure_not_self,
    parse_capabilities,
    require_admin_only,
    require_super_admin,
)
from civicwatch.core.security import create_access_token

from tests.conftest import PASSWORD, SUPERADMIN_EMAIL


# -----------------------------
# Capability predicates
# -----------------------------
def test_capability_parsing_and_derived_flags():
    caps = parse_capabilities(["user", "superadmin", "bogus"])
    assert caps == frozenset({Capability.MEMBER, Capability.SUPER_ADMIN})

    ctx = AccessContext(user_id=1, email="a@example.com", capabilities=caps)
    assert ctx.is_super_admin
    assert ctx.is_admin  # super-admin implies admin

    member = AccessContext(user_id=2, email="b@example.com")
    assert not member.is_admin
    assert require_admin_only(member).kind is ErrorKind.FORBIDDEN
    assert require_super_admin(member).kind is ErrorKind.FORBIDDEN
    assert require_admin_only(ctx) is None
    assert ensure_not_self(ctx, 1).kind is ErrorKind.FORBIDDEN
    assert ensure_not_self(ctx, 3) is None


# -----------------------------
# Gate resolution
# -----------------------------
def test_resolve_valid_token(db, services, factory):
    area = factory.area()
    admin = factory.admin(area=area, area_code="HOME01")
    token = services.gate.issue_token(admin)

    result = services.gate.resolve(db, token)
    assert result.ok
    ctx = result.value
    assert ctx.user_id == admin.id
    assert ctx.is_admin and not ctx.is_super_admin
    assert ctx.assigned_area_codes == ("AREA01",)
    assert ctx.area_code == "HOME01"


def test_resolve_rejects_missing_bad_expired_and_unknown(db, services, factory):
    u = factory.user()
    assert services.gate.resolve(db, None).error.kind is ErrorKind.UNAUTHENTICATED
    assert services.gate.resolve(db, "not-a-jwt").error.kind is ErrorKind.UNAUTHENTICATED

    expired = create_access_token({"sub": str(u.id)}, "test-secret", expires_delta=timedelta(minutes=-5))
    assert services.gate.resolve(db, expired).error.kind is ErrorKind.UNAUTHENTICATED

    forged = create_access_token({"sub": str(u.id)}, "other-secret")
    assert services.gate.resolve(db, forged).error.kind is ErrorKind.UNAUTHENTICATED

    ghost = create_access_token({"sub": "99999"}, "test-secret")
    assert services.gate.resolve(db, ghost).error.kind is ErrorKind.UNAUTHENTICATED


# -----------------------------
# HTTP surface
# -----------------------------
def test_signup_login_me(client, factory):
    factory.area(code="AREA01")
    r = client.post(
        "/api/v1/auth/signup",
        json={"email": "Jane@Example.com", "password": PASSWORD, "name": "Jane", "area_code": "area01"},
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["user"]["email"] == "jane@example.com"
    assert body["user"]["roles"] == ["member"]
    assert body["user"]["area_code"] == "AREA01"

    r = client.post("/api/v1/auth/login", data={"username": "jane@example.com", "password": PASSWORD})
    assert r.status_code == 200
    token = r.json()["access_token"]

    r = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json()["name"] == "Jane"


def test_signup_errors(client, factory):
    factory.user(email="taken@example.com")
    r = client.post("/api/v1/auth/signup", json={"email": "taken@example.com", "password": PASSWORD, "name": "X"})
    assert r.status_code == 409
    assert r.json()["error"]["type"] == "conflict"

    factory.area(code="OFF001", active=False)
    r = client.post(
        "/api/v1/auth/signup",
        json={"email": "new@example.com", "password": PASSWORD, "name": "X", "area_code": "OFF001"},
    )
    assert r.status_code == 400
    assert r.json()["error"]["type"] == "validation"


def test_configured_superadmin_email_gets_all_capabilities(client):
    r = client.post("/api/v1/auth/signup", json={"email": SUPERADMIN_EMAIL, "password": PASSWORD, "name": "Root"})
    assert r.status_code == 201
    assert r.json()["user"]["roles"] == ["admin", "member", "super_admin"]


def test_wrong_password_is_401(client, factory):
    factory.user(email="bob@example.com")
    r = client.post("/api/v1/auth/login", data={"username": "bob@example.com", "password": "nope-nope"})
    assert r.status_code == 401
    assert r.json()["error"]["message"] == "Incorrect email or password"


def test_missing_token_renders_error_envelope(client):
    r = client.get("/api/v1/auth/me")
    assert r.status_code == 401
    body = r.json()
    assert body["ok"] is False
    assert body["error"]["type"] == "unauthenticated"
    assert body["error"]["trace_id"]
    assert r.headers["X-Request-ID"] == body["error"]["trace_id"]
    assert r.headers["WWW-Authenticate"] == "Bearer"


def test_member_blocked_from_admin_endpoints(client, factory):
    member = factory.user()
    r = client.get("/api/v1/users", headers=factory.headers(member))
    assert r.status_code == 403
    assert r.json()["error"]["type"] == "forbidden"
