import re

from sqlalchemy.orm import Query

from civicwatch.core.errors import ErrorKind
from civicwatch.models.area_code import AreaCode
from civicwatch.models.audit_log import AuditLogEntry
from civicwatch.services.area_registry import AreaRegistry

CODE_RE = re.compile(r"^[A-Z0-9]{6,8}$")


def test_generate_requires_super_admin(db, services, factory):
    admin = factory.admin()
    result = services.areas.generate(db, factory.ctx(admin), "Riverside")
    assert result.error.kind is ErrorKind.FORBIDDEN


def test_generate_creates_active_code_and_audits(db, services, factory):
    root = factory.super_admin()
    result = services.areas.generate(db, factory.ctx(root), "Riverside", "North bank", prefix="rv")
    assert result.ok, result.error
    area = result.value
    assert CODE_RE.match(area.code)
    assert area.code.startswith("RV")
    assert area.is_active
    assert area.created_by == root.id

    entry = db.query(AuditLogEntry).filter(AuditLogEntry.action == "AREA_CODE_GENERATED").one()
    assert entry.target_type == "area"
    assert entry.target_id == area.id


def test_generate_validation(db, services, factory):
    ctx = factory.ctx(factory.super_admin())
    assert services.areas.generate(db, ctx, "R").error.kind is ErrorKind.VALIDATION
    assert services.areas.generate(db, ctx, "Riverside", prefix="A-").error.kind is ErrorKind.VALIDATION


def test_generate_never_repeats_codes(db, services, factory):
    ctx = factory.ctx(factory.super_admin())
    codes = [services.areas.generate(db, ctx, f"Area {i}").value.code for i in range(50)]
    assert len(set(codes)) == 50
    assert all(CODE_RE.match(c) for c in codes)


def test_generate_redraws_on_collision(db, services, factory):
    factory.area(code="AAAAAA")
    draws = iter(["AAAAAA", "AAAAAA", "BBBBBB"])
    registry = AreaRegistry(services.audit, max_attempts=5, draw=lambda prefix: next(draws))

    result = registry.generate(db, factory.ctx(factory.super_admin()), "Hillside")
    assert result.ok
    assert result.value.code == "BBBBBB"


def test_generate_gives_up_with_conflict(db, services, factory):
    factory.area(code="AAAAAA")
    registry = AreaRegistry(services.audit, max_attempts=3, draw=lambda prefix: "AAAAAA")

    result = registry.generate(db, factory.ctx(factory.super_admin()), "Hillside")
    assert result.error.kind is ErrorKind.CONFLICT


def test_generate_redraws_when_insert_hits_unique_constraint(db, services, factory, monkeypatch):
    factory.area(code="AAAAAA")
    ctx = factory.ctx(factory.super_admin())
    seen = []

    def draw(prefix):
        code = ["AAAAAA", "CCCCCC"][len(seen)]
        seen.append(code)
        return code

    # another writer took the code between the lookup and the insert
    real_first = Query.first

    def blind_code_lookup(query):
        desc = query.column_descriptions
        if len(desc) == 1 and desc[0]["entity"] is AreaCode and desc[0]["name"] == "id":
            return None
        return real_first(query)

    monkeypatch.setattr(Query, "first", blind_code_lookup)
    registry = AreaRegistry(services.audit, max_attempts=3, draw=draw)

    result = registry.generate(db, ctx, "Hillside")
    assert result.ok
    assert result.value.code == "CCCCCC"
    assert seen == ["AAAAAA", "CCCCCC"]
    assert db.query(AreaCode).filter(AreaCode.code == "AAAAAA").count() == 1
    assert db.query(AreaCode).filter(AreaCode.name == "Hillside").count() == 1


def test_validate_is_case_insensitive_and_rejects_inactive(db, services, factory):
    factory.area(code="ABC123")
    factory.area(code="OFF123", active=False)

    valid, area = services.areas.validate(db, " abc123 ")
    assert valid and area.code == "ABC123"
    assert services.areas.validate(db, "OFF123") == (False, None)
    assert services.areas.validate(db, "NOPE99") == (False, None)


def test_assign_and_remove_admins(db, services, factory):
    root = factory.ctx(factory.super_admin())
    area = factory.area()
    admin = factory.admin()
    member = factory.user()

    bad = services.areas.assign_admins(db, root, area.id, [admin.id, member.id])
    assert bad.error.kind is ErrorKind.VALIDATION
    assert services.areas.assign_admins(db, root, area.id, []).error.kind is ErrorKind.VALIDATION

    ok = services.areas.assign_admins(db, root, area.id, [admin.id, admin.id])
    assert ok.value.admin_ids == [admin.id]
    again = services.areas.assign_admins(db, root, area.id, [admin.id])
    assert again.value.admin_ids == [admin.id]

    assert factory.ctx(admin).assigned_area_codes == ("AREA01",)

    removed = services.areas.remove_admin(db, root, area.id, admin.id)
    assert removed.value.admin_ids == []
    # removing twice is a no-op
    assert services.areas.remove_admin(db, root, area.id, admin.id).ok


def test_toggle_active(db, services, factory):
    root = factory.ctx(factory.super_admin())
    area = factory.area()
    assert services.areas.toggle_active(db, root, area.id).value.is_active is False
    assert services.areas.validate(db, "AREA01")[0] is False
    assert services.areas.toggle_active(db, root, area.id).value.is_active is True


def test_delete_blocked_by_dependents(db, services, factory):
    root = factory.ctx(factory.super_admin())
    with_user = factory.area(code="USER01")
    factory.user(area_code="USER01")
    with_incident = factory.area(code="INCI01")
    factory.incident(factory.user(), area_code="INCI01")

    r1 = services.areas.delete(db, root, with_user.id)
    assert r1.error.kind is ErrorKind.CONFLICT
    assert r1.error.details == {"user_count": 1, "incident_count": 0}
    assert services.areas.delete(db, root, with_incident.id).error.kind is ErrorKind.CONFLICT


def test_delete_without_dependents(db, services, factory):
    root = factory.ctx(factory.super_admin())
    area = factory.area(code="EMPTY1")
    result = services.areas.delete(db, root, area.id)
    assert result.value == {"deleted": True, "id": area.id, "code": "EMPTY1"}
    assert services.areas.get_area(db, root, area.id).error.kind is ErrorKind.NOT_FOUND


def test_recompute_stats_is_idempotent(db, services, factory):
    factory.area()
    owner = factory.user(area_code="AREA01")
    factory.user(area_code="AREA01")
    factory.incident(owner)

    first = services.areas.recompute_stats(db, "AREA01").value
    assert (first.total_users, first.total_incidents) == (2, 1)
    second = services.areas.recompute_stats(db, "area01").value
    assert (second.total_users, second.total_incidents) == (2, 1)
    assert services.areas.recompute_all(db) == 1


def test_scope_codes(factory, services):
    area = factory.area()
    admin = factory.admin(area=area, area_code="HOME01")
    assert services.areas.scope_codes(factory.ctx(admin)) == frozenset({"AREA01", "HOME01"})
    assert services.areas.scope_codes(factory.ctx(factory.super_admin())) is None
    assert services.areas.scope_codes(factory.ctx(factory.user(area_code="AREA01"))) == frozenset()


# -----------------------------
# HTTP
# -----------------------------
def test_validate_endpoint_is_public(client, factory):
    factory.area(code="ABC123", name="Old Town")
    r = client.get("/api/v1/area-codes/validate/abc123")
    assert r.status_code == 200
    assert r.json() == {"valid": True, "area_code": {"code": "ABC123", "name": "Old Town", "description": ""}}

    r = client.get("/api/v1/area-codes/validate/ZZZ999")
    assert r.json() == {"valid": False, "area_code": None}


def test_area_endpoints_super_admin_only(client, factory):
    admin = factory.admin()
    root = factory.super_admin()

    r = client.post("/api/v1/area-codes", json={"name": "Harbor"}, headers=factory.headers(admin))
    assert r.status_code == 403

    r = client.post("/api/v1/area-codes", json={"name": "Harbor"}, headers=factory.headers(root))
    assert r.status_code == 201
    area_id = r.json()["id"]

    r = client.post(
        f"/api/v1/area-codes/{area_id}/admins", json={"admin_ids": [admin.id]}, headers=factory.headers(root)
    )
    assert r.status_code == 200
    assert r.json()["admin_ids"] == [admin.id]

    r = client.get("/api/v1/area-codes", headers=factory.headers(root))
    assert [a["id"] for a in r.json()] == [area_id]
