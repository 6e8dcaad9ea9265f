import pytest


@pytest.fixture
def incidents(factory):
    factory.area()
    owner = factory.user(area_code="AREA01")
    approved = factory.incident(owner, status="approved", latitude=45.81, longitude=15.98)
    factory.incident(owner, status="approved")  # no coordinates
    factory.incident(owner, status="pending", latitude=1.0, longitude=1.0)
    factory.incident(owner, status="rejected")
    return owner, approved


def test_public_stats(client, incidents):
    r = client.get("/api/v1/incidents/stats/public")
    assert r.status_code == 200
    assert r.json() == {"total": 4, "active": 1, "approved": 2}


def test_coordinates_only_for_approved(client, incidents):
    r = client.get("/api/v1/incidents/coordinates")
    assert r.json() == [{"latitude": 45.81, "longitude": 15.98}]


def test_latest_hides_owner_and_unapproved(client, incidents):
    r = client.get("/api/v1/incidents/latest")
    assert r.status_code == 200
    items = r.json()
    assert len(items) == 2
    assert all("owner_id" not in i for i in items)


def test_anonymous_incident_detail(client, incidents, factory, db, services):
    owner, approved = incidents
    neighbour = factory.user(area_code="AREA01")
    services.moderation.toggle_acknowledgement(db, factory.ctx(neighbour), approved.id)

    r = client.get(f"/api/v1/incidents/{approved.id}")
    assert r.status_code == 200
    body = r.json()
    assert body["id"] == approved.id
    assert "owner_id" not in body
    assert "acknowledged_by" not in body

    signed_in = client.get(f"/api/v1/incidents/{approved.id}", headers=factory.headers(neighbour)).json()
    assert signed_in["owner_id"] == owner.id
    assert signed_in["acknowledged_by"] == [neighbour.id]

    pending = factory.incident(owner)
    r = client.get(f"/api/v1/incidents/{pending.id}")
    assert r.status_code == 404
    assert client.get(f"/api/v1/incidents/{pending.id}", headers=factory.headers(owner)).status_code == 200


def test_health_probes(client):
    live = client.get("/api/healthz").json()
    assert live["ok"] is True and live["scheduler"] == "disabled"
    r = client.get("/api/readyz")
    assert r.status_code == 200
    assert r.json()["db"] == "up"
    assert r.json()["active_areas"] == 0


def test_export_csv_and_json(client, incidents, factory):
    root = factory.super_admin()
    r = client.get("/api/v1/incidents/export?format=json", headers=factory.headers(root))
    assert r.status_code == 200
    assert r.json()["count"] == 4

    r = client.get("/api/v1/incidents/export?format=csv&status=approved", headers=factory.headers(root))
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    lines = r.text.strip().splitlines()
    assert lines[0].startswith("id,owner_id,title")
    assert len(lines) == 3

    r = client.get("/api/v1/incidents/export?format=pdf", headers=factory.headers(root))
    assert r.status_code == 400


def test_export_requires_admin(client, incidents, factory):
    owner, _ = incidents
    assert client.get("/api/v1/incidents/export").status_code == 401
    assert client.get("/api/v1/incidents/export", headers=factory.headers(owner)).status_code == 403
