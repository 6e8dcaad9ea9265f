from datetime import timedelta

from civicwatch.core.errors import ErrorKind
from civicwatch.db.base import utcnow
from civicwatch.models.audit_log import AuditLogEntry
from civicwatch.models.notification import Notification


def _note(db, user_id=None, hours_old=0, title="Hello"):
    row = Notification(
        user_id=user_id,
        title=title,
        message="body",
        type="system_alert",
        created_at=utcnow() - timedelta(hours=hours_old),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def test_listing_respects_ttl_and_audience(db, services, factory):
    me = factory.user()
    other = factory.user()
    mine = _note(db, me.id, title="mine")
    _note(db, other.id, title="theirs")
    broadcast = _note(db, None, title="everyone")
    _note(db, me.id, hours_old=49, title="stale")

    listed = services.notifier.list_for(db, factory.ctx(me))
    assert {n.id for n in listed} == {mine.id, broadcast.id}

    anonymous = services.notifier.list_for(db, None)
    assert [n.id for n in anonymous] == [broadcast.id]


def test_mark_read_only_own_rows(db, services, factory):
    me = factory.user()
    mine = _note(db, me.id)
    broadcast = _note(db, None)

    assert services.notifier.mark_read(db, factory.ctx(me), mine.id).value.is_read is True
    assert services.notifier.mark_read(db, factory.ctx(me), broadcast.id).error.kind is ErrorKind.NOT_FOUND
    assert services.notifier.mark_all_read(db, factory.ctx(me)) == 0


def test_purge_expired(db, services, factory):
    me = factory.user()
    fresh = _note(db, me.id, hours_old=1)
    _note(db, me.id, hours_old=72)
    _note(db, None, hours_old=50)

    assert services.notifier.purge_expired(db) == 2
    assert [n.id for n in db.query(Notification).all()] == [fresh.id]


def test_announcement_requires_admin_and_is_audited(db, services, factory):
    member = factory.ctx(factory.user())
    admin = factory.ctx(factory.admin())

    assert services.notifier.announce(db, member, "Road closed", "Main St closed").error.kind is ErrorKind.FORBIDDEN
    row = services.notifier.announce(db, admin, "Road closed", "Main St closed until Friday").value
    assert row.user_id is None and row.type == "announcement"
    assert db.query(AuditLogEntry).filter(AuditLogEntry.action == "ANNOUNCEMENT_CREATED").count() == 1


def test_notifications_over_http(client, db, factory):
    me = factory.user()
    _note(db, me.id, title="mine")
    _note(db, None, title="everyone")

    r = client.get("/api/v1/notifications")
    assert [n["title"] for n in r.json()] == ["everyone"]

    # an invalid token degrades to the anonymous view
    r = client.get("/api/v1/notifications", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 200
    assert [n["title"] for n in r.json()] == ["everyone"]

    r = client.get("/api/v1/notifications", headers=factory.headers(me))
    assert sorted(n["title"] for n in r.json()) == ["everyone", "mine"]

    r = client.patch("/api/v1/notifications/read-all", headers=factory.headers(me))
    assert r.json() == {"updated": 1}


def test_broadcast_failure_is_swallowed(db, services, monkeypatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("store unavailable")

    assert services.notifier.broadcast(db, "Heads up", "Water outage").user_id is None
    monkeypatch.setattr("civicwatch.services.notifications.Notification", _boom)
    assert services.notifier.broadcast(db, "Heads up", "Water outage") is None
