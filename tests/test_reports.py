import pytest

from civicwatch.core.errors import ErrorKind
from civicwatch.models.audit_log import AuditLogEntry
from civicwatch.models.notification import Notification
from civicwatch.models.report import Report
from civicwatch.models.user import User
from civicwatch.services.delivery import DeliveryChain


class RecordingProvider:
    name = "recording"

    def __init__(self, ok=True):
        self.ok = ok
        self.sent = []

    def send(self, recipient, subject, body):
        self.sent.append((recipient, subject))
        return self.ok


class ExplodingProvider:
    name = "exploding"

    def send(self, recipient, subject, body):
        raise RuntimeError("smtp down")


@pytest.fixture
def thread(db, services, factory):
    factory.area()
    owner = factory.user(area_code="AREA01")
    troll = factory.user(area_code="AREA01", email="troll@example.com")
    incident = factory.incident(owner, status="approved")
    m = services.messaging.send(db, factory.ctx(troll), incident.id, "you are an idiot").value
    services.messaging.reply(db, factory.ctx(owner), m.id, "please stop")
    return owner, troll, incident, m


def _file(db, services, factory, owner, troll, incident, **kw):
    return services.messaging.file_report(db, factory.ctx(owner), incident.id, troll.id, "Abusive language", **kw)


def test_file_report_snapshots_thread_and_survives_deletion(db, services, factory, thread):
    owner, troll, incident, m = thread
    report = _file(db, services, factory, owner, troll, incident, message_id=m.id).value

    assert [e["content"] for e in report.chat_snapshot] == ["you are an idiot", "please stop"]
    assert report.chat_snapshot[1]["reply_id"]

    services.messaging.delete_thread(db, factory.ctx(owner), incident.id, troll.id)
    db.expire_all()
    stored = db.get(Report, report.id)
    assert [e["content"] for e in stored.chat_snapshot] == ["you are an idiot", "please stop"]


def test_file_report_requires_conversation(db, services, factory, thread):
    owner, _, incident, _ = thread
    stranger = factory.user()
    result = services.messaging.file_report(db, factory.ctx(owner), incident.id, stranger.id, "Spamming me")
    assert result.error.kind is ErrorKind.FORBIDDEN
    assert services.messaging.file_report(db, factory.ctx(owner), incident.id, owner.id, "me").error.kind is ErrorKind.VALIDATION


def test_file_report_rejects_foreign_message_id(db, services, factory, thread):
    owner, troll, incident, _ = thread
    result = _file(db, services, factory, owner, troll, incident, message_id=424242)
    assert result.error.kind is ErrorKind.VALIDATION


def test_review_warn(db, services, factory, thread):
    owner, troll, incident, _ = thread
    report = _file(db, services, factory, owner, troll, incident).value
    admin = factory.ctx(factory.super_admin())

    reviewed = services.messaging.review_report(db, admin, report.id, "warn", note="first strike").value
    assert reviewed.status == "resolved"
    assert reviewed.admin_action == "warned"
    assert reviewed.reviewed_by == admin.user_id
    assert reviewed.reviewed_at is not None

    db.expire_all()
    user = db.get(User, troll.id)
    assert len(user.warnings) == 1
    assert user.warnings[0]["report_id"] == report.id
    assert db.query(Notification).filter(Notification.user_id == troll.id, Notification.type == "moderation").count() == 1
    assert db.query(AuditLogEntry).filter(AuditLogEntry.action == "REPORT_REVIEWED").count() == 1

    again = services.messaging.review_report(db, admin, report.id, "dismiss")
    assert again.error.kind is ErrorKind.CONFLICT


def test_review_suspend_with_and_without_duration(db, services, factory, thread):
    owner, troll, incident, _ = thread
    admin = factory.ctx(factory.super_admin())

    first = _file(db, services, factory, owner, troll, incident).value
    services.messaging.review_report(db, admin, first.id, "suspend", duration_days=3)
    db.expire_all()
    user = db.get(User, troll.id)
    assert user.is_suspended and user.suspended_until is not None

    second = _file(db, services, factory, owner, troll, incident).value
    services.messaging.review_report(db, admin, second.id, "suspend")
    db.expire_all()
    user = db.get(User, troll.id)
    assert user.is_suspended and user.suspended_until is None
    assert factory.ctx(user).is_suspended


def test_review_dismiss_takes_no_action(db, services, factory, thread):
    owner, troll, incident, _ = thread
    report = _file(db, services, factory, owner, troll, incident).value
    admin = factory.ctx(factory.super_admin())

    reviewed = services.messaging.review_report(db, admin, report.id, "dismiss").value
    assert reviewed.admin_action == "none"
    assert reviewed.status == "resolved"
    db.expire_all()
    user = db.get(User, troll.id)
    assert user.warnings == [] and not user.is_suspended


def test_review_requires_admin(db, services, factory, thread):
    owner, troll, incident, _ = thread
    report = _file(db, services, factory, owner, troll, incident).value
    assert services.messaging.review_report(db, factory.ctx(owner), report.id, "warn").error.kind is ErrorKind.FORBIDDEN


def test_delivery_failure_does_not_roll_back_review(db, services, factory, thread):
    owner, troll, incident, _ = thread
    report = _file(db, services, factory, owner, troll, incident).value
    recorder = RecordingProvider()
    services.messaging.delivery = DeliveryChain([ExplodingProvider(), RecordingProvider(ok=False), recorder])

    result = services.messaging.review_report(db, factory.ctx(factory.super_admin()), report.id, "warn")
    assert result.ok
    assert recorder.sent == [("troll@example.com", "Warning from moderators")]

    services.messaging.delivery = DeliveryChain([ExplodingProvider()])
    second = _file(db, services, factory, owner, troll, incident).value
    assert services.messaging.review_report(db, factory.ctx(factory.super_admin()), second.id, "suspend").ok


def test_delete_report(db, services, factory, thread):
    owner, troll, incident, _ = thread
    report = _file(db, services, factory, owner, troll, incident).value
    admin = factory.ctx(factory.admin())
    assert services.messaging.delete_report(db, admin, report.id).value == {"deleted": True, "id": report.id}
    assert services.messaging.get_report(db, admin, report.id).error.kind is ErrorKind.NOT_FOUND
    assert db.query(AuditLogEntry).filter(AuditLogEntry.action == "REPORT_DELETED").count() == 1


def test_reports_over_http(client, factory, services, db, thread):
    owner, troll, incident, _ = thread
    r = client.post(
        f"/api/v1/messages/incidents/{incident.id}/report",
        json={"reported_user_id": troll.id, "reason": "Abusive language"},
        headers=factory.headers(owner),
    )
    assert r.status_code == 201
    report_id = r.json()["id"]

    admin = factory.super_admin()
    r = client.get("/api/v1/reports?status=pending", headers=factory.headers(admin))
    assert [x["id"] for x in r.json()] == [report_id]

    r = client.post(
        f"/api/v1/reports/{report_id}/review",
        json={"action": "suspend", "duration_days": 7},
        headers=factory.headers(admin),
    )
    assert r.status_code == 200
    assert r.json()["admin_action"] == "suspended"

    r = client.post(
        f"/api/v1/reports/{report_id}/review", json={"action": "ban"}, headers=factory.headers(admin)
    )
    assert r.status_code == 422
