from datetime import timedelta

import pytest

from civicwatch.core.errors import ErrorKind
from civicwatch.db.base import utcnow
from civicwatch.models.message import IncidentMessage
from civicwatch.models.notification import Notification


@pytest.fixture
def scene(factory):
    factory.area()
    owner = factory.user(area_code="AREA01", name="Olivia")
    alice = factory.user(area_code="AREA01", name="Alice")
    bob = factory.user(area_code="AREA01", name="Bob")
    incident = factory.incident(owner, status="approved")
    return owner, alice, bob, incident


def test_non_owner_message_goes_to_owner(db, services, factory, scene):
    owner, alice, _, incident = scene
    result = services.messaging.send(db, factory.ctx(alice), incident.id, "Is the light fixed?")
    assert result.ok
    assert (result.value.sender_id, result.value.receiver_id) == (alice.id, owner.id)

    note = db.query(Notification).filter(Notification.user_id == owner.id).one()
    assert "Alice" in note.message
    assert note.type == "incident_update"


def test_non_owner_cannot_pick_another_receiver(db, services, factory, scene):
    _, alice, bob, incident = scene
    result = services.messaging.send(db, factory.ctx(alice), incident.id, "hi", receiver_id=bob.id)
    assert result.error.kind is ErrorKind.VALIDATION


def test_owner_reply_without_receiver_targets_last_sender(db, services, factory, scene):
    owner, alice, bob, incident = scene
    ctx = factory.ctx(owner)

    none_yet = services.messaging.send(db, ctx, incident.id, "anyone?")
    assert none_yet.error.kind is ErrorKind.VALIDATION

    services.messaging.send(db, factory.ctx(alice), incident.id, "first")
    services.messaging.send(db, factory.ctx(bob), incident.id, "second")
    result = services.messaging.send(db, ctx, incident.id, "thanks")
    assert result.value.receiver_id == bob.id


def test_owner_cannot_message_self(db, services, factory, scene):
    owner, _, _, incident = scene
    result = services.messaging.send(db, factory.ctx(owner), incident.id, "me", receiver_id=owner.id)
    assert result.error.kind is ErrorKind.VALIDATION


def test_send_checks_incident_state_at_send_time(db, services, factory, scene):
    owner, alice, _, incident = scene
    ctx = factory.ctx(alice)
    assert services.messaging.send(db, ctx, 9999, "x").error.kind is ErrorKind.NOT_FOUND

    incident.allow_messages = False
    db.commit()
    assert services.messaging.send(db, ctx, incident.id, "x").error.kind is ErrorKind.VALIDATION

    incident.allow_messages = True
    incident.status = "problem solved"
    db.commit()
    assert services.messaging.send(db, ctx, incident.id, "x").error.kind is ErrorKind.VALIDATION


def test_suspended_sender_forbidden(db, services, factory, scene):
    _, alice, _, incident = scene
    alice.is_suspended = True
    alice.suspended_until = None
    db.commit()
    assert services.messaging.send(db, factory.ctx(alice), incident.id, "x").error.kind is ErrorKind.FORBIDDEN


def test_thread_and_replies(db, services, factory, scene):
    owner, alice, bob, incident = scene
    m1 = services.messaging.send(db, factory.ctx(alice), incident.id, "one").value
    services.messaging.send(db, factory.ctx(bob), incident.id, "from bob")
    services.messaging.send(db, factory.ctx(owner), incident.id, "two", receiver_id=alice.id)

    assert services.messaging.reply(db, factory.ctx(bob), m1.id, "butting in").error.kind is ErrorKind.FORBIDDEN
    replied = services.messaging.reply(db, factory.ctx(owner), m1.id, "reply")
    assert [r.content for r in replied.value.replies] == ["reply"]
    assert {t for (t,) in db.query(Notification.type).distinct()} == {"incident_update"}

    thread = services.messaging.thread(db, factory.ctx(alice), incident.id, owner.id)
    assert [m.content for m in thread] == ["one", "two"]


def test_conversations_grouped_newest_first(db, services, factory, scene):
    owner, alice, bob, incident = scene
    other = factory.incident(owner, status="approved", title="Graffiti on wall")
    services.messaging.send(db, factory.ctx(alice), incident.id, "a1")
    services.messaging.send(db, factory.ctx(alice), incident.id, "a2")
    services.messaging.send(db, factory.ctx(bob), other.id, "b1")

    convs = services.messaging.conversations(db, factory.ctx(owner))
    assert [(c["incident_id"], c["other_user_id"]) for c in convs] == [(other.id, bob.id), (incident.id, alice.id)]
    assert convs[1]["last_message"].content == "a2"
    assert convs[0]["incident"].title == "Graffiti on wall"
    assert convs[0]["other_user"].name == "Bob"


def test_delete_thread_removes_exactly_the_pair(db, services, factory, scene):
    owner, alice, bob, incident = scene
    other = factory.incident(owner, status="approved")
    factory.message(incident, alice, owner, "a->o")
    factory.message(incident, owner, alice, "o->a")
    keep_pair = factory.message(incident, bob, owner, "b->o")
    keep_incident = factory.message(other, alice, owner, "a->o elsewhere")

    assert services.messaging.delete_thread(db, factory.ctx(alice), incident.id, owner.id) == 2
    remaining = {m.id for m in db.query(IncidentMessage).all()}
    assert remaining == {keep_pair.id, keep_incident.id}


def test_messages_over_http(client, factory, scene):
    owner, alice, _, incident = scene
    r = client.post(
        f"/api/v1/messages/incidents/{incident.id}", json={"content": "hello"}, headers=factory.headers(alice)
    )
    assert r.status_code == 201
    message_id = r.json()["id"]

    r = client.post(f"/api/v1/messages/{message_id}/replies", json={"content": "hi back"}, headers=factory.headers(owner))
    assert r.status_code == 201
    assert r.json()["replies"][0]["content"] == "hi back"

    r = client.get("/api/v1/messages/conversations", headers=factory.headers(owner))
    assert r.status_code == 200
    assert r.json()[0]["other_user"] == {"id": alice.id, "name": "Alice"}

    r = client.delete(f"/api/v1/messages/incidents/{incident.id}/with/{owner.id}", headers=factory.headers(alice))
    assert r.json() == {"deleted": 1}


def test_expired_suspension_does_not_block(db, services, factory, scene):
    _, alice, _, incident = scene
    alice.is_suspended = True
    alice.suspended_until = utcnow() - timedelta(hours=1)
    db.commit()
    assert services.messaging.send(db, factory.ctx(alice), incident.id, "back again").ok
