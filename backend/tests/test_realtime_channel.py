from datetime import datetime

import pytest

from app.services.chat_service import chat_service
from app.services.realtime import RealtimeChannel, Subscriber, chat_room, user_room


def test_connect_subscribes_personal_and_chat_rooms(db, make_user, recorder):
    alice = make_user("alice")
    make_user("bob")
    make_user("carol")
    first, _ = chat_service.get_or_create_private_chat(db, alice.id, "bob")
    second, _ = chat_service.get_or_create_private_chat(db, alice.id, "carol")
    channel = RealtimeChannel()
    sub = recorder(alice.id)

    rooms = channel.connect(db, sub)

    assert rooms == sorted([user_room(alice.id), chat_room(first.id), chat_room(second.id)])
    assert channel.connection_count == 1
    assert not db.in_transaction()
    db.refresh(alice)
    assert alice.status == "online"
    assert alice.last_seen_at is not None


def test_disconnect_marks_user_away_and_drops_rooms(db, make_user, recorder):
    alice = make_user("alice")
    make_user("bob")
    chat, _ = chat_service.get_or_create_private_chat(db, alice.id, "bob")
    channel = RealtimeChannel()
    sub = recorder(alice.id)
    channel.connect(db, sub)
    alice.last_seen_at = datetime(2020, 1, 1)
    db.commit()

    channel.disconnect(db, sub)

    assert not db.in_transaction()
    db.refresh(alice)
    assert alice.status == "away"
    assert alice.last_seen_at > datetime(2020, 1, 1)
    assert channel.connection_count == 0
    assert channel.rooms_of(sub) == []
    assert channel.publish(chat_room(chat.id), "newMessage", {}) == 0


def test_disconnect_of_unknown_connection_leaves_presence_alone(db, make_user, recorder):
    alice = make_user("alice")
    channel = RealtimeChannel()

    channel.disconnect(db, recorder(alice.id))

    db.refresh(alice)
    assert alice.status == "offline"


def test_join_and_leave_are_idempotent(db, make_user, recorder):
    alice = make_user("alice")
    channel = RealtimeChannel()
    sub = recorder(alice.id)
    channel.connect(db, sub)

    channel.join(sub, chat_room(7))
    channel.join(sub, chat_room(7))
    assert channel.subscribers(chat_room(7)) == [sub]

    channel.leave(sub, chat_room(7))
    channel.leave(sub, chat_room(7))
    assert channel.subscribers(chat_room(7)) == []
    assert channel.rooms_of(sub) == [user_room(alice.id)]


def test_join_requires_registered_connection(recorder):
    channel = RealtimeChannel()
    sub = recorder(1)
    channel.join(sub, chat_room(1))
    assert channel.subscribers(chat_room(1)) == []


def test_publish_reaches_only_current_room_members(db, make_user, recorder):
    alice = make_user("alice")
    bob = make_user("bob")
    channel = RealtimeChannel()
    a, b = recorder(alice.id), recorder(bob.id)
    channel.connect(db, a)
    channel.connect(db, b)
    channel.join(a, chat_room(3))

    assert channel.publish(chat_room(3), "newMessage", {"id": 1}) == 1
    assert a.frames == [{"event": "newMessage", "data": {"id": 1}}]
    assert b.frames == []

    channel.leave(a, chat_room(3))
    channel.join(b, chat_room(3))
    channel.publish(chat_room(3), "newMessage", {"id": 2})
    assert len(a.frames) == 1
    assert b.frames == [{"event": "newMessage", "data": {"id": 2}}]


def test_publish_skips_connection_whose_loop_is_gone(db, make_user, recorder):
    alice = make_user("alice")
    bob = make_user("bob")
    channel = RealtimeChannel()

    class Broken(recorder):
        def deliver(self, message):
            raise RuntimeError("Event loop is closed")

    broken, healthy = Broken(alice.id), recorder(bob.id)
    channel.connect(db, broken)
    channel.connect(db, healthy)
    channel.join(broken, chat_room(5))
    channel.join(healthy, chat_room(5))

    assert channel.publish(chat_room(5), "newMessage", {"id": 9}) == 1
    assert healthy.frames == [{"event": "newMessage", "data": {"id": 9}}]


def test_closed_channel_refuses_connections(db, make_user, recorder):
    alice = make_user("alice")
    channel = RealtimeChannel()
    channel.connect(db, recorder(alice.id))

    channel.close()

    assert channel.closed
    assert channel.connection_count == 0
    with pytest.raises(RuntimeError):
        channel.connect(db, recorder(alice.id))


def test_connect_for_user_without_row_ends_its_transaction(db, recorder):
    channel = RealtimeChannel()

    channel.connect(db, recorder(999))

    assert not db.in_transaction()


def test_subscriber_must_implement_deliver():
    with pytest.raises(TypeError):
        Subscriber(1)
