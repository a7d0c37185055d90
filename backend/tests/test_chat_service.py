import pytest

from app.core.exceptions import (
    DatabaseError,
    NotChatMemberError,
    ResourceNotFoundError,
    SelfChatError,
)
from app.models.chat import Chat, ChatMembership
from app.models.message import Message
from app.services.chat_service import chat_service


def test_private_chat_is_created_once_and_symmetric(db, make_user):
    alice = make_user("alice")
    bob = make_user("bob")

    chat, created = chat_service.get_or_create_private_chat(db, alice.id, "bob")
    assert created
    assert chat.is_private_chat
    assert [m.user_id for m in chat.memberships] == [alice.id, bob.id]

    again, created_again = chat_service.get_or_create_private_chat(db, alice.id, "bob")
    reverse, created_reverse = chat_service.get_or_create_private_chat(db, bob.id, "alice")
    assert not created_again and not created_reverse
    assert again.id == chat.id == reverse.id
    assert db.query(Chat).count() == 1


def test_private_chat_with_self_is_rejected(db, make_user):
    alice = make_user("alice")
    with pytest.raises(SelfChatError):
        chat_service.get_or_create_private_chat(db, alice.id, "alice")


def test_private_chat_with_unknown_user_is_not_found(db, make_user):
    alice = make_user("alice")
    with pytest.raises(ResourceNotFoundError):
        chat_service.get_or_create_private_chat(db, alice.id, "nobody")


def test_get_chat_requires_membership(db, make_user):
    alice = make_user("alice")
    make_user("bob")
    carol = make_user("carol")
    chat, _ = chat_service.get_or_create_private_chat(db, alice.id, "bob")

    assert chat_service.get_chat(db, alice.id, chat.id).id == chat.id
    with pytest.raises(NotChatMemberError):
        chat_service.get_chat(db, carol.id, chat.id)
    with pytest.raises(ResourceNotFoundError):
        chat_service.get_chat(db, alice.id, 9999)


def test_list_chats_includes_members_and_last_message(db, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    make_user("carol")
    with_bob, _ = chat_service.get_or_create_private_chat(db, alice.id, "bob")
    with_carol, _ = chat_service.get_or_create_private_chat(db, alice.id, "carol")
    db.add_all([
        Message(content="first", sender_id=alice.id, chat_id=with_bob.id),
        Message(content="second", sender_id=bob.id, chat_id=with_bob.id),
    ])
    db.commit()

    chats = {c.id: c for c in chat_service.list_chats_for(db, alice.id)}
    assert set(chats) == {with_bob.id, with_carol.id}
    assert [u.username for u in chats[with_bob.id].users] == ["alice", "bob"]
    assert chats[with_bob.id].last_message.content == "second"
    assert chats[with_carol.id].last_message is None

    assert [c.id for c in chat_service.list_chats_for(db, bob.id)] == [with_bob.id]


def test_leave_keeps_chat_until_last_member_leaves(db, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    chat, _ = chat_service.get_or_create_private_chat(db, alice.id, "bob")
    chat_id = chat.id
    db.add(Message(content="hi", sender_id=alice.id, chat_id=chat_id))
    db.commit()

    assert chat_service.leave(db, alice.id, chat_id) is False
    assert chat_service.chat_ids_for_user(db, alice.id) == []
    assert chat_service.chat_ids_for_user(db, bob.id) == [chat_id]

    with pytest.raises(ResourceNotFoundError):
        chat_service.leave(db, alice.id, chat_id)

    assert chat_service.leave(db, bob.id, chat_id) is True
    db.expire_all()
    assert db.query(Chat).filter(Chat.id == chat_id).first() is None
    assert db.query(ChatMembership).count() == 0
    assert db.query(Message).count() == 0


def test_leave_unknown_chat_is_not_found(db, make_user):
    alice = make_user("alice")
    with pytest.raises(ResourceNotFoundError):
        chat_service.leave(db, alice.id, 42)


def test_delete_chat_requires_membership_and_cascades(db, make_user):
    alice = make_user("alice")
    make_user("bob")
    carol = make_user("carol")
    chat, _ = chat_service.get_or_create_private_chat(db, alice.id, "bob")
    chat_id = chat.id
    db.add(Message(content="hi", sender_id=alice.id, chat_id=chat_id))
    db.commit()

    with pytest.raises(NotChatMemberError):
        chat_service.delete_chat(db, carol.id, chat_id)

    chat_service.delete_chat(db, alice.id, chat_id)
    db.expire_all()
    assert db.query(Chat).count() == 0
    assert db.query(ChatMembership).count() == 0
    assert db.query(Message).count() == 0

    with pytest.raises(DatabaseError):
        chat_service.delete_chat(db, alice.id, chat_id)
