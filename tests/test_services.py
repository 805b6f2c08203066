import pytest

from staffchat.schemas.message import MessageCreate
from staffchat.services.conversation_service import ConversationService
from staffchat.services.message_service import MessageService


@pytest.fixture
def conversations():
    return ConversationService()


@pytest.fixture
def messages(conversations):
    return MessageService(conversations)


@pytest.mark.asyncio
async def test_direct_conversation_is_found_in_either_order(db, make_user, conversations):
    alice = await make_user("Alice", "Smith")
    bob = await make_user("Bob", "Jones")

    conv, created = await conversations.get_or_create_direct(db, alice.id, bob.id)
    assert created is True

    again, created_again = await conversations.get_or_create_direct(db, bob.id, alice.id)
    assert created_again is False
    assert again.id == conv.id


@pytest.mark.asyncio
async def test_direct_conversation_with_self_or_unknown_user(db, make_user, conversations):
    alice = await make_user("Alice")

    with pytest.raises(ValueError):
        await conversations.get_or_create_direct(db, alice.id, alice.id)
    with pytest.raises(LookupError):
        await conversations.get_or_create_direct(db, alice.id, "does-not-exist")


@pytest.mark.asyncio
async def test_first_send_creates_conversation(db, make_user, messages, conversations):
    alice = await make_user("Alice")
    bob = await make_user("Bob")

    msg = await messages.send(db, alice, MessageCreate(peer_id=bob.id, content="hello"))

    assert msg.conversation_id
    assert msg.sender_id == alice.id
    assert msg.receiver_id == bob.id
    assert msg.sender.first_name == "Alice"
    conv = await conversations.find_direct(db, bob.id, alice.id)
    assert conv is not None and conv.id == msg.conversation_id


@pytest.mark.asyncio
async def test_send_requires_content_or_attachments(db, make_user, messages):
    alice = await make_user("Alice")
    bob = await make_user("Bob")

    with pytest.raises(ValueError):
        await messages.send(db, alice, MessageCreate(peer_id=bob.id, content="   "))

    msg = await messages.send(
        db, alice, MessageCreate(peer_id=bob.id, content="", attachments=["/uploads/a.png"])
    )
    assert msg.attachments == ["/uploads/a.png"]


@pytest.mark.asyncio
async def test_send_requires_exactly_one_target(db, make_user, messages):
    alice = await make_user("Alice")
    bob = await make_user("Bob")

    with pytest.raises(ValueError):
        await messages.send(db, alice, MessageCreate(content="hi"))
    with pytest.raises(ValueError):
        await messages.send(db, alice, MessageCreate(peer_id=bob.id, conversation_id="c1", content="hi"))


@pytest.mark.asyncio
async def test_history_is_oldest_first_and_empty_without_conversation(db, make_user, messages):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    carol = await make_user("Carol")

    await messages.send(db, alice, MessageCreate(peer_id=bob.id, content="one"))
    await messages.send(db, bob, MessageCreate(peer_id=alice.id, content="two"))
    await messages.send(db, alice, MessageCreate(peer_id=bob.id, content="three"))

    history = await messages.get_history(db, bob.id, peer_id=alice.id)
    assert [m.content for m in history] == ["one", "two", "three"]

    assert await messages.get_history(db, alice.id, peer_id=carol.id) == []


@pytest.mark.asyncio
async def test_unread_counts_only_messages_addressed_to_viewer(db, make_user, messages, conversations):
    alice = await make_user("Alice")
    bob = await make_user("Bob")

    first = await messages.send(db, alice, MessageCreate(peer_id=bob.id, content="a"))
    await messages.send(db, alice, MessageCreate(peer_id=bob.id, content="b"))
    await messages.send(db, bob, MessageCreate(peer_id=alice.id, content="c"))

    assert await messages.unread_total(db, bob.id) == 2
    assert await messages.unread_total(db, alice.id) == 1

    changed = await messages.mark_read(db, bob.id, first.conversation_id)
    assert changed == 2
    assert await messages.unread_total(db, bob.id) == 0
    # Bob reading does not touch what Bob sent
    assert await messages.unread_total(db, alice.id) == 1

    rows = await conversations.list_for_user(db, alice.id)
    assert len(rows) == 1
    assert rows[0].unread_count == 1
    assert rows[0].last_message.content == "c"
    assert rows[0].other_user.id == bob.id


@pytest.mark.asyncio
async def test_mark_read_requires_membership(db, make_user, messages):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    mallory = await make_user("Mallory")

    msg = await messages.send(db, alice, MessageCreate(peer_id=bob.id, content="secret"))
    with pytest.raises(LookupError):
        await messages.mark_read(db, mallory.id, msg.conversation_id)


@pytest.mark.asyncio
async def test_list_orders_by_most_recent_activity(db, make_user, messages, conversations):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    carol = await make_user("Carol")

    await messages.send(db, alice, MessageCreate(peer_id=bob.id, content="to bob"))
    await messages.send(db, alice, MessageCreate(peer_id=carol.id, content="to carol"))

    rows = await conversations.list_for_user(db, alice.id)
    assert [r.other_user.id for r in rows] == [carol.id, bob.id]

    await messages.send(db, bob, MessageCreate(peer_id=alice.id, content="from bob"))
    rows = await conversations.list_for_user(db, alice.id)
    assert [r.other_user.id for r in rows] == [bob.id, carol.id]


@pytest.mark.asyncio
async def test_group_lifecycle(db, make_user, messages, conversations):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    carol = await make_user("Carol")

    group = await conversations.create_group(db, "Ops", [bob.id, carol.id, bob.id], alice.id)
    assert group.is_group
    assert group.member_count == 3
    assert group.member_details[0].id == alice.id
    assert {m.id for m in group.member_details} == {alice.id, bob.id, carol.id}

    msg = await messages.send(db, bob, MessageCreate(conversation_id=group.id, content="hi all"))
    assert msg.receiver_id is None
    assert sorted(await messages.recipients(db, msg)) == sorted([alice.id, carol.id])

    assert await messages.unread_total(db, alice.id) == 1
    assert await messages.unread_total(db, bob.id) == 0

    history = await messages.get_history(db, carol.id, conversation_id=group.id)
    assert [m.content for m in history] == ["hi all"]


@pytest.mark.asyncio
async def test_group_validation(db, make_user, conversations):
    alice = await make_user("Alice")

    with pytest.raises(ValueError):
        await conversations.create_group(db, "  ", ["x"], alice.id)
    with pytest.raises(ValueError):
        await conversations.create_group(db, "Solo", [alice.id], alice.id)
    with pytest.raises(LookupError):
        await conversations.create_group(db, "Ghosts", ["nobody"], alice.id)


@pytest.mark.asyncio
async def test_only_creator_or_admin_deletes_group(db, make_user, conversations):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    admin = await make_user("Root", is_admin=True)

    group = await conversations.create_group(db, "Ops", [bob.id], alice.id)
    with pytest.raises(PermissionError):
        await conversations.delete_group(db, group.id, bob)

    await conversations.delete_group(db, group.id, admin)
    with pytest.raises(LookupError):
        await conversations.delete_group(db, group.id, alice)


@pytest.mark.asyncio
async def test_leaving_group_deletes_it_when_one_member_left(db, make_user, messages, conversations):
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    carol = await make_user("Carol")

    group = await conversations.create_group(db, "Ops", [bob.id, carol.id], alice.id)
    await messages.send(db, alice, MessageCreate(conversation_id=group.id, content="hello"))

    result = await conversations.leave_group(db, group.id, carol.id)
    assert result == "Left group successfully"
    assert await conversations.get_for_member(db, group.id, carol.id) is None

    result = await conversations.leave_group(db, group.id, bob.id)
    assert "deleted" in result
    assert await conversations.list_for_user(db, alice.id) == []
