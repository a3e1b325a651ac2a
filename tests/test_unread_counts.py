from app.services.chat.unread_service import UnreadCountService


async def test_increment_creates_then_accumulates(session):
    unread = UnreadCountService(session)

    for _ in range(3):
        await unread.increment("ana", "chat-1")
    await unread.increment("ana", "chat-2")
    await session.commit()

    assert await unread.get_count("ana", "chat-1") == 3
    assert await unread.get_total("ana") == 4
    assert await unread.get_count("ben", "chat-1") == 0


async def test_reset_records_last_read_and_hides_from_list(session):
    unread = UnreadCountService(session)
    await unread.increment("ana", "chat-1")
    await unread.increment("ana", "chat-2")

    await unread.reset("ana", "chat-1")
    await session.commit()

    entry = await unread.get_entry("ana", "chat-1")
    assert entry.unread_count == 0
    assert entry.last_read_at is not None
    assert [e.chat_id for e in await unread.get_all("ana")] == ["chat-2"]


async def test_reset_without_prior_messages_creates_zero_row(session):
    unread = UnreadCountService(session)

    await unread.reset("ana", "chat-9")
    await unread.reset("ana", "chat-9")
    await session.commit()

    assert (await unread.get_entry("ana", "chat-9")).unread_count == 0
    assert await unread.get_total("ana") == 0
