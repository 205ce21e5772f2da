import pytest

import dmchat.service.message.message as message_module
from dmchat.errors import NotFoundError, UpstreamError, ValidationError
from dmchat.model.message.message_request import SendMessageRequest
from dmchat.service.realtime.channels import conversation_channel, user_channel


@pytest.mark.asyncio
async def test_send_message_persists_unread_and_publishes(repo, broker, alice, bob):
    message = await message_module.send_message_service(
        repo, broker, alice.id, bob.id, SendMessageRequest(content="hello")
    )

    conversation = repo.find_conversation(alice.id, bob.id)
    assert [m.content for m in conversation] == ["hello"]
    assert conversation[0].read is False
    assert broker.on(conversation_channel(alice.id, bob.id), "new-message")[0]["id"] == message.id
    assert broker.on(user_channel(bob.id), "new-message")[0]["senderId"] == alice.id


@pytest.mark.asyncio
async def test_send_image_only_message(repo, broker, alice, bob):
    message = await message_module.send_message_service(
        repo, broker, alice.id, bob.id, SendMessageRequest(image="https://cdn.example.com/cat.png")
    )

    assert message.content is None
    assert message.image_url == "https://cdn.example.com/cat.png"


@pytest.mark.asyncio
async def test_send_data_uri_uploads_through_media_store(repo, broker, alice, bob):
    class _StubMedia:
        def __init__(self):
            self.uploaded = []

        async def upload(self, data_uri):
            self.uploaded.append(data_uri)
            return "https://cdn.example.com/uploaded.png"

    media = _StubMedia()
    message = await message_module.send_message_service(
        repo, broker, alice.id, bob.id, SendMessageRequest(image="data:image/png;base64,AAAA"), media
    )

    assert media.uploaded == ["data:image/png;base64,AAAA"]
    assert message.image_url == "https://cdn.example.com/uploaded.png"


@pytest.mark.asyncio
async def test_send_data_uri_without_media_store(repo, broker, alice, bob):
    with pytest.raises(ValidationError):
        await message_module.send_message_service(
            repo, broker, alice.id, bob.id, SendMessageRequest(image="data:image/png;base64,AAAA")
        )


@pytest.mark.asyncio
async def test_failed_upload_persists_nothing(repo, broker, alice, bob):
    class _BrokenMedia:
        async def upload(self, data_uri):
            raise UpstreamError("Image upload failed")

    with pytest.raises(UpstreamError):
        await message_module.send_message_service(
            repo, broker, alice.id, bob.id, SendMessageRequest(image="data:image/png;base64,AAAA"), _BrokenMedia()
        )

    assert repo.find_conversation(alice.id, bob.id) == []
    assert broker.events == []


@pytest.mark.asyncio
async def test_send_validation_errors(repo, broker, alice, bob):
    with pytest.raises(ValidationError):
        await message_module.send_message_service(repo, broker, alice.id, None, SendMessageRequest(content="x"))
    with pytest.raises(ValidationError):
        await message_module.send_message_service(repo, broker, alice.id, bob.id, SendMessageRequest())
    with pytest.raises(ValidationError):
        await message_module.send_message_service(repo, broker, alice.id, alice.id, SendMessageRequest(content="x"))
    with pytest.raises(ValidationError):
        await message_module.send_message_service(
            repo, broker, alice.id, bob.id, SendMessageRequest(image="ftp://example.com/a.png")
        )


@pytest.mark.asyncio
async def test_send_unknown_sender_or_receiver(repo, broker, alice):
    with pytest.raises(NotFoundError):
        await message_module.send_message_service(repo, broker, "ghost", alice.id, SendMessageRequest(content="x"))
    with pytest.raises(NotFoundError):
        await message_module.send_message_service(repo, broker, alice.id, "ghost", SendMessageRequest(content="x"))


@pytest.mark.asyncio
async def test_list_returns_snapshot_taken_before_marking_read(repo, broker, alice, bob):
    repo.create_message(bob.id, alice.id, "one", None)
    repo.create_message(alice.id, bob.id, "two", None)
    repo.create_message(bob.id, alice.id, "three", None)

    first = await message_module.list_conversation_service(repo, broker, alice.id, bob.id)

    assert [m.content for m in first] == ["one", "two", "three"]
    assert [m.read for m in first] == [False, False, False]
    assert repo.count_unread(alice.id, bob.id) == 0

    second = await message_module.list_conversation_service(repo, broker, alice.id, bob.id)

    assert [m.read for m in second] == [True, False, True]
    receipts = broker.on(user_channel(bob.id), "message-read")
    assert len(receipts) == 1
    assert len(receipts[0]["messageIds"]) == 2


@pytest.mark.asyncio
async def test_mark_read_flips_only_peer_messages(repo, broker, alice, bob, carol):
    repo.create_message(bob.id, alice.id, "b1", None)
    repo.create_message(bob.id, alice.id, "b2", None)
    repo.create_message(alice.id, bob.id, "a1", None)
    repo.create_message(carol.id, alice.id, "c1", None)

    result = await message_module.mark_read_service(repo, broker, alice.id, bob.id)

    assert result.marked_as_read == 2
    from_bob = [m for m in repo.find_conversation(bob.id, alice.id) if m.sender_id == bob.id]
    assert all(m.read and m.read_at is not None for m in from_bob)
    assert repo.count_unread(alice.id, carol.id) == 1
    assert repo.count_unread(bob.id, alice.id) == 1


@pytest.mark.asyncio
async def test_mark_read_without_changes_publishes_nothing(repo, broker, alice, bob):
    result = await message_module.mark_read_service(repo, broker, alice.id, bob.id)

    assert result.marked_as_read == 0
    assert broker.events == []


@pytest.mark.asyncio
async def test_broker_failure_does_not_abort_send(repo, alice, bob):
    class _FailingBroker:
        async def publish(self, channel, event, payload):
            return False

        def authorize_subscription(self, socket_id, channel):
            return {"auth": ""}

    message = await message_module.send_message_service(
        repo, _FailingBroker(), alice.id, bob.id, SendMessageRequest(content="still saved")
    )

    assert repo.find_conversation(alice.id, bob.id)[0].id == message.id


def test_unread_count_service(repo, alice, bob):
    repo.create_message(bob.id, alice.id, "one", None)

    assert message_module.unread_count_service(repo, alice.id, bob.id).unread_count == 1
    assert message_module.unread_count_service(repo, bob.id, alice.id).unread_count == 0
