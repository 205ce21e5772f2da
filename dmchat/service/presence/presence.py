import logging

from dmchat.errors import NotFoundError, ValidationError
from dmchat.model.realtime.realtime_request import TypingRequest
from dmchat.model.realtime.realtime_response import PresenceEvent, TypingEvent, TypingResponse
from dmchat.model.user.user_response import UserResponse
from dmchat.service.ports import ChatRepository, RealtimeBroker
from dmchat.service.realtime.channels import (
    PRESENCE_CHANNEL,
    STATUS_EVENT,
    TYPING_EVENT,
    conversation_channel,
)

logger = logging.getLogger(__name__)


async def set_status_service(
    repo: ChatRepository, broker: RealtimeBroker, user_id: str, status: str
) -> UserResponse:
    user = repo.set_status(user_id, status)
    if user is None:
        raise NotFoundError("User not found")
    logger.info("status user=%s status=%s", user.id, user.status)

    event = PresenceEvent(user_id=user.id, status=user.status, last_seen=user.last_seen)
    await broker.publish(PRESENCE_CHANNEL, STATUS_EVENT, event.model_dump(mode="json", by_alias=True))
    return user


async def send_typing_service(
    repo: ChatRepository, broker: RealtimeBroker, sender: UserResponse, req: TypingRequest
) -> TypingResponse:
    # Typing state is never stored; a dropped event just expires on the client.
    if req.receiver_id == sender.id:
        raise ValidationError("Cannot type to yourself")
    if repo.get_user(req.receiver_id) is None:
        raise NotFoundError("User not found")

    event = TypingEvent(user_id=sender.id, user_name=sender.first_name or "User", is_typing=req.is_typing)
    await broker.publish(
        conversation_channel(sender.id, req.receiver_id),
        TYPING_EVENT,
        event.model_dump(mode="json", by_alias=True),
    )
    return TypingResponse(success=True)
