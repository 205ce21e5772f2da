import logging
from typing import Optional

from dmchat.errors import NotFoundError, ValidationError
from dmchat.model.message.message_request import SendMessageRequest
from dmchat.model.message.message_response import MarkReadResponse, MessageResponse, UnreadCountResponse
from dmchat.model.realtime.realtime_response import ReadReceiptEvent
from dmchat.service.ports import ChatRepository, MediaStore, RealtimeBroker
from dmchat.service.realtime.channels import (
    NEW_MESSAGE_EVENT,
    READ_RECEIPT_EVENT,
    conversation_channel,
    user_channel,
)

logger = logging.getLogger(__name__)

HTTP_SCHEMES = ("http://", "https://")


async def _resolve_image(image: Optional[str], media: Optional[MediaStore]) -> Optional[str]:
    if not image:
        return None
    if image.startswith(HTTP_SCHEMES):
        return image
    if image.startswith("data:"):
        if media is None:
            raise ValidationError("Image uploads are not configured")
        return await media.upload(image)
    raise ValidationError("Unsupported image reference")


async def send_message_service(
    repo: ChatRepository,
    broker: RealtimeBroker,
    sender_id: str,
    receiver_id: Optional[str],
    req: SendMessageRequest,
    media: Optional[MediaStore] = None,
) -> MessageResponse:
    content = req.content if req.content and req.content.strip() else None
    if not receiver_id or (content is None and not req.image):
        raise ValidationError("Missing required fields")
    if receiver_id == sender_id:
        raise ValidationError("Cannot send a message to yourself")

    if repo.get_user(sender_id) is None:
        raise NotFoundError("User not found")
    if repo.get_user(receiver_id) is None:
        raise NotFoundError("Receiver not found")

    image_url = await _resolve_image(req.image, media)
    message = repo.create_message(sender_id, receiver_id, content, image_url)

    payload = message.model_dump(mode="json", by_alias=True)
    await broker.publish(conversation_channel(sender_id, receiver_id), NEW_MESSAGE_EVENT, payload)
    # the receiver may not have the conversation open
    await broker.publish(user_channel(receiver_id), NEW_MESSAGE_EVENT, payload)
    return message


async def mark_read_service(
    repo: ChatRepository, broker: RealtimeBroker, user_id: str, other_user_id: str
) -> MarkReadResponse:
    message_ids = repo.mark_read(user_id, other_user_id)
    if message_ids:
        receipt = ReadReceiptEvent(reader=user_id, message_ids=message_ids)
        await broker.publish(
            user_channel(other_user_id),
            READ_RECEIPT_EVENT,
            receipt.model_dump(mode="json", by_alias=True),
        )
    logger.info("marked read reader=%s sender=%s count=%s", user_id, other_user_id, len(message_ids))
    return MarkReadResponse(marked_as_read=len(message_ids))


async def list_conversation_service(
    repo: ChatRepository, broker: RealtimeBroker, user_id: str, other_user_id: str
) -> list[MessageResponse]:
    """
    Return the conversation oldest first and mark the peer's messages read.

    The returned list is captured before the read update, so messages that
    this call just marked still carry ``read=False``. Callers see whether a
    message had been read before they opened the conversation.
    """
    if not other_user_id:
        raise ValidationError("User ID required")
    messages = repo.find_conversation(user_id, other_user_id)
    await mark_read_service(repo, broker, user_id, other_user_id)
    return messages


def unread_count_service(repo: ChatRepository, user_id: str, other_user_id: str) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=repo.count_unread(user_id, other_user_id))
