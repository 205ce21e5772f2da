import logging
from typing import Optional

from dmchat.errors import ForbiddenError, ValidationError
from dmchat.model.realtime.realtime_response import ChannelAuthResponse
from dmchat.service.ports import RealtimeBroker
from dmchat.service.realtime.channels import PRESENCE_CHANNEL, conversation_peer, user_channel

logger = logging.getLogger(__name__)


def can_subscribe(user_id: str, channel: str) -> bool:
    if channel == PRESENCE_CHANNEL:
        return True
    if channel == user_channel(user_id):
        return True
    return conversation_peer(channel, user_id) is not None


def authorize_channel_service(
    broker: RealtimeBroker, user_id: str, socket_id: Optional[str], channel: Optional[str]
) -> ChannelAuthResponse:
    if not socket_id or not channel:
        raise ValidationError("Missing required fields")

    if not can_subscribe(user_id, channel):
        logger.warning("rejected subscription user=%s channel=%s", user_id, channel)
        raise ForbiddenError("Forbidden")

    logger.info("authorized subscription user=%s socket=%s channel=%s", user_id, socket_id, channel)
    return ChannelAuthResponse(**broker.authorize_subscription(socket_id, channel))
