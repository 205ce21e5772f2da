from typing import Optional

from dmchat.client.db.repository import SqlChatRepository
from dmchat.client.media.uploader import HttpMediaStore
from dmchat.client.realtime.redis_broker import RedisBroker
from dmchat.config.config import MEDIA_UPLOAD_URL
from dmchat.service.ports import ChatRepository, MediaStore, RealtimeBroker

_repository = SqlChatRepository()
_broker: Optional[RedisBroker] = None
_media_store: Optional[HttpMediaStore] = None


def get_repository() -> ChatRepository:
    return _repository


def get_broker() -> RealtimeBroker:
    global _broker
    if _broker is None:
        _broker = RedisBroker()
    return _broker


def get_media_store() -> Optional[MediaStore]:
    global _media_store
    if not MEDIA_UPLOAD_URL:
        return None
    if _media_store is None:
        _media_store = HttpMediaStore(MEDIA_UPLOAD_URL)
    return _media_store


async def close_clients() -> None:
    if _media_store is not None:
        await _media_store.aclose()
