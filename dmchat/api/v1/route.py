import base64
import hashlib
import hmac
import json
from typing import Any, List, Optional
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, Header, Query, Request, Response

from dmchat.api.auth import get_claims, get_current_user
from dmchat.api.deps import get_broker, get_media_store, get_repository
from dmchat.config import config
from dmchat.errors import UnauthenticatedError, ValidationError
from dmchat.model.message.message_request import SendMessageRequest
from dmchat.model.message.message_response import MarkReadResponse, MessageResponse, UnreadCountResponse
from dmchat.model.realtime.realtime_request import TypingRequest
from dmchat.model.realtime.realtime_response import ChannelAuthResponse, TypingResponse
from dmchat.model.user.sidebar_response import SidebarUserResponse
from dmchat.model.user.user_response import StatusRequest, UserResponse
from dmchat.service.message.message import (
    list_conversation_service,
    mark_read_service,
    send_message_service,
    unread_count_service,
)
from dmchat.service.ports import ChatRepository, MediaStore, RealtimeBroker
from dmchat.service.presence.presence import send_typing_service, set_status_service
from dmchat.service.realtime.auth import authorize_channel_service
from dmchat.service.user.user import handle_identity_event, sidebar_service, sync_user_service

api_router = APIRouter()


@api_router.get("/messages", response_model=List[MessageResponse])
async def list_messages_by_query(
    peer: str = Query(default=""),
    user: UserResponse = Depends(get_current_user),
    repo: ChatRepository = Depends(get_repository),
    broker: RealtimeBroker = Depends(get_broker),
):
    return await list_conversation_service(repo, broker, user.id, peer)


@api_router.get("/messages/unread/{peer_id}", response_model=UnreadCountResponse)
def unread_count(
    peer_id: str,
    user: UserResponse = Depends(get_current_user),
    repo: ChatRepository = Depends(get_repository),
):
    return unread_count_service(repo, user.id, peer_id)


@api_router.get("/messages/{peer_id}", response_model=List[MessageResponse])
async def list_messages(
    peer_id: str,
    user: UserResponse = Depends(get_current_user),
    repo: ChatRepository = Depends(get_repository),
    broker: RealtimeBroker = Depends(get_broker),
):
    return await list_conversation_service(repo, broker, user.id, peer_id)


@api_router.post("/messages", response_model=MessageResponse, status_code=201)
async def send_message_by_body(
    req: SendMessageRequest,
    user: UserResponse = Depends(get_current_user),
    repo: ChatRepository = Depends(get_repository),
    broker: RealtimeBroker = Depends(get_broker),
    media: Optional[MediaStore] = Depends(get_media_store),
):
    return await send_message_service(repo, broker, user.id, req.receiver_id, req, media)


@api_router.post("/messages/send/{peer_id}", response_model=MessageResponse, status_code=201)
async def send_message(
    peer_id: str,
    req: SendMessageRequest,
    user: UserResponse = Depends(get_current_user),
    repo: ChatRepository = Depends(get_repository),
    broker: RealtimeBroker = Depends(get_broker),
    media: Optional[MediaStore] = Depends(get_media_store),
):
    return await send_message_service(repo, broker, user.id, peer_id, req, media)


@api_router.put("/messages/mark-read/{peer_id}", response_model=MarkReadResponse)
async def mark_read(
    peer_id: str,
    user: UserResponse = Depends(get_current_user),
    repo: ChatRepository = Depends(get_repository),
    broker: RealtimeBroker = Depends(get_broker),
):
    return await mark_read_service(repo, broker, user.id, peer_id)


@api_router.get("/users", response_model=List[SidebarUserResponse])
def list_users(
    user: UserResponse = Depends(get_current_user),
    repo: ChatRepository = Depends(get_repository),
):
    return sidebar_service(repo, user.id)


@api_router.get("/users/me", response_model=UserResponse)
def current_user(user: UserResponse = Depends(get_current_user)):
    return user


@api_router.post("/users/sync", response_model=UserResponse)
def sync_user(
    claims: dict = Depends(get_claims),
    repo: ChatRepository = Depends(get_repository),
):
    return sync_user_service(repo, claims)


@api_router.post("/users/status", response_model=UserResponse)
async def set_status(
    req: StatusRequest,
    user: UserResponse = Depends(get_current_user),
    repo: ChatRepository = Depends(get_repository),
    broker: RealtimeBroker = Depends(get_broker),
):
    return await set_status_service(repo, broker, user.id, req.status)


@api_router.post("/typing", response_model=TypingResponse)
async def typing(
    req: TypingRequest,
    user: UserResponse = Depends(get_current_user),
    repo: ChatRepository = Depends(get_repository),
    broker: RealtimeBroker = Depends(get_broker),
):
    return await send_typing_service(repo, broker, user, req)


async def _read_channel_auth_params(request: Request) -> dict[str, Any]:
    body = await request.body()
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            data = json.loads(body or b"{}")
        except json.JSONDecodeError as exc:
            raise ValidationError("Malformed body") from exc
        return data if isinstance(data, dict) else {}
    parsed = parse_qs(body.decode())
    return {key: values[0] for key, values in parsed.items() if values}


@api_router.post("/realtime/auth", response_model=ChannelAuthResponse)
async def realtime_auth(
    request: Request,
    user: UserResponse = Depends(get_current_user),
    broker: RealtimeBroker = Depends(get_broker),
):
    params = await _read_channel_auth_params(request)
    return authorize_channel_service(broker, user.id, params.get("socket_id"), params.get("channel_name"))


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    mac = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    expected = base64.b64encode(mac).decode()
    return hmac.compare_digest(expected, signature.strip())


@api_router.post("/webhooks/identity")
async def identity_webhook(
    request: Request,
    webhook_signature: str = Header(default=""),
    repo: ChatRepository = Depends(get_repository),
):
    body = await request.body()

    secret = config.webhook_secret()
    if not secret or not verify_signature(body, webhook_signature, secret):
        raise UnauthenticatedError("invalid signature")

    try:
        event = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ValidationError("Malformed body") from exc
    if not isinstance(event, dict):
        raise ValidationError("Malformed body")

    handle_identity_event(repo, event)
    return Response(status_code=200)
