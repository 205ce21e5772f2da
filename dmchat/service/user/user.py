import logging
from typing import Any, Optional

from dmchat.errors import NotFoundError, ValidationError
from dmchat.model.user.sidebar_response import SidebarUserResponse
from dmchat.model.user.user_response import UserResponse
from dmchat.service.ports import ChatRepository

logger = logging.getLogger(__name__)

UPSERT_EVENTS = ("user.created", "user.updated")
DELETE_EVENT = "user.deleted"


def _profile(source: dict[str, Any]) -> dict[str, Optional[str]]:
    return {
        "first_name": source.get("first_name"),
        "last_name": source.get("last_name"),
        "image_url": source.get("image_url"),
        "username": source.get("username"),
    }


def resolve_current_user(repo: ChatRepository, claims: dict[str, Any]) -> UserResponse:
    """Find the caller's user row, creating it on first request when the token carries an email."""
    clerk_id = claims["sub"]
    user = repo.get_user_by_clerk_id(clerk_id)
    if user is not None:
        return user

    email = claims.get("email")
    if not email:
        raise NotFoundError("User not found")
    logger.info("creating user on first request clerk_id=%s", clerk_id)
    return repo.upsert_user(clerk_id, email, _profile(claims), overwrite=False)


def sync_user_service(repo: ChatRepository, claims: dict[str, Any]) -> UserResponse:
    email = claims.get("email")
    if not email:
        raise NotFoundError("User not found")
    return repo.upsert_user(claims["sub"], email, _profile(claims), overwrite=False)


def sidebar_service(repo: ChatRepository, user_id: str) -> list[SidebarUserResponse]:
    return repo.list_sidebar(user_id)


def _primary_email(data: dict[str, Any]) -> Optional[str]:
    addresses = data.get("email_addresses")
    if not isinstance(addresses, list):
        return None
    for entry in addresses:
        if isinstance(entry, dict) and entry.get("email_address"):
            return entry["email_address"]
    return None


def handle_identity_event(repo: ChatRepository, event: dict[str, Any]) -> None:
    event_type = event.get("type")
    data = event.get("data")
    if not isinstance(data, dict) or not data.get("id"):
        raise ValidationError("Malformed identity event")

    if event_type in UPSERT_EVENTS:
        email = _primary_email(data)
        if not email:
            raise ValidationError("Identity event has no email address")
        user = repo.upsert_user(data["id"], email, _profile(data), overwrite=True)
        logger.info("identity %s applied user=%s", event_type, user.id)
    elif event_type == DELETE_EVENT:
        deleted = repo.delete_user(data["id"])
        logger.info("identity user.deleted clerk_id=%s deleted=%s", data["id"], deleted)
    else:
        logger.info("ignoring identity event type=%s", event_type)
