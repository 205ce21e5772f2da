from typing import Optional

CONVERSATION_PREFIX = "conversation-"
USER_PREFIX = "user-"
PRESENCE_CHANNEL = "presence"

NEW_MESSAGE_EVENT = "new-message"
TYPING_EVENT = "typing"
READ_RECEIPT_EVENT = "message-read"
STATUS_EVENT = "status-changed"


def conversation_id(user_a: str, user_b: str) -> str:
    """Canonical key for the unordered pair; both participants derive the same value."""
    return "-".join(sorted((user_a, user_b)))


def conversation_channel(user_a: str, user_b: str) -> str:
    return f"{CONVERSATION_PREFIX}{conversation_id(user_a, user_b)}"


def user_channel(user_id: str) -> str:
    return f"{USER_PREFIX}{user_id}"


def conversation_peer(channel: str, user_id: str) -> Optional[str]:
    """
    Return the other participant of a conversation channel when ``user_id``
    is one of its two participants, otherwise None.

    Ids may themselves contain hyphens, so the caller's id is matched as a
    prefix or suffix and the canonical name is re-derived to confirm it.
    """
    if not channel.startswith(CONVERSATION_PREFIX) or not user_id:
        return None
    pair = channel[len(CONVERSATION_PREFIX):]

    candidates = []
    if pair.startswith(f"{user_id}-"):
        candidates.append(pair[len(user_id) + 1:])
    if pair.endswith(f"-{user_id}"):
        candidates.append(pair[: -(len(user_id) + 1)])

    for peer in candidates:
        if peer and conversation_channel(user_id, peer) == channel:
            return peer
    return None
