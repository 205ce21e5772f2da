import hashlib
import hmac

from dmchat.config import config


def _digest(secret: str, socket_id: str, channel: str) -> str:
    return hmac.new(secret.encode(), f"{socket_id}:{channel}".encode(), hashlib.sha256).hexdigest()


def sign_channel(socket_id: str, channel: str) -> str:
    """Auth token handed to a client that may subscribe ``socket_id`` to ``channel``."""
    return f"{config.realtime_key()}:{_digest(config.realtime_secret(), socket_id, channel)}"


def verify_channel_signature(socket_id: str, channel: str, auth: str) -> bool:
    key, _, signature = auth.partition(":")
    if not signature or key != config.realtime_key():
        return False
    expected = _digest(config.realtime_secret(), socket_id, channel)
    return hmac.compare_digest(expected, signature.strip())
