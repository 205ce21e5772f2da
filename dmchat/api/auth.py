import logging
from typing import Any

import jwt
from fastapi import Depends, Header

from dmchat.api.deps import get_repository
from dmchat.config import config
from dmchat.errors import UnauthenticatedError
from dmchat.model.user.user_response import UserResponse
from dmchat.service.ports import ChatRepository
from dmchat.service.user.user import resolve_current_user

logger = logging.getLogger(__name__)

ALGORITHMS = ["HS256"]


def decode_session_token(token: str) -> dict[str, Any]:
    secret = config.auth_secret()
    if not secret:
        logger.error("AUTH_SECRET is not configured")
        raise UnauthenticatedError("Unauthorized")
    try:
        return jwt.decode(token, secret, algorithms=ALGORITHMS, options={"require": ["sub"]})
    except jwt.InvalidTokenError as exc:
        logger.info("rejected session token: %s", exc)
        raise UnauthenticatedError("Unauthorized") from exc


def get_claims(authorization: str = Header(default="")) -> dict[str, Any]:
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthenticatedError("Unauthorized")
    return decode_session_token(token.strip())


def get_current_user(
    claims: dict[str, Any] = Depends(get_claims),
    repo: ChatRepository = Depends(get_repository),
) -> UserResponse:
    return resolve_current_user(repo, claims)
