from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import and_, case, delete, func, or_, select, update

from dmchat.client.db.psql import session_scope
from dmchat.db.models.message import Message
from dmchat.db.models.user import User
from dmchat.model.message.message_response import MessageResponse
from dmchat.model.user.sidebar_response import SidebarUserResponse
from dmchat.model.user.user_response import UserResponse

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("first_name", "last_name", "image_url", "username")


def _pair_filter(user_a: str, user_b: str):
    return or_(
        and_(Message.sender_id == user_a, Message.receiver_id == user_b),
        and_(Message.sender_id == user_b, Message.receiver_id == user_a),
    )


def _sidebar_sort_key(item: SidebarUserResponse) -> tuple[int, float]:
    """Unread first, then newest conversation first."""
    last = item.last_message.created_at.timestamp() if item.last_message else float("-inf")
    return (0 if item.unread_count > 0 else 1, -last)


class SqlChatRepository:
    """SQLAlchemy implementation of the chat persistence port."""

    def get_user(self, user_id: str) -> Optional[UserResponse]:
        with session_scope() as db:
            user = db.get(User, user_id)
            return UserResponse.model_validate(user) if user else None

    def get_user_by_clerk_id(self, clerk_id: str) -> Optional[UserResponse]:
        with session_scope() as db:
            user = db.execute(select(User).where(User.clerk_id == clerk_id)).scalar_one_or_none()
            return UserResponse.model_validate(user) if user else None

    def list_sidebar(self, user_id: str) -> list[SidebarUserResponse]:
        # three statements regardless of how many peers the user has
        peer = case((Message.sender_id == user_id, Message.receiver_id), else_=Message.sender_id)
        ranked = (
            select(
                Message.id.label("message_id"),
                peer.label("peer_id"),
                func.row_number()
                .over(partition_by=peer, order_by=(Message.created_at.desc(), Message.id.desc()))
                .label("rank"),
            )
            .where(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
            .subquery()
        )

        with session_scope() as db:
            users = db.execute(
                select(User).where(User.id != user_id, User.is_active.is_(True))
            ).scalars().all()

            last_by_peer = {
                peer_id: message
                for peer_id, message in db.execute(
                    select(ranked.c.peer_id, Message)
                    .join(Message, Message.id == ranked.c.message_id)
                    .where(ranked.c.rank == 1)
                ).all()
            }
            unread_by_peer = dict(
                db.execute(
                    select(Message.sender_id, func.count(Message.id))
                    .where(Message.receiver_id == user_id, Message.read.is_(False))
                    .group_by(Message.sender_id)
                ).all()
            )

            items: list[SidebarUserResponse] = []
            for user in users:
                last = last_by_peer.get(user.id)
                item = SidebarUserResponse.model_validate(user)
                item.last_message = MessageResponse.model_validate(last) if last else None
                item.unread_count = unread_by_peer.get(user.id, 0)
                items.append(item)

        items.sort(key=_sidebar_sort_key)
        return items

    def find_conversation(self, user_a: str, user_b: str) -> list[MessageResponse]:
        with session_scope() as db:
            rows = db.execute(
                select(Message)
                .where(_pair_filter(user_a, user_b))
                .order_by(Message.created_at.asc(), Message.id.asc())
            ).scalars().all()
            return [MessageResponse.model_validate(row) for row in rows]

    def create_message(
        self, sender_id: str, receiver_id: str, content: Optional[str], image_url: Optional[str]
    ) -> MessageResponse:
        with session_scope() as db:
            message = Message(
                sender_id=sender_id,
                receiver_id=receiver_id,
                content=content,
                image_url=image_url,
                read=False,
            )
            db.add(message)
            db.flush()
            db.refresh(message)
            return MessageResponse.model_validate(message)

    def mark_read(self, reader_id: str, sender_id: str) -> list[str]:
        # single UPDATE ... RETURNING so concurrent callers never report the same row twice
        stmt = (
            update(Message)
            .where(
                Message.sender_id == sender_id,
                Message.receiver_id == reader_id,
                Message.read.is_(False),
            )
            .values(read=True, read_at=datetime.now(timezone.utc))
            .returning(Message.id)
            .execution_options(synchronize_session=False)
        )
        with session_scope() as db:
            return list(db.execute(stmt).scalars().all())

    def count_unread(self, reader_id: str, sender_id: str) -> int:
        with session_scope() as db:
            return db.execute(
                select(func.count(Message.id)).where(
                    Message.sender_id == sender_id,
                    Message.receiver_id == reader_id,
                    Message.read.is_(False),
                )
            ).scalar_one()

    def upsert_user(
        self,
        clerk_id: str,
        email: str,
        profile: dict[str, Optional[str]],
        overwrite: bool = True,
    ) -> UserResponse:
        """
        Create or update the user owning ``clerk_id``.

        With ``overwrite`` (identity webhooks) an existing row takes every
        profile value as given. Without it (first sign-in sync) an existing
        row is returned untouched. A row that only matches by email is
        relinked to the new external id and keeps values the event leaves empty.
        """
        with session_scope() as db:
            user = db.execute(select(User).where(User.clerk_id == clerk_id)).scalar_one_or_none()
            if user is not None:
                if overwrite:
                    user.email = email
                    for field in PROFILE_FIELDS:
                        setattr(user, field, profile.get(field) or None)
                db.flush()
                return UserResponse.model_validate(user)

            user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
            if user is not None:
                logger.info("relinking user=%s to clerk_id=%s", user.id, clerk_id)
                user.clerk_id = clerk_id
                for field in PROFILE_FIELDS:
                    setattr(user, field, profile.get(field) or getattr(user, field))
                db.flush()
                return UserResponse.model_validate(user)

            user = User(
                clerk_id=clerk_id,
                email=email,
                **{field: profile.get(field) or None for field in PROFILE_FIELDS},
            )
            db.add(user)
            db.flush()
            db.refresh(user)
            return UserResponse.model_validate(user)

    def delete_user(self, clerk_id: str) -> bool:
        with session_scope() as db:
            user = db.execute(select(User).where(User.clerk_id == clerk_id)).scalar_one_or_none()
            if user is None:
                return False
            db.execute(
                delete(Message)
                .where(or_(Message.sender_id == user.id, Message.receiver_id == user.id))
                .execution_options(synchronize_session=False)
            )
            db.delete(user)
            return True

    def set_status(self, user_id: str, status: str) -> Optional[UserResponse]:
        with session_scope() as db:
            user = db.get(User, user_id)
            if user is None:
                return None
            user.status = status
            user.last_seen = datetime.now(timezone.utc)
            db.flush()
            return UserResponse.model_validate(user)
