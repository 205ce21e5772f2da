import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String

from dmchat.db.session import Base


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=_new_id)
    # Identity-provider subject; unique when present
    clerk_id = Column(String(128), unique=True, nullable=True, index=True)
    email = Column(String(320), unique=True, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    username = Column(String, nullable=True)
    # online | offline | away
    status = Column(String(16), default="offline", nullable=False)
    last_seen = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=_utcnow)
