from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from dmchat.db.session import Base
from dmchat.db.models.user import _new_id, _utcnow


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_pair_created", "sender_id", "receiver_id", "created_at"),
    )

    id = Column(String(32), primary_key=True, default=_new_id)
    sender_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    receiver_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    # Either content or image_url is set; image-only messages are allowed
    content = Column(Text, nullable=True)
    image_url = Column(String, nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    # Set by the application so ordering doesn't depend on server clock resolution
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    sender = relationship("User", foreign_keys=[sender_id], lazy="joined")
    receiver = relationship("User", foreign_keys=[receiver_id], lazy="joined")
