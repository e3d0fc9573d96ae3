"""
ChatSession model.

Each user can own multiple chat sessions. A session records the model used,
the session wide request parameters and the exchanges made with the model.
"""

from sqlalchemy import JSON, Column, ForeignKey, String
from sqlalchemy.orm import relationship

from chatstore.db.base import Base, UTCDateTime, new_sortable_id, utcnow


class ChatSessionRecord(Base):
    """
    Represents one chat session of a user.

    ``settings`` holds the serialized ChatSessionParameters. Deleting the
    owning user deletes the session, and deleting the session deletes its
    exchanges (both enforced by the database).
    """

    __tablename__ = "chat_sessions"

    id = Column(String(36), primary_key=True, default=new_sortable_id)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # "session-open" or "session-close"
    state = Column(String(64), nullable=False)

    model = Column(String, nullable=False)
    settings = Column(JSON, nullable=False)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship(
        "UserRecord", back_populates="chat_sessions", foreign_keys=[user_id]
    )
    exchanges = relationship(
        "ChatExchangeRecord",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChatExchangeRecord.request_ts",
    )
