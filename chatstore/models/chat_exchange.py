"""
ChatExchange model: one request and its response within a chat session.
"""
from sqlalchemy import Column, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from chatstore.db.base import Base, UTCDateTime, new_sortable_id, utcnow


class ChatExchangeRecord(Base):
    __tablename__ = "chat_session_exchanges"

    id = Column(String(36), primary_key=True, default=new_sortable_id)

    session_id = Column(
        String(36),
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    request = Column(Text, nullable=False)
    # Caller supplied, may be recorded out of order
    request_ts = Column(UTCDateTime, nullable=False)
    response = Column(Text, nullable=False)
    response_ts = Column(UTCDateTime, nullable=False)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    session = relationship("ChatSessionRecord", back_populates="exchanges")

    __table_args__ = (
        Index("ix_chat_session_exchanges_session_request_ts", "session_id", "request_ts"),
    )
