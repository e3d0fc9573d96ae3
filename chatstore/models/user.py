from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import relationship

from chatstore.db.base import Base, UTCDateTime, new_uuid, utcnow


class UserRecord(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String, unique=True, nullable=False)
    api_token = Column(String, nullable=False, default="")

    # Nullable back-reference into this user's own sessions (not ownership)
    active_session_id = Column(
        String(36),
        ForeignKey(
            "chat_sessions.id",
            name="fk_users_active_session_id",
            ondelete="SET NULL",
            use_alter=True,
        ),
        nullable=True,
        default=None,
    )

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    chat_sessions = relationship(
        "ChatSessionRecord",
        back_populates="user",
        foreign_keys="ChatSessionRecord.user_id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __str__(self) -> str:
        return f"({self.name} [{self.id}])"
