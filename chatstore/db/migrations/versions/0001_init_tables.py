"""init tables

Revision ID: 0001_init_tables
Revises:
Create Date: 2026-10-18 00:00:00

Creates users, chat_sessions and chat_session_exchanges.

users.active_session_id and chat_sessions.user_id reference each other;
SQLite accepts a foreign key to a table created later in the same migration.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_init_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("api_token", sa.String(), nullable=False, server_default=""),
        sa.Column(
            "active_session_id",
            sa.String(36),
            sa.ForeignKey(
                "chat_sessions.id",
                name="fk_users_active_session_id",
                ondelete="SET NULL",
            ),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("name", name="uq_users_name"),
    )

    op.create_table(
        "chat_sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", name="fk_chat_sessions_user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("state", sa.String(64), nullable=False),
        sa.Column("model", sa.String(), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_chat_sessions_user_id", "chat_sessions", ["user_id"])

    op.create_table(
        "chat_session_exchanges",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "session_id",
            sa.String(36),
            sa.ForeignKey(
                "chat_sessions.id",
                name="fk_chat_session_exchanges_session_id",
                ondelete="CASCADE",
            ),
            nullable=False,
        ),
        sa.Column("request", sa.Text(), nullable=False),
        sa.Column("request_ts", sa.DateTime(), nullable=False),
        sa.Column("response", sa.Text(), nullable=False),
        sa.Column("response_ts", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_chat_session_exchanges_session_id",
        "chat_session_exchanges",
        ["session_id"],
    )
    op.create_index(
        "ix_chat_session_exchanges_session_request_ts",
        "chat_session_exchanges",
        ["session_id", "request_ts"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_chat_session_exchanges_session_request_ts",
        table_name="chat_session_exchanges",
    )
    op.drop_index(
        "ix_chat_session_exchanges_session_id", table_name="chat_session_exchanges"
    )
    op.drop_table("chat_session_exchanges")
    op.drop_index("ix_chat_sessions_user_id", table_name="chat_sessions")
    op.drop_table("chat_sessions")
    op.drop_table("users")
