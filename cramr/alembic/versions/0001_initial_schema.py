"""Initial Cramr schema."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _user_fk(column: str, *, nullable: bool = False) -> sa.Column:
    return sa.Column(
        column,
        sa.String(length=36),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=nullable,
    )


def _event_fk(column: str = "event_id", *, nullable: bool = False) -> sa.Column:
    return sa.Column(
        column,
        sa.String(length=36),
        sa.ForeignKey("events.id", ondelete="CASCADE"),
        nullable=nullable,
    )


def upgrade() -> None:
    op.create_table(
        "meta",
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=128), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("school", sa.String(length=255), nullable=True),
        sa.Column("major", sa.String(length=255), nullable=True),
        sa.Column("year", sa.String(length=32), nullable=True),
        sa.Column("pronouns", sa.String(length=64), nullable=True),
        sa.Column("transfer", sa.Boolean(), nullable=True),
        sa.Column("banner_color", sa.String(length=16), nullable=True),
        sa.Column("profile_picture_url", sa.String(length=512), nullable=True),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("prompt_1", sa.Text(), nullable=True),
        sa.Column("prompt_1_answer", sa.Text(), nullable=True),
        sa.Column("prompt_2", sa.Text(), nullable=True),
        sa.Column("prompt_2_answer", sa.Text(), nullable=True),
        sa.Column("prompt_3", sa.Text(), nullable=True),
        sa.Column("prompt_3_answer", sa.Text(), nullable=True),
        sa.Column("push_notifications_enabled", sa.Boolean(), nullable=False),
        sa.Column("email_notifications_enabled", sa.Boolean(), nullable=False),
        sa.Column("sms_notifications_enabled", sa.Boolean(), nullable=False),
        sa.Column("followers", sa.Integer(), nullable=False),
        sa.Column("following", sa.Integer(), nullable=False),
        sa.Column("follower_ids", sa.JSON(), nullable=False),
        sa.Column("following_ids", sa.JSON(), nullable=False),
        sa.Column("verification_code", sa.String(length=64), nullable=True),
        sa.Column("verification_code_expiry", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "follows",
        sa.Column("id", sa.String(length=36), nullable=False),
        _user_fk("follower_id"),
        _user_fk("following_id"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("follower_id", "following_id"),
    )
    op.create_index("ix_follows_following_id", "follows", ["following_id"])

    op.create_table(
        "blocks",
        sa.Column("id", sa.String(length=36), nullable=False),
        _user_fk("blocker_id"),
        _user_fk("blocked_id"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("blocker_id", "blocked_id"),
    )
    op.create_index("ix_blocks_blocked_id", "blocks", ["blocked_id"])

    op.create_table(
        "events",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column(
            "creator_id",
            sa.String(length=36),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("class", sa.String(length=128), nullable=True),
        sa.Column("date_and_time", sa.DateTime(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("virtual_room_link", sa.String(length=512), nullable=True),
        sa.Column("study_room", sa.String(length=255), nullable=True),
        sa.Column("event_format", sa.String(length=32), nullable=True),
        sa.Column("banner_color", sa.String(length=16), nullable=True),
        sa.Column("materials_count", sa.Integer(), nullable=False),
        sa.Column("rsvped_ids", sa.JSON(), nullable=False),
        sa.Column("saved_ids", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_events_creator_id", "events", ["creator_id"])
    op.create_index("ix_events_created_at", "events", ["created_at"])

    op.create_table(
        "event_attendees",
        sa.Column("id", sa.String(length=36), nullable=False),
        _event_fk(),
        _user_fk("user_id"),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("rsvp_date", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id", "user_id"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), nullable=False),
        _user_fk("user_id"),
        _user_fk("sender_id", nullable=True),
        _event_fk(nullable=True),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_notifications_user_created", "notifications", ["user_id", "created_at"]
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.String(length=36), nullable=False),
        _user_fk("sender_id"),
        _user_fk("recipient_id"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_messages_sender_id", "messages", ["sender_id"])
    op.create_index("ix_messages_recipient_id", "messages", ["recipient_id"])
    op.create_index("ix_messages_created_at", "messages", ["created_at"])

    op.create_table(
        "comments",
        sa.Column("id", sa.String(length=36), nullable=False),
        _event_fk(),
        _user_fk("user_id"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "saved_events",
        _user_fk("user_id"),
        _event_fk(),
        sa.Column("saved_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("user_id", "event_id"),
    )

    op.create_table(
        "flashcard_sets",
        sa.Column("id", sa.String(length=36), nullable=False),
        _user_fk("user_id"),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "flashcards",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column(
            "set_id",
            sa.String(length=36),
            sa.ForeignKey("flashcard_sets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk("user_id"),
        sa.Column("front", sa.Text(), nullable=True),
        sa.Column("back", sa.Text(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.Column("is_checked", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "study_materials",
        sa.Column("id", sa.String(length=36), nullable=False),
        _event_fk(),
        _user_fk("user_id"),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("stored_name", sa.String(length=255), nullable=False),
        sa.Column("file_url", sa.String(length=512), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("file_type", sa.String(length=128), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    for table in (
        "study_materials",
        "flashcards",
        "flashcard_sets",
        "saved_events",
        "comments",
        "messages",
        "notifications",
        "event_attendees",
        "events",
        "blocks",
        "follows",
        "users",
        "meta",
    ):
        op.drop_table(table)
