"""Create notes, review events and the question cache."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20251102_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "notes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("intensity", sa.String(length=16), server_default=sa.text("'moderate'"), nullable=False),
        sa.Column("ease_factor", sa.Float(), server_default=sa.text("2.5"), nullable=False),
        sa.Column("current_interval", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_interval_ms", sa.BigInteger(), nullable=True),
        sa.Column("review_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("difficulty_rating", sa.Float(), nullable=True),
        sa.Column("last_reviewed", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_review_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_notes_intensity_next_review_at",
        "notes",
        ("intensity", "next_review_at"),
    )

    op.create_table(
        "review_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("session_id", sa.String(length=64), nullable=False),
        sa.Column("note_id", sa.Integer(), nullable=False),
        sa.Column("question", sa.Text(), nullable=True),
        sa.Column("model", sa.String(length=128), server_default=sa.text("'unknown'"), nullable=False),
        sa.Column("user_response", sa.Text(), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=False),
        sa.Column("feedback", sa.Text(), server_default=sa.text("''"), nullable=False),
        sa.Column("difficulty_rating", sa.Float(), server_default=sa.text("3"), nullable=False),
        sa.Column("response_time", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("next_review_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ("note_id",),
            ("notes.id",),
            name="fk_review_events_note_id_notes",
            ondelete="CASCADE",
        ),
        sa.CheckConstraint(
            "difficulty_rating >= 1 AND difficulty_rating <= 5",
            name="ck_review_events_difficulty_rating_range",
        ),
    )
    op.create_index(
        "ix_review_events_note_id_reviewed_at",
        "review_events",
        ("note_id", "reviewed_at"),
    )
    op.create_index("ix_review_events_session_id", "review_events", ("session_id",))

    op.create_table(
        "question_cache",
        sa.Column("note_id", sa.Integer(), primary_key=True, autoincrement=False, nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("model", sa.String(length=128), nullable=False),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ("note_id",),
            ("notes.id",),
            name="fk_question_cache_note_id_notes",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_question_cache_expires_at", "question_cache", ("expires_at",))


def downgrade() -> None:
    op.drop_index("ix_question_cache_expires_at", table_name="question_cache")
    op.drop_table("question_cache")
    op.drop_index("ix_review_events_session_id", table_name="review_events")
    op.drop_index("ix_review_events_note_id_reviewed_at", table_name="review_events")
    op.drop_table("review_events")
    op.drop_index("ix_notes_intensity_next_review_at", table_name="notes")
    op.drop_table("notes")
