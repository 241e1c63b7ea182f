"""Create users and memos tables

Revision ID: 001
Revises: None
Create Date: 2024-06-01 00:00:00.000000+00:00

What:  users (keyed by the identity provider's subject id) and memos with
       FK cascade, the four b-tree indexes, the GIN full-text index and an
       updated_at trigger.
How:   PostgreSQL only: gen_random_uuid() (pgcrypto), to_tsvector, plpgsql.

Rollback: downgrade() drops both tables (all data lost).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.create_table(
        "users",
        sa.Column("user_id", sa.String(128), nullable=False, comment="Identity provider subject id"),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("department", sa.String(100), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("user_id"),
        sa.UniqueConstraint("email", name="users_email_key"),
    )

    op.create_table(
        "memos",
        sa.Column(
            "memo_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("user_name", sa.String(255), nullable=False, comment="Creator name at creation time"),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("audio_url", sa.Text(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("latitude", sa.Numeric(10, 8), nullable=True),
        sa.Column("longitude", sa.Numeric(11, 8), nullable=True),
        sa.Column("location_accuracy", sa.Float(), nullable=True, comment="Horizontal accuracy in meters"),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("park_name", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("memo_id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "(latitude IS NULL) = (longitude IS NULL)",
            name="ck_memos_coordinates_paired",
        ),
    )

    op.create_index("idx_memos_user_created", "memos", ["user_id", sa.text("created_at DESC")])
    op.create_index("idx_memos_location", "memos", ["latitude", "longitude"])
    op.create_index("idx_memos_park", "memos", ["park_name"])
    op.create_index("idx_memos_created", "memos", [sa.text("created_at DESC")])
    op.create_index(
        "idx_memos_text_search",
        "memos",
        [sa.text("to_tsvector('english', text)")],
        postgresql_using="gin",
    )

    # Safety net for writers that bypass the application.
    op.execute(
        """
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = CURRENT_TIMESTAMP;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        """
        CREATE TRIGGER update_memos_updated_at
            BEFORE UPDATE ON memos
            FOR EACH ROW
            EXECUTE FUNCTION update_updated_at_column()
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS update_memos_updated_at ON memos")
    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column()")
    op.drop_index("idx_memos_text_search", table_name="memos")
    op.drop_index("idx_memos_created", table_name="memos")
    op.drop_index("idx_memos_park", table_name="memos")
    op.drop_index("idx_memos_location", table_name="memos")
    op.drop_index("idx_memos_user_created", table_name="memos")
    op.drop_table("memos")
    op.drop_table("users")
