"""Add user color and the per-memo color snapshot

Revision ID: 002
Revises: 001
Create Date: 2024-06-20 00:00:00.000000+00:00

What:  users.color ('#rrggbb', derived from user_id) and memos.user_color
       (copy of the creator's color at creation time).
How:   Add nullable, backfill, then SET NOT NULL. Existing users are colored
       with the same derivation the application uses for new users.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from trailmemo.services.color import generate_user_color

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("users", sa.Column("color", sa.String(7), nullable=True))

    conn = op.get_bind()
    user_ids = [row[0] for row in conn.execute(sa.text("SELECT user_id FROM users"))]
    for user_id in user_ids:
        conn.execute(
            sa.text("UPDATE users SET color = :color WHERE user_id = :user_id"),
            {"color": generate_user_color(user_id), "user_id": user_id},
        )
    op.alter_column("users", "color", nullable=False)

    op.add_column("memos", sa.Column("user_color", sa.String(7), nullable=True))
    op.execute(
        """
        UPDATE memos m
        SET user_color = u.color
        FROM users u
        WHERE m.user_id = u.user_id
        """
    )
    op.alter_column("memos", "user_color", nullable=False)


def downgrade() -> None:
    op.drop_column("memos", "user_color")
    op.drop_column("users", "color")
