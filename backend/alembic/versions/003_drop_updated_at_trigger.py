"""Drop the memos.updated_at trigger

Revision ID: 003
Revises: 002
Create Date: 2024-07-02 00:00:00.000000+00:00

What:  Removes update_memos_updated_at and its function.
Why:   created_at and updated_at are both stamped by the application
       (MemoStore.create / MemoStore.update). The trigger replaced the
       bound updated_at with the database clock, so the two columns came
       from different clocks. The server defaults stay for raw inserts.
"""

from typing import Sequence, Union

from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS update_memos_updated_at ON memos")
    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column()")


def downgrade() -> None:
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
