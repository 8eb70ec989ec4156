"""Renumber task positions so every (user_id, stage) bucket is 0..n-1

Revision ID: 0002_backfill_dense_task_positions
Revises: 0001_create_board_tables
Create Date: 2026-10-05 10:40:00

"""
from alembic import op


# revision identifiers, used by Alembic.
revision = '0002_backfill_dense_task_positions'
down_revision = '0001_create_board_tables'
branch_labels = None
depends_on = None


# Correlated form instead of UPDATE ... FROM so it runs on PostgreSQL and SQLite.
# Ties on position keep creation order.
BACKFILL_SQL = """
    UPDATE tasks
    SET position = (
        SELECT sub.row_num
        FROM (
            SELECT id,
                   ROW_NUMBER() OVER (
                       PARTITION BY user_id, stage
                       ORDER BY position, created_at, id
                   ) - 1 AS row_num
            FROM tasks
        ) AS sub
        WHERE sub.id = tasks.id
    )
"""


def upgrade():
    op.execute(BACKFILL_SQL)


def downgrade():
    # Previous (possibly sparse) positions are not recoverable; dense ones are valid.
    pass
