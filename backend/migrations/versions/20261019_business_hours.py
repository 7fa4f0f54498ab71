"""Business hours and booking window on tenants

Revision ID: 20261019_business_hours
Revises: 20261018_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_business_hours"
down_revision = "20261018_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("tenants", schema=None) as batch_op:
        batch_op.add_column(sa.Column("business_hours", sa.JSON(), nullable=True))
        batch_op.add_column(sa.Column("booking_window_days", sa.Integer(), nullable=True))


def downgrade():
    with op.batch_alter_table("tenants", schema=None) as batch_op:
        batch_op.drop_column("booking_window_days")
        batch_op.drop_column("business_hours")
