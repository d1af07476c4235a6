"""Key-value storage slots and product image blobs

Revision ID: 20261019_storage_slots
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_storage_slots"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "storage_slots",
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )
    op.create_table(
        "image_blobs",
        sa.Column("product_id", sa.String(length=128), nullable=False),
        sa.Column("content_type", sa.String(length=64), nullable=False, server_default="image/png"),
        sa.Column("data", sa.LargeBinary(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("product_id"),
    )


def downgrade():
    op.drop_table("image_blobs")
    op.drop_table("storage_slots")
