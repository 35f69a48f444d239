"""create devices table

Revision ID: 002
Revises: 001
Create Date: 2026-09-28

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "devices",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("tunnel_ip", sa.String(45), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("last_ip", sa.String(45), nullable=True),
        sa.Column("last_seen_at", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        # Per-user uniqueness: the Access Server recycles tunnel IPs across users
        sa.UniqueConstraint("user_id", "tunnel_ip", name="uq_devices_user_tunnel_ip"),
    )
    op.create_index("ix_devices_tunnel_ip_active", "devices", ["tunnel_ip", "is_active"])


def downgrade() -> None:
    op.drop_index("ix_devices_tunnel_ip_active", table_name="devices")
    op.drop_table("devices")
