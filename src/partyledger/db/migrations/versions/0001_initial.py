"""initial ledger schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

# 10**17 на участника не помещается в BIGINT при большом числе участников
AMOUNT = sa.Numeric(precision=78, scale=0)


def upgrade() -> None:
    op.create_table(
        "code_registries",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("owner", sa.Text(), nullable=False),
        sa.CheckConstraint("kind in ('invitation','confirmation')", name="code_registries_kind_check"),
    )

    op.create_table(
        "code_entries",
        sa.Column(
            "registry_id",
            sa.BigInteger(),
            sa.ForeignKey("code_registries.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("opaque_code", sa.LargeBinary(), primary_key=True),
        sa.Column("consumed_by", sa.Text()),
    )

    op.create_table(
        "events",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("owner", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False, server_default="Test"),
        sa.Column("deposit", AMOUNT, nullable=False),
        sa.Column("participant_limit", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cooling_period_seconds", sa.BigInteger(), nullable=False, server_default="604800"),
        sa.Column("invitation_registry_id", sa.BigInteger(), sa.ForeignKey("code_registries.id")),
        sa.Column("confirmation_registry_id", sa.BigInteger(), sa.ForeignKey("code_registries.id")),
        sa.Column("registered_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("attended_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_balance", AMOUNT, nullable=False, server_default="0"),
        sa.Column("ended", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("cancelled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("ended_at", sa.DateTime(timezone=True)),
        sa.Column("cleared", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.CheckConstraint("attended_count <= registered_count", name="events_attended_check"),
    )

    op.create_table(
        "participants",
        sa.Column("event_id", sa.BigInteger(), sa.ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("address", sa.Text(), primary_key=True),
        sa.Column("display_name", sa.Text(), nullable=False),
        sa.Column("registered", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("attended", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("paid_out", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )

    op.create_index("idx_participants_event", "participants", ["event_id"])
    op.create_index("idx_code_entries_registry", "code_entries", ["registry_id"])


def downgrade() -> None:
    op.drop_index("idx_code_entries_registry", table_name="code_entries")
    op.drop_index("idx_participants_event", table_name="participants")

    op.drop_table("participants")
    op.drop_table("events")
    op.drop_table("code_entries")
    op.drop_table("code_registries")
