"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-16

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        sa.BigInteger(),
        sa.Identity(always=False),
        nullable=False,
    )


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "earning_events",
        _id_column(),
        sa.Column("event_id", sa.String(length=100), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("provider_id", sa.String(length=64), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("amount_minor", sa.BigInteger(), nullable=False),
        sa.Column(
            "fee_minor",
            sa.BigInteger(),
            server_default=sa.text("0"),
            nullable=False,
        ),
        _timestamp("created_at"),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.CheckConstraint("amount_minor > 0", name="positive_event_amount"),
        sa.CheckConstraint("fee_minor >= 0", name="non_negative_event_fee"),
        sa.CheckConstraint(
            "event_type IN ('booking_paid', 'booking_refunded')",
            name="valid_event_type",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id"),
    )
    op.create_index(
        "idx_earning_events_provider_occurred",
        "earning_events",
        ["provider_id", "occurred_at"],
        unique=False,
    )

    op.create_table(
        "provider_accounts",
        _id_column(),
        sa.Column("provider_id", sa.String(length=64), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("total_revenue_minor", sa.BigInteger(), server_default=sa.text("0"), nullable=False),
        sa.Column("total_commissions_minor", sa.BigInteger(), server_default=sa.text("0"), nullable=False),
        sa.Column("total_refunds_minor", sa.BigInteger(), server_default=sa.text("0"), nullable=False),
        sa.Column("pending_payouts_minor", sa.BigInteger(), server_default=sa.text("0"), nullable=False),
        sa.Column("total_payouts_minor", sa.BigInteger(), server_default=sa.text("0"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("pending_payouts_minor >= 0", name="non_negative_pending"),
        sa.CheckConstraint("total_payouts_minor >= 0", name="non_negative_payouts"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "provider_id", "currency", name="uq_provider_account_currency"
        ),
    )

    op.create_table(
        "payouts",
        _id_column(),
        sa.Column("provider_id", sa.String(length=64), nullable=False),
        sa.Column("amount_minor", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("method", sa.String(length=50), nullable=False),
        sa.Column(
            "method_details", postgresql.JSONB(astext_type=sa.Text()), nullable=False
        ),
        sa.Column(
            "status",
            sa.String(length=50),
            server_default=sa.text("'PENDING'"),
            nullable=False,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("reference_number", sa.String(length=100), nullable=True),
        sa.Column("processing_reference", sa.String(length=100), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        _timestamp("requested_at"),
        _timestamp("approved_at", nullable=True),
        sa.Column("approved_by", sa.String(length=64), nullable=True),
        _timestamp("processed_at", nullable=True),
        sa.Column("processed_by", sa.String(length=64), nullable=True),
        _timestamp("paid_at", nullable=True),
        _timestamp("failed_at", nullable=True),
        _timestamp("rejected_at", nullable=True),
        _timestamp("cancelled_at", nullable=True),
        _timestamp("updated_at"),
        sa.Column(
            "version", sa.Integer(), server_default=sa.text("1"), nullable=False
        ),
        sa.CheckConstraint("amount_minor > 0", name="positive_payout_amount"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'PROCESSING', 'COMPLETED', "
            "'FAILED', 'REJECTED', 'CANCELLED')",
            name="valid_payout_status",
        ),
        sa.CheckConstraint(
            "method IN ('BANK_TRANSFER', 'MOBILE_MONEY')",
            name="valid_payout_method",
        ),
        sa.CheckConstraint(
            "(status = 'COMPLETED' AND paid_at IS NOT NULL) OR "
            "(status != 'COMPLETED' AND paid_at IS NULL)",
            name="paid_at_consistency",
        ),
        sa.CheckConstraint(
            "(status = 'FAILED' AND failed_at IS NOT NULL) OR "
            "(status != 'FAILED' AND failed_at IS NULL)",
            name="failed_at_consistency",
        ),
        sa.CheckConstraint(
            "(status IN ('PROCESSING', 'COMPLETED', 'FAILED') AND processed_at IS NOT NULL) OR "
            "(status NOT IN ('PROCESSING', 'COMPLETED', 'FAILED') AND processed_at IS NULL)",
            name="processed_at_consistency",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_payouts_provider_requested",
        "payouts",
        ["provider_id", "requested_at"],
        unique=False,
    )
    op.create_index(
        "idx_payouts_status_requested",
        "payouts",
        ["status", "requested_at"],
        unique=False,
    )
    op.create_index(
        "idx_payouts_active",
        "payouts",
        ["provider_id", "currency"],
        unique=False,
        postgresql_where=sa.text("status IN ('PENDING', 'APPROVED', 'PROCESSING')"),
    )

    op.create_table(
        "ledger_entries",
        _id_column(),
        sa.Column("provider_id", sa.String(length=64), nullable=False),
        sa.Column("amount_minor", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("entry_type", sa.String(length=50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("related_event_id", sa.String(length=100), nullable=True),
        sa.Column("related_payout_id", sa.BigInteger(), nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint(
            "entry_type IN ('revenue', 'commission', 'refund', "
            "'payout_reserve', 'payout_release')",
            name="valid_entry_type",
        ),
        sa.ForeignKeyConstraint(
            ["related_event_id"],
            ["earning_events.event_id"],
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["related_payout_id"],
            ["payouts.id"],
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_ledger_provider_currency",
        "ledger_entries",
        ["provider_id", "currency"],
        unique=False,
    )
    op.create_index(
        "idx_ledger_related_payout",
        "ledger_entries",
        ["related_payout_id"],
        unique=False,
        postgresql_where=sa.text("related_payout_id IS NOT NULL"),
    )


def downgrade() -> None:
    op.drop_index(
        "idx_ledger_related_payout",
        table_name="ledger_entries",
        postgresql_where=sa.text("related_payout_id IS NOT NULL"),
    )
    op.drop_index("idx_ledger_provider_currency", table_name="ledger_entries")
    op.drop_table("ledger_entries")

    op.drop_index(
        "idx_payouts_active",
        table_name="payouts",
        postgresql_where=sa.text("status IN ('PENDING', 'APPROVED', 'PROCESSING')"),
    )
    op.drop_index("idx_payouts_status_requested", table_name="payouts")
    op.drop_index("idx_payouts_provider_requested", table_name="payouts")
    op.drop_table("payouts")

    op.drop_table("provider_accounts")

    op.drop_index("idx_earning_events_provider_occurred", table_name="earning_events")
    op.drop_table("earning_events")
