"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _money(name: str, nullable: bool = False, default: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.Numeric(precision=15, scale=2),
        server_default=sa.text("0") if default else None,
        nullable=nullable,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column(
            "role", sa.String(length=20), server_default="viewer", nullable=False
        ),
        sa.Column(
            "is_upgraded", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column("subscription_plan", sa.String(length=20), nullable=True),
        sa.Column("subscription_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_devices", sa.Integer(), server_default="1", nullable=False),
        sa.Column(
            "active_devices",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        *_timestamps(),
        sa.CheckConstraint(
            "role IN ('viewer', 'filmmaker', 'admin')", name="valid_user_role"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "filmmaker_finances",
        sa.Column("user_id", sa.String(length=36), nullable=False),
        _money("pending_balance"),
        _money("available_balance"),
        _money("withdrawn_balance"),
        _money("total_earned"),
        sa.Column(
            "payout_method", sa.String(length=20), server_default="momo", nullable=False
        ),
        sa.Column("payout_phone", sa.String(length=20), nullable=True),
        sa.Column(
            "is_verified", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint("pending_balance >= 0", name="non_negative_pending_balance"),
        sa.CheckConstraint(
            "available_balance >= 0", name="non_negative_available_balance"
        ),
        sa.CheckConstraint(
            "withdrawn_balance >= 0", name="non_negative_withdrawn_balance"
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "contents",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column(
            "content_type", sa.String(length=20), server_default="movie", nullable=False
        ),
        sa.Column("filmmaker_id", sa.String(length=36), nullable=False),
        sa.Column("series_id", sa.String(length=36), nullable=True),
        sa.Column(
            "status", sa.String(length=20), server_default="pending", nullable=False
        ),
        _money("view_price"),
        _money("download_price"),
        sa.Column("currency", sa.String(length=3), server_default="RWF", nullable=False),
        sa.Column(
            "pricing_tiers", postgresql.JSONB(astext_type=sa.Text()), nullable=True
        ),
        sa.Column("season_number", sa.Integer(), nullable=True),
        sa.Column("episode_number", sa.Integer(), nullable=True),
        sa.Column("total_views", sa.BigInteger(), server_default="0", nullable=False),
        _money("total_revenue"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "content_type IN ('movie', 'series', 'episode')",
            name="valid_content_type",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="valid_content_status",
        ),
        sa.ForeignKeyConstraint(["filmmaker_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["series_id"], ["contents.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_contents_series_status", "contents", ["series_id", "status"], unique=False
    )
    op.create_index("idx_contents_filmmaker", "contents", ["filmmaker_id"], unique=False)

    op.create_table(
        "payments",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("content_id", sa.String(length=36), nullable=True),
        sa.Column("payment_class", sa.String(length=30), nullable=False),
        sa.Column("access_period", sa.String(length=10), nullable=True),
        sa.Column("subscription_plan", sa.String(length=20), nullable=True),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), server_default="RWF", nullable=False),
        _money("original_amount", default=False),
        sa.Column("original_currency", sa.String(length=3), nullable=False),
        sa.Column(
            "exchange_rate",
            sa.Numeric(precision=10, scale=4),
            server_default=sa.text("1"),
            nullable=False,
        ),
        _money("filmmaker_share"),
        _money("platform_share"),
        sa.Column("payment_method", sa.String(length=20), nullable=False),
        sa.Column("provider", sa.String(length=30), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("reference_id", sa.String(length=100), nullable=True),
        sa.Column("financial_transaction_id", sa.String(length=100), nullable=True),
        sa.Column("stripe_payment_intent_id", sa.String(length=100), nullable=True),
        sa.Column(
            "status", sa.String(length=20), server_default="pending", nullable=False
        ),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("access_granted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ledger_applied_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="positive_payment_amount"),
        sa.CheckConstraint("filmmaker_share >= 0", name="non_negative_filmmaker_share"),
        sa.CheckConstraint("platform_share >= 0", name="non_negative_platform_share"),
        sa.CheckConstraint(
            "status IN ('pending', 'succeeded', 'failed')",
            name="valid_payment_status",
        ),
        sa.CheckConstraint(
            "payment_class IN ('watch', 'download', 'series_access', "
            "'subscription_upgrade', 'subscription_renewal')",
            name="valid_payment_class",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["content_id"], ["contents.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("reference_id"),
        sa.UniqueConstraint("stripe_payment_intent_id"),
    )
    op.create_index(
        "idx_payments_user_created", "payments", ["user_id", "created_at"], unique=False
    )
    op.create_index(
        "idx_payments_content_status", "payments", ["content_id", "status"], unique=False
    )
    op.create_index(
        "idx_payments_status_created", "payments", ["status", "created_at"], unique=False
    )
    op.create_index(
        "idx_payments_unsettled",
        "payments",
        ["created_at"],
        unique=False,
        postgresql_where=sa.text(
            "status = 'succeeded' AND ledger_applied_at IS NULL"
        ),
    )

    op.create_table(
        "entitlements",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("content_id", sa.String(length=36), nullable=False),
        sa.Column("series_id", sa.String(length=36), nullable=True),
        sa.Column("payment_id", sa.String(length=36), nullable=True),
        sa.Column("access_type", sa.String(length=20), nullable=False),
        sa.Column("access_period", sa.String(length=10), nullable=True),
        _money("price_paid"),
        sa.Column(
            "status", sa.String(length=20), server_default="active", nullable=False
        ),
        sa.Column(
            "granted_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "access_type IN ('view', 'download', 'series')", name="valid_access_type"
        ),
        sa.CheckConstraint(
            "status IN ('active', 'expired', 'cancelled')",
            name="valid_entitlement_status",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["content_id"], ["contents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["series_id"], ["contents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "payment_id", "content_id", name="uq_entitlement_payment_content"
        ),
    )
    op.create_index(
        "idx_entitlements_user_series",
        "entitlements",
        ["user_id", "series_id"],
        unique=False,
    )
    op.create_index(
        "idx_entitlements_user_content",
        "entitlements",
        ["user_id", "content_id"],
        unique=False,
    )
    op.create_index(
        "idx_entitlements_expires_at", "entitlements", ["expires_at"], unique=False
    )

    op.create_table(
        "withdrawals",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        _money("amount", default=False),
        sa.Column("currency", sa.String(length=3), server_default="RWF", nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column(
            "status", sa.String(length=20), server_default="pending", nullable=False
        ),
        sa.Column("payment_id", sa.String(length=36), nullable=True),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("external_id", sa.String(length=100), nullable=True),
        sa.Column("reference_id", sa.String(length=100), nullable=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="positive_withdrawal_amount"),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', "
            "'cancelled', 'rejected')",
            name="valid_withdrawal_status",
        ),
        sa.CheckConstraint(
            "type IN ('filmmaker_earning', 'admin_fee', 'subscription_admin_fee', "
            "'series_access_admin_fee', 'manual_withdrawal', 'automatic_payout')",
            name="valid_withdrawal_type",
        ),
        sa.CheckConstraint(
            "(status = 'completed' AND completed_at IS NOT NULL) "
            "OR (status != 'completed' AND completed_at IS NULL)",
            name="completed_at_consistency",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("external_id"),
        sa.UniqueConstraint("reference_id"),
        sa.UniqueConstraint("payment_id", "type", name="uq_withdrawal_payment_type"),
    )
    op.create_index(
        "idx_withdrawals_user_created",
        "withdrawals",
        ["user_id", "created_at"],
        unique=False,
    )
    op.create_index("idx_withdrawals_status", "withdrawals", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("idx_withdrawals_status", table_name="withdrawals")
    op.drop_index("idx_withdrawals_user_created", table_name="withdrawals")
    op.drop_table("withdrawals")

    op.drop_index("idx_entitlements_expires_at", table_name="entitlements")
    op.drop_index("idx_entitlements_user_content", table_name="entitlements")
    op.drop_index("idx_entitlements_user_series", table_name="entitlements")
    op.drop_table("entitlements")

    op.drop_index("idx_payments_unsettled", table_name="payments")
    op.drop_index("idx_payments_status_created", table_name="payments")
    op.drop_index("idx_payments_content_status", table_name="payments")
    op.drop_index("idx_payments_user_created", table_name="payments")
    op.drop_table("payments")

    op.drop_index("idx_contents_filmmaker", table_name="contents")
    op.drop_index("idx_contents_series_status", table_name="contents")
    op.drop_table("contents")

    op.drop_table("filmmaker_finances")
    op.drop_table("users")
