"""Initial merchant billing schema with the free plan seeded."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001_initial_billing_schema"
down_revision = None
branch_labels = None
depends_on = None


FREE_PLAN_ID = "00000000-0000-0000-0000-000000000001"


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "merchants",
        sa.Column("id", sa.String(36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        sa.Column("owner_user_id", sa.String(), nullable=True),
        sa.Column("owner_email", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_merchants_status", "merchants", ["status"])

    op.create_table(
        "plans",
        sa.Column("id", sa.String(36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("billing_cycle", sa.String(16), nullable=False, server_default="MONTHLY"),
        sa.Column("limits", sa.JSON(), nullable=False),
        sa.Column("features", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        sa.Column("is_popular", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("show_on_landing", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.String(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("name", name="uq_plans_name"),
    )

    plan_table = sa.table(
        "plans",
        sa.column("id", sa.String()),
        sa.column("name", sa.String()),
        sa.column("description", sa.Text()),
        sa.column("price", sa.Numeric(12, 2)),
        sa.column("billing_cycle", sa.String()),
        sa.column("limits", sa.JSON()),
        sa.column("features", sa.JSON()),
        sa.column("status", sa.String()),
        sa.column("display_order", sa.Integer()),
    )

    op.bulk_insert(
        plan_table,
        [
            {
                "id": FREE_PLAN_ID,
                "name": "Free",
                "description": "Default plan for every merchant without a subscription",
                "price": 0,
                "billing_cycle": "MONTHLY",
                "limits": {},
                "features": [],
                "status": "ACTIVE",
                "display_order": 1,
            },
        ],
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(36), primary_key=True, nullable=False),
        sa.Column(
            "merchant_id",
            sa.String(36),
            sa.ForeignKey(
                "merchants.id",
                ondelete="CASCADE",
                name="fk_subscriptions_merchant_id_merchants",
            ),
            nullable=False,
        ),
        sa.Column(
            "plan_id",
            sa.String(36),
            sa.ForeignKey("plans.id", name="fk_subscriptions_plan_id_plans"),
            nullable=False,
        ),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_billing_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("monthly_price", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("billing_cycle", sa.String(16), nullable=False, server_default="MONTHLY"),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(), nullable=True),
        sa.Column("cancellation_reason", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_subscriptions_plan_id", "subscriptions", ["plan_id"])
    op.create_index(
        "ix_subscriptions_merchant_status", "subscriptions", ["merchant_id", "status"]
    )
    op.create_index(
        "ix_subscriptions_status_end_date", "subscriptions", ["status", "end_date"]
    )

    op.create_table(
        "plan_assignments",
        sa.Column("id", sa.String(36), primary_key=True, nullable=False),
        sa.Column(
            "merchant_id",
            sa.String(36),
            sa.ForeignKey(
                "merchants.id",
                ondelete="CASCADE",
                name="fk_plan_assignments_merchant_id_merchants",
            ),
            nullable=False,
        ),
        sa.Column(
            "plan_id",
            sa.String(36),
            sa.ForeignKey("plans.id", name="fk_plan_assignments_plan_id_plans"),
            nullable=False,
        ),
        sa.Column("assignment_type", sa.String(16), nullable=False, server_default="IMMEDIATE"),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_type", sa.String(16), nullable=False, server_default="PERMANENT"),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("assigned_by", sa.String(), nullable=True),
        sa.Column("is_applied", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_plan_assignments_merchant_id", "plan_assignments", ["merchant_id"])
    op.create_index("ix_plan_assignments_is_applied", "plan_assignments", ["is_applied"])

    op.create_table(
        "billing_transactions",
        sa.Column("id", sa.String(36), primary_key=True, nullable=False),
        sa.Column("transaction_id", sa.String(32), nullable=False),
        sa.Column(
            "merchant_id",
            sa.String(36),
            sa.ForeignKey(
                "merchants.id",
                ondelete="CASCADE",
                name="fk_billing_transactions_merchant_id_merchants",
            ),
            nullable=False,
        ),
        sa.Column(
            "plan_id",
            sa.String(36),
            sa.ForeignKey("plans.id", name="fk_billing_transactions_plan_id_plans"),
            nullable=False,
        ),
        sa.Column(
            "subscription_id",
            sa.String(36),
            sa.ForeignKey(
                "subscriptions.id", name="fk_billing_transactions_subscription_id_subscriptions"
            ),
            nullable=True,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False, server_default="ETB"),
        sa.Column("payment_reference", sa.String(), nullable=True),
        sa.Column("payment_method", sa.String(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("billing_period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("billing_period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_by", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "transaction_id", name="uq_billing_transactions_transaction_id"
        ),
    )
    op.create_index(
        "ix_billing_transactions_merchant_id", "billing_transactions", ["merchant_id"]
    )
    op.create_index(
        "ix_billing_transactions_status_created",
        "billing_transactions",
        ["status", "created_at"],
    )

    op.create_table(
        "billing_sequences",
        sa.Column("scope", sa.String(32), primary_key=True, nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )


def downgrade() -> None:
    op.drop_table("billing_sequences")
    op.drop_index("ix_billing_transactions_status_created", table_name="billing_transactions")
    op.drop_index("ix_billing_transactions_merchant_id", table_name="billing_transactions")
    op.drop_table("billing_transactions")
    op.drop_index("ix_plan_assignments_is_applied", table_name="plan_assignments")
    op.drop_index("ix_plan_assignments_merchant_id", table_name="plan_assignments")
    op.drop_table("plan_assignments")
    op.drop_index("ix_subscriptions_status_end_date", table_name="subscriptions")
    op.drop_index("ix_subscriptions_merchant_status", table_name="subscriptions")
    op.drop_index("ix_subscriptions_plan_id", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_table("plans")
    op.drop_index("ix_merchants_status", table_name="merchants")
    op.drop_table("merchants")
