"""Monthly usage counters per merchant."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "002_add_subscription_usage"
down_revision = "001_initial_billing_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "subscription_usage",
        sa.Column("id", sa.String(36), primary_key=True, nullable=False),
        sa.Column(
            "merchant_id",
            sa.String(36),
            sa.ForeignKey("merchants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period", sa.String(7), nullable=False),
        sa.Column("usage", sa.JSON(), nullable=False),
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
        sa.UniqueConstraint(
            "merchant_id", "period", name="uq_subscription_usage_merchant_period"
        ),
    )


def downgrade() -> None:
    op.drop_table("subscription_usage")
