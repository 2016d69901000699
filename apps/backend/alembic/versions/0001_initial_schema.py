"""
Initial schema: users and transactions with recurrence/installment links

Revision ID: 0001_initial
Revises:
Create Date: 2025-01-06 10:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("name", sa.String(length=120), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    flow_type = sa.Enum("INCOME", "EXPENSE", name="flow_type")
    payment_method = sa.Enum("PIX", "DEBIT", "CREDIT", name="payment_method")

    op.create_table(
        "transaction",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("type", flow_type, nullable=False),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("payment_method", payment_method, nullable=False),
        sa.Column("bank", sa.String(length=100), nullable=True),
        sa.Column("credit_card", sa.String(length=100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("is_recurring_template", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("recurring_day", sa.Integer(), nullable=True),
        sa.Column("recurring_parent_id", sa.Integer(), nullable=True),
        sa.Column("is_installment", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("installment_number", sa.Integer(), nullable=True),
        sa.Column("total_installments", sa.Integer(), nullable=True),
        sa.Column("installment_parent_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "NOT (is_recurring_template = 1 AND is_installment = 1)",
            name="ck_txn_template_not_installment",
        ),
        sa.CheckConstraint(
            "recurring_day IS NULL OR (recurring_day >= 1 AND recurring_day <= 31)",
            name="ck_txn_recurring_day_range",
        ),
        sa.CheckConstraint(
            "total_installments IS NULL OR total_installments >= 2",
            name="ck_txn_total_installments_min",
        ),
        sa.CheckConstraint(
            "recurring_parent_id IS NULL OR recurring_parent_id != id",
            name="ck_txn_not_own_template",
        ),
    )
    op.create_index("ix_txn_user_date", "transaction", ["user_id", "occurred_at"])
    op.create_index("ix_txn_recurring_parent_date", "transaction", ["recurring_parent_id", "occurred_at"])
    op.create_index("ix_txn_installment_parent", "transaction", ["installment_parent_id"])
    op.create_index("ix_txn_user_template", "transaction", ["user_id", "is_recurring_template"])


def downgrade() -> None:
    op.drop_index("ix_txn_user_template", table_name="transaction")
    op.drop_index("ix_txn_installment_parent", table_name="transaction")
    op.drop_index("ix_txn_recurring_parent_date", table_name="transaction")
    op.drop_index("ix_txn_user_date", table_name="transaction")
    op.drop_table("transaction")
    op.drop_table("user")
    sa.Enum(name="payment_method").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="flow_type").drop(op.get_bind(), checkfirst=True)
