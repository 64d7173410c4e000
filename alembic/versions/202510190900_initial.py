"""base expenses and monthly instances

Revision ID: 202510190900
Revises:
Create Date: 2025-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202510190900"
down_revision = None
branch_labels = None
depends_on = None


EXPENSE_TYPE = sa.Enum(
    "installment", "variable_expense", "budget", name="expensetype"
)


def upgrade():
    op.create_table(
        "base_expenses",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("type", EXPENSE_TYPE, nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("payment_method_id", sa.String(length=64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("total_amount", sa.Integer()),
        sa.Column("total_installments", sa.Integer()),
        sa.Column("start_date", sa.Date()),
        sa.Column("estimated_amount", sa.Integer()),
        sa.Column("billing_day", sa.Integer()),
        sa.Column("category", sa.String(length=100)),
        sa.Column("service_url", sa.String(length=500)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_base_expenses"),
    )
    op.create_index(
        "ix_base_expenses_type_active", "base_expenses", ["type", "is_active"]
    )

    op.create_table(
        "monthly_instances",
        sa.Column("id", sa.String(length=80), nullable=False),
        sa.Column("parent_expense_id", sa.String(length=64), nullable=False),
        sa.Column("parent_expense_type", EXPENSE_TYPE, nullable=False),
        sa.Column("month", sa.String(length=7), nullable=False),
        sa.Column("sequence_number", sa.Integer()),
        sa.Column("amount_budgeted", sa.Integer(), nullable=False),
        sa.Column("amount_paid", sa.Integer()),
        sa.Column("payment_date", sa.Date()),
        sa.Column("due_date", sa.Date()),
        sa.Column("notes", sa.Text()),
        sa.Column("category", sa.String(length=100)),
        sa.Column("payment_method_id", sa.String(length=64)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_monthly_instances"),
        sa.UniqueConstraint(
            "parent_expense_id", "month", name="uq_instance_parent_month"
        ),
        sa.CheckConstraint(
            "amount_budgeted >= 0",
            name="ck_monthly_instances_instance_budgeted_positive",
        ),
        sa.CheckConstraint(
            "amount_paid IS NULL OR amount_paid >= 0",
            name="ck_monthly_instances_instance_paid_positive",
        ),
    )
    op.create_index("ix_monthly_instances_month", "monthly_instances", ["month"])
    op.create_index(
        "ix_monthly_instances_parent", "monthly_instances", ["parent_expense_id"]
    )


def downgrade():
    op.drop_index("ix_monthly_instances_parent", table_name="monthly_instances")
    op.drop_index("ix_monthly_instances_month", table_name="monthly_instances")
    op.drop_table("monthly_instances")
    op.drop_index("ix_base_expenses_type_active", table_name="base_expenses")
    op.drop_table("base_expenses")
