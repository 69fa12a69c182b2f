"""initial schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=254), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("phone", sa.String(length=40)),
        sa.Column("monthly_income", sa.Float()),
        sa.Column("plaid_item_id", sa.String(length=120)),
        sa.Column(
            "has_bank_connected", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "onboarding_complete", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("plaid_account_id", sa.String(length=120), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("official_name", sa.String(length=200)),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("subtype", sa.String(length=40), nullable=False),
        sa.Column("mask", sa.String(length=8)),
        sa.Column("current_balance", sa.Float(), nullable=False, server_default="0"),
        sa.Column("available_balance", sa.Float()),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("last_synced", sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "plaid_account_id", name="uq_account_user_plaid"),
    )
    op.create_index("ix_accounts_user", "accounts", ["user_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("plaid_transaction_id", sa.String(length=120), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("name", sa.String(length=300), nullable=False),
        sa.Column("merchant_name", sa.String(length=300)),
        sa.Column("category", sa.JSON(), nullable=False),
        sa.Column("category_code", sa.String(length=40)),
        sa.Column("pending", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "iso_currency_code", sa.String(length=3), nullable=False, server_default="USD"
        ),
        sa.Column("payment_channel", sa.String(length=40)),
        sa.Column("is_anomaly", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("ai_suggested_category", sa.String(length=100)),
        sa.Column("tags", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "plaid_transaction_id", name="uq_txn_user_plaid"),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])

    op.create_table(
        "goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("target_amount", sa.Float(), nullable=False),
        sa.Column("current_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column(
            "category",
            sa.Enum(
                "savings",
                "purchase",
                "debt",
                "investment",
                "emergency",
                "other",
                name="goalcategory",
            ),
            nullable=False,
        ),
        sa.Column("deadline", sa.Date()),
        sa.Column(
            "priority",
            sa.Enum("low", "medium", "high", name="goalpriority"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("active", "completed", "paused", "cancelled", name="goalstatus"),
            nullable=False,
        ),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("monthly_contribution", sa.Float()),
        sa.Column("completed_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("target_amount >= 0", name="ck_goal_target_positive"),
        sa.CheckConstraint("current_amount >= 0", name="ck_goal_current_positive"),
        sa.CheckConstraint(
            "monthly_contribution IS NULL OR monthly_contribution >= 0",
            name="ck_goal_contribution_positive",
        ),
    )
    op.create_index("ix_goals_user_status", "goals", ["user_id", "status"])

    op.create_table(
        "chats",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "data_sharing", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
    )
    op.create_index("ix_chats_user_created", "chats", ["user_id", "created_at"])

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("chat_id", sa.Integer(), sa.ForeignKey("chats.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column(
            "role", sa.Enum("user", "assistant", name="messagerole"), nullable=False
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("chat_id", "position", name="uq_chat_message_position"),
    )


def downgrade():
    op.drop_table("chat_messages")
    op.drop_index("ix_chats_user_created", table_name="chats")
    op.drop_table("chats")
    op.drop_index("ix_goals_user_status", table_name="goals")
    op.drop_table("goals")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_accounts_user", table_name="accounts")
    op.drop_table("accounts")
    op.drop_table("users")
